"""
FastAPI Videos Router for Tubely

Endpoints:
- POST /videos - Create a draft video record
- GET /videos - List the caller's videos
- GET /videos/{video_id} - Get one of the caller's videos
- POST /videos/{video_id}/thumbnail - Upload a thumbnail (multipart field ``thumbnail``)
- POST /videos/{video_id}/video - Upload the video file (multipart field ``video``)

All endpoints require a bearer token. Responses carry a presigned ``video_url``
when a video has been uploaded; the stored bucket/key pair is never exposed.

Upload endpoints read the request body themselves, after ownership of the
target video has been verified, instead of declaring ``UploadFile`` parameters
that FastAPI would parse before the handler runs.
"""

import logging
import uuid

from collections.abc import AsyncIterator
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from starlette.datastructures import UploadFile as StarletteUploadFile
from starlette.formparsers import MultiPartException, MultiPartParser
from starlette.requests import ClientDisconnect

from tubely.config import Settings, get_settings
from tubely.core.auth import get_current_owner_id
from tubely.core.database import get_db_client
from tubely.models.video import VideoCreate, VideoResponse
from tubely.services.local_assets import LocalAssetStore
from tubely.services.metadata_service import MetadataService
from tubely.services.optimizer_service import OptimizerService
from tubely.services.storage_service import StorageService
from tubely.services.upload_service import (
    AssetAccessDeniedError,
    AssetNotFoundError,
    FileValidationError,
    PartReceiver,
    UploadService,
    UploadServiceError,
)
from tubely.services.video_repository import VideoRepository


# Configure module logger
logger = logging.getLogger(__name__)

# Allowance for multipart boundaries and part headers on top of the file limit
MULTIPART_OVERHEAD_BYTES = 64 * 1024

# Multipart field names
THUMBNAIL_FIELD = "thumbnail"
VIDEO_FIELD = "video"

# Message returned for every internal failure; details stay in the logs
INTERNAL_ERROR_MESSAGE = "An internal error occurred while processing the request"


# ============================================================================
# Response Models
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")


# ============================================================================
# Router Configuration
# ============================================================================

router = APIRouter(
    responses={
        400: {"model": ErrorResponse, "description": "Bad request"},
        401: {"model": ErrorResponse, "description": "Unauthenticated"},
        403: {"model": ErrorResponse, "description": "Forbidden"},
        404: {"model": ErrorResponse, "description": "Video not found"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
)


# ============================================================================
# Dependency Providers
# ============================================================================


class _StorageServiceContainer:
    """Holds the shared StorageService so the boto3 client is built once."""

    service: StorageService | None = None


_storage_container = _StorageServiceContainer()


def get_storage_service(settings: Settings = Depends(get_settings)) -> StorageService:
    """
    Dependency injection for StorageService.

    Returns:
        StorageService: Shared S3 gateway built from settings.
    """
    if _storage_container.service is None:
        _storage_container.service = StorageService.from_settings(settings)
    return _storage_container.service


def get_video_repository() -> VideoRepository:
    """
    Dependency injection for VideoRepository.

    Returns:
        VideoRepository: Repository over the MongoDB videos collection.
    """
    return VideoRepository(get_db_client().get_videos_collection())


def get_upload_service(
    settings: Settings = Depends(get_settings),
    repository: VideoRepository = Depends(get_video_repository),
    storage: StorageService = Depends(get_storage_service),
) -> UploadService:
    """
    Dependency injection for UploadService.

    Returns:
        UploadService: Pipeline wired with ffprobe/ffmpeg, S3 and local assets.
    """
    return UploadService(
        settings=settings,
        repository=repository,
        storage=storage,
        local_assets=LocalAssetStore.from_settings(settings),
        prober=MetadataService(settings.ffprobe_path, settings.probe_timeout_seconds),
        optimizer=OptimizerService(settings.ffmpeg_path, settings.optimize_timeout_seconds),
    )


# ============================================================================
# Helpers
# ============================================================================


def _parse_video_id(video_id: str) -> str:
    try:
        return str(uuid.UUID(video_id))
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid_video_id", "message": "Invalid video ID"},
        ) from e


def _to_http_exception(error: UploadServiceError) -> HTTPException:
    """Map a pipeline error to its HTTP response."""
    if isinstance(error, FileValidationError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "bad_request", "message": str(error)},
        )
    if isinstance(error, AssetAccessDeniedError):
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "forbidden", "message": "You do not have access to this video"},
        )
    if isinstance(error, AssetNotFoundError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "message": "Video not found"},
        )

    logger.error("Request failed with %s: %s", type(error).__name__, str(error))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "internal_error", "message": INTERNAL_ERROR_MESSAGE},
    )


class RequestBodyTooLargeError(MultiPartException):
    """Raised while streaming a request body that passes the upload limit."""


async def bounded_body(stream: AsyncIterator[bytes], limit: int) -> AsyncIterator[bytes]:
    """
    Pass body chunks through until more than ``limit`` bytes have arrived.

    Starlette's parser closes its spool files before re-raising a
    MultiPartException, which RequestBodyTooLargeError is.
    """
    received = 0
    async for chunk in stream:
        received += len(chunk)
        if received > limit:
            raise RequestBodyTooLargeError("Request body exceeds the maximum upload size")
        yield chunk


def multipart_part_receiver(request: Request, field_name: str) -> PartReceiver:
    """
    Build a callable that parses the request's multipart body on demand.

    The returned coroutine function takes the endpoint's size limit, rejects
    bodies whose Content-Length already exceeds it, parses the form and returns
    the named file part. Bodies without a Content-Length (chunked transfer) are
    counted while they stream, and reading stops as soon as the limit is passed.

    Raises (from the returned callable):
        FileValidationError: Oversized, malformed or missing part, or the client
            disconnected before the body was complete.
    """

    async def receive(max_bytes: int) -> StarletteUploadFile:
        limit = max_bytes + MULTIPART_OVERHEAD_BYTES
        content_length = request.headers.get("content-length")
        if content_length is not None:
            try:
                declared = int(content_length)
            except ValueError as e:
                raise FileValidationError("Invalid Content-Length header") from e
            if declared > limit:
                raise FileValidationError("Request body exceeds the maximum upload size")

        content_type = request.headers.get("content-type", "")
        if not content_type.lower().startswith("multipart/form-data"):
            raise FileValidationError("Expected a multipart/form-data body")

        parser = MultiPartParser(
            request.headers,
            bounded_body(request.stream(), limit),
            max_files=1,
            max_fields=10,
        )
        try:
            form = await parser.parse()
        except RequestBodyTooLargeError as e:
            logger.warning("Streaming upload passed %d bytes, stopped reading", limit)
            raise FileValidationError(str(e)) from e
        except MultiPartException as e:
            raise FileValidationError("Malformed multipart body") from e
        except ClientDisconnect as e:
            logger.warning("Client disconnected during %s upload", field_name)
            raise FileValidationError("Client disconnected before the upload completed") from e

        part = form.get(field_name)
        if not isinstance(part, StarletteUploadFile):
            await form.close()
            raise FileValidationError(f"Missing file field '{field_name}'")
        return part

    return receive


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "",
    response_model=VideoResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create video",
    description="Create a draft video record owned by the caller.",
)
async def create_video(
    payload: VideoCreate,
    owner_id: str = Depends(get_current_owner_id),
    upload_service: UploadService = Depends(get_upload_service),
) -> VideoResponse:
    """Create a draft video record."""
    try:
        return await upload_service.create_video(owner_id, payload)
    except UploadServiceError as e:
        raise _to_http_exception(e) from e


@router.get(
    "",
    response_model=list[VideoResponse],
    summary="List videos",
    description="List the caller's videos, newest first, with signed video URLs.",
)
async def list_videos(
    owner_id: str = Depends(get_current_owner_id),
    upload_service: UploadService = Depends(get_upload_service),
) -> list[VideoResponse]:
    """List the caller's videos."""
    try:
        return await upload_service.list_videos(owner_id)
    except UploadServiceError as e:
        raise _to_http_exception(e) from e


@router.get(
    "/{video_id}",
    response_model=VideoResponse,
    summary="Get video",
    description="Get one of the caller's videos with a signed video URL.",
)
async def get_video(
    video_id: str,
    owner_id: str = Depends(get_current_owner_id),
    upload_service: UploadService = Depends(get_upload_service),
) -> VideoResponse:
    """Get a single video."""
    video_id = _parse_video_id(video_id)
    try:
        return await upload_service.get_video(owner_id, video_id)
    except UploadServiceError as e:
        raise _to_http_exception(e) from e


@router.post(
    "/{video_id}/thumbnail",
    response_model=VideoResponse,
    summary="Upload thumbnail",
    description="Upload a JPEG or PNG thumbnail (max 10 MB) in the 'thumbnail' form field.",
)
async def upload_thumbnail(
    video_id: str,
    request: Request,
    owner_id: str = Depends(get_current_owner_id),
    upload_service: UploadService = Depends(get_upload_service),
) -> VideoResponse:
    """
    Upload a thumbnail for a video.

    Returns:
        VideoResponse: The updated video with its locally served thumbnail URL.

    Raises:
        HTTPException: 400 invalid input, 401 unauthenticated, 403 not the owner,
            404 unknown video, 500 internal failure.
    """
    video_id = _parse_video_id(video_id)
    logger.info("Thumbnail upload request from user %s for video %s", owner_id, video_id)
    try:
        return await upload_service.upload_thumbnail(
            owner_id, video_id, multipart_part_receiver(request, THUMBNAIL_FIELD)
        )
    except UploadServiceError as e:
        raise _to_http_exception(e) from e


@router.post(
    "/{video_id}/video",
    response_model=VideoResponse,
    summary="Upload video",
    description="Upload the video file (max 1 GB) in the 'video' form field.",
)
async def upload_video(
    video_id: str,
    request: Request,
    owner_id: str = Depends(get_current_owner_id),
    upload_service: UploadService = Depends(get_upload_service),
) -> VideoResponse:
    """
    Upload, process and store the video file for a video.

    Returns:
        VideoResponse: The updated video with a presigned video URL.

    Raises:
        HTTPException: 400 invalid input, 401 unauthenticated, 403 not the owner,
            404 unknown video, 500 internal failure.
    """
    video_id = _parse_video_id(video_id)
    logger.info("Video upload request from user %s for video %s", owner_id, video_id)
    try:
        return await upload_service.upload_video(
            owner_id, video_id, multipart_part_receiver(request, VIDEO_FIELD)
        )
    except UploadServiceError as e:
        raise _to_http_exception(e) from e
