"""
Tubely Upload Service Module

This module provides the upload pipeline behind the videos API. It sequences the
collaborators that turn an untrusted multipart part into an updated video record:

- VideoRepository: resolves the target record and persists the result
- staging: streams the part into a temporary file that is always removed
- VideoProber (MetadataService): reads frame dimensions via ffprobe
- StreamOptimizer (OptimizerService): fast-start rewrite via ffmpeg stream copy
- asset_keys: derives a random storage key with an aspect-class prefix
- StorageService: uploads videos to S3 and signs URLs for reads
- LocalAssetStore: writes thumbnails to the served assets directory

Pipeline order for a video upload:
    resolve record -> check ownership -> receive part -> validate media type
    -> stage -> probe -> classify -> optimize -> derive key -> upload to S3
    -> persist "bucket,key" -> sign URL for the response

Ownership is checked before the request body is read, so a caller who does not
own the video never causes anything to be written to disk or storage. If the S3
upload succeeds and the record update then fails, the object is left orphaned;
the record is only written after a successful upload, never before.

Author: Tubely Development Team
"""

import logging

from collections.abc import Awaitable, Callable
from pathlib import Path

from fastapi import UploadFile

from tubely.config import Settings
from tubely.models.video import Video, VideoCreate, VideoResponse
from tubely.services.local_assets import LocalAssetError, LocalAssetStore
from tubely.services.metadata_service import ProbeError, VideoProber, classify_aspect_ratio
from tubely.services.optimizer_service import OUTPUT_MEDIA_TYPE, OptimizeError, StreamOptimizer
from tubely.services.staging import UploadTooLargeError, remove_staged_file, stage_upload
from tubely.services.storage_service import StorageService, StorageServiceError
from tubely.services.video_repository import (
    VideoNotFoundError,
    VideoPersistenceError,
    VideoRepository,
)
from tubely.utils.asset_keys import (
    UnsupportedMediaTypeError,
    extension_for_media_type,
    generate_asset_key,
)
from tubely.utils.file_validator import (
    validate_thumbnail_media_type,
    validate_video_media_type,
)
from tubely.utils.logger import add_log_context


# Configure module logger
logger = logging.getLogger(__name__)

# Reads the multipart part once the caller is authorized; receives the size limit
PartReceiver = Callable[[int], Awaitable[UploadFile]]


class UploadServiceError(Exception):
    """Base exception for upload service errors."""


class FileValidationError(UploadServiceError):
    """Exception raised when the submitted upload is malformed, too large or of the wrong type."""


class AssetNotFoundError(UploadServiceError):
    """Exception raised when the target video does not exist."""


class AssetAccessDeniedError(UploadServiceError):
    """Exception raised when the caller does not own the target video."""


class MediaProcessingError(UploadServiceError):
    """Exception raised when probing or optimizing the staged video fails."""


class StorageError(UploadServiceError):
    """Exception raised when storing an asset or signing its URL fails."""


class PersistenceError(UploadServiceError):
    """Exception raised when the video record cannot be read or written."""


# Pipeline failures that are already classified and propagate unchanged
KNOWN_ERRORS = (
    FileValidationError,
    AssetNotFoundError,
    AssetAccessDeniedError,
    MediaProcessingError,
    StorageError,
    PersistenceError,
)


class UploadService:
    """
    Upload pipeline controller for thumbnails and videos.

    Every collaborator is injected, including the frozen Settings value, so the
    pipeline holds no hidden global state and tests can swap in fakes for the
    prober, optimizer, storage and repository.

    Attributes:
        settings: Immutable application configuration
        repository: Video record store
        storage: S3 gateway for video uploads and URL signing
        local_assets: Thumbnail store backing the /assets mount
        prober: Reports video frame dimensions
        optimizer: Produces fast-start copies of videos

    Example:
        ```python
        upload_service = UploadService(
            settings=settings,
            repository=VideoRepository(collection),
            storage=StorageService.from_settings(settings),
            local_assets=LocalAssetStore.from_settings(settings),
            prober=MetadataService(settings.ffprobe_path, settings.probe_timeout_seconds),
            optimizer=OptimizerService(settings.ffmpeg_path, settings.optimize_timeout_seconds),
        )
        response = await upload_service.upload_video(user_id, video_id, receive_part)
        ```
    """

    def __init__(
        self,
        settings: Settings,
        repository: VideoRepository,
        storage: StorageService,
        local_assets: LocalAssetStore,
        prober: VideoProber,
        optimizer: StreamOptimizer,
    ) -> None:
        self.settings = settings
        self.repository = repository
        self.storage = storage
        self.local_assets = local_assets
        self.prober = prober
        self.optimizer = optimizer
        self.logger = logging.getLogger(__name__)

    # =========================================================================
    # Record access
    # =========================================================================

    async def get_owned_video(self, owner_id: str, video_id: str) -> Video:
        """
        Load a video record and verify that ``owner_id`` owns it.

        Raises:
            AssetNotFoundError: If the video does not exist.
            AssetAccessDeniedError: If the video belongs to someone else.
            PersistenceError: If the record store fails.
        """
        try:
            video = await self.repository.get_video(video_id)
        except VideoNotFoundError as e:
            raise AssetNotFoundError(f"Video {video_id} not found") from e
        except VideoPersistenceError as e:
            raise PersistenceError(f"Could not load video {video_id}") from e

        if not video.is_owned_by(owner_id):
            self.logger.warning("User %s denied access to video %s", owner_id, video_id)
            raise AssetAccessDeniedError("You do not own this video")

        return video

    async def create_video(self, owner_id: str, payload: VideoCreate) -> VideoResponse:
        """Register a new draft video owned by ``owner_id``."""
        video = Video(user_id=owner_id, title=payload.title, description=payload.description)
        try:
            await self.repository.create_video(video)
        except VideoPersistenceError as e:
            raise PersistenceError("Could not create video") from e
        return await self.to_response(video)

    async def get_video(self, owner_id: str, video_id: str) -> VideoResponse:
        """Return one of the caller's videos with a freshly signed video URL."""
        video = await self.get_owned_video(owner_id, video_id)
        return await self.to_response(video)

    async def list_videos(self, owner_id: str) -> list[VideoResponse]:
        """Return the caller's videos, each with a freshly signed video URL."""
        try:
            videos = await self.repository.list_videos(owner_id)
        except VideoPersistenceError as e:
            raise PersistenceError("Could not list videos") from e
        return [await self.to_response(video) for video in videos]

    async def to_response(self, video: Video) -> VideoResponse:
        """
        Build the API response for a video, signing its stored reference.

        The stored ``"bucket,key"`` value is never returned to clients. When a
        video has been uploaded its reference is exchanged for a presigned URL
        valid for ``signed_url_expiration_seconds``.

        Raises:
            StorageError: If the stored reference is malformed or signing fails.
        """
        try:
            reference = video.video_reference
        except ValueError as e:
            self.logger.error("Video %s has a malformed stored reference", video.id)
            raise StorageError(f"Video {video.id} has an invalid stored reference") from e

        if reference is None:
            return VideoResponse.from_video(video)

        try:
            signed_url = await self.storage.generate_presigned_download_url(
                reference, self.settings.signed_url_expiration_seconds
            )
        except StorageServiceError as e:
            raise StorageError(f"Could not sign URL for video {video.id}") from e

        return VideoResponse.from_video(video, signed_url)

    # =========================================================================
    # Uploads
    # =========================================================================

    async def upload_thumbnail(
        self,
        owner_id: str,
        video_id: str,
        receive_part: PartReceiver,
    ) -> VideoResponse:
        """
        Store a thumbnail image for a video and return the updated record.

        The image must be image/jpeg or image/png and no larger than
        ``max_thumbnail_upload_mb``. It is written to the local assets directory
        under a random name and the record's ``thumbnail_url`` is set to its
        locally served URL.

        Args:
            owner_id: Authenticated caller
            video_id: Target video
            receive_part: Reads the ``thumbnail`` multipart part; only called
                after ownership has been verified

        Returns:
            VideoResponse: The updated video.

        Raises:
            AssetNotFoundError, AssetAccessDeniedError: Before any body is read.
            FileValidationError: Wrong media type, oversized or malformed body.
            StorageError: The asset could not be written.
            PersistenceError: The record could not be updated.
            UploadServiceError: Any other unexpected failure.
        """
        log = add_log_context(self.logger, video_id=video_id, owner_id=owner_id)
        video = await self.get_owned_video(owner_id, video_id)

        max_bytes = self.settings.max_thumbnail_upload_bytes
        part = await self._receive_part(receive_part, max_bytes, log)
        log.info("Receiving thumbnail upload, content_type=%s", part.content_type)

        try:
            validation = validate_thumbnail_media_type(part.content_type)
            if not validation["is_valid"]:
                log.warning("Rejected thumbnail: %s", validation["error"])
                raise FileValidationError(validation["error"])

            media_type = validation["media_type"]
            extension = self._extension_for(media_type)
            key = generate_asset_key(media_type)

            try:
                async with stage_upload(
                    part,
                    max_bytes=max_bytes,
                    suffix=extension,
                    directory=self.settings.upload_temp_dir,
                ) as staged_path:
                    video.thumbnail_url = await self.local_assets.save(staged_path, key)
            except UploadTooLargeError as e:
                raise FileValidationError(str(e)) from e
            except LocalAssetError as e:
                log.error("Thumbnail write failed: %s", str(e))
                raise StorageError("Could not store thumbnail") from e

            await self._persist(video)
            log.info("Thumbnail stored", extra={"asset_key": key})
            return await self.to_response(video)

        except KNOWN_ERRORS:
            raise
        except Exception as error:
            log.exception("Unexpected error during thumbnail upload")
            raise UploadServiceError(f"Thumbnail upload failed: {error!s}") from error
        finally:
            await part.close()

    async def upload_video(
        self,
        owner_id: str,
        video_id: str,
        receive_part: PartReceiver,
    ) -> VideoResponse:
        """
        Process and store a video file for a video record.

        The file is staged, probed for its dimensions, classified by aspect
        ratio, rewritten for fast start and uploaded to S3 under
        ``{aspect}/{random}.mp4`` as ``video/mp4``, the container the optimizer
        writes for every allowed input type. The record stores the unsigned
        ``"bucket,key"`` pair; the response carries a signed URL.

        Args:
            owner_id: Authenticated caller
            video_id: Target video
            receive_part: Reads the ``video`` multipart part; only called after
                ownership has been verified

        Returns:
            VideoResponse: The updated video with a signed video URL.

        Raises:
            AssetNotFoundError, AssetAccessDeniedError: Before any body is read.
            FileValidationError: Disallowed media type, oversized or malformed body.
            MediaProcessingError: ffprobe or ffmpeg failed.
            StorageError: The S3 upload or URL signing failed.
            PersistenceError: The record could not be updated.
            UploadServiceError: Any other unexpected failure.
        """
        log = add_log_context(self.logger, video_id=video_id, owner_id=owner_id)
        video = await self.get_owned_video(owner_id, video_id)

        max_bytes = self.settings.max_video_upload_bytes
        part = await self._receive_part(receive_part, max_bytes, log)
        log.info("Receiving video upload, content_type=%s", part.content_type)

        optimized_path: Path | None = None
        try:
            validation = validate_video_media_type(
                part.content_type, self.settings.allowed_video_types
            )
            if not validation["is_valid"]:
                log.warning("Rejected video: %s", validation["error"])
                raise FileValidationError(validation["error"])

            media_type = validation["media_type"]
            extension = self._extension_for(media_type)

            try:
                async with stage_upload(
                    part,
                    max_bytes=max_bytes,
                    suffix=extension,
                    directory=self.settings.upload_temp_dir,
                ) as staged_path:
                    try:
                        dimensions = await self.prober.probe(staged_path)
                    except ProbeError as e:
                        log.error("Probe failed: %s", str(e))
                        raise MediaProcessingError("Could not read video metadata") from e

                    aspect = classify_aspect_ratio(dimensions.width, dimensions.height)
                    log.debug(
                        "Classified %dx%d as %s",
                        dimensions.width,
                        dimensions.height,
                        aspect.value,
                    )

                    try:
                        optimized_path = await self.optimizer.optimize(staged_path)
                    except OptimizeError as e:
                        log.error("Fast-start rewrite failed: %s", str(e))
                        raise MediaProcessingError("Could not process video") from e

                    key = generate_asset_key(OUTPUT_MEDIA_TYPE, prefix=aspect.value)
                    try:
                        reference = await self.storage.upload_file(
                            self.settings.s3_bucket_name, key, optimized_path, OUTPUT_MEDIA_TYPE
                        )
                    except StorageServiceError as e:
                        raise StorageError("Could not upload video") from e
            except UploadTooLargeError as e:
                raise FileValidationError(str(e)) from e

            video.video_url = reference.to_storage_string()
            await self._persist(video)
            log.info(
                "Video stored",
                extra={"bucket": reference.bucket, "asset_key": reference.key},
            )
            return await self.to_response(video)

        except KNOWN_ERRORS:
            raise
        except Exception as error:
            log.exception("Unexpected error during video upload")
            raise UploadServiceError(f"Video upload failed: {error!s}") from error
        finally:
            remove_staged_file(optimized_path)
            await part.close()

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    async def _receive_part(
        receive_part: PartReceiver, max_bytes: int, log: logging.LoggerAdapter
    ) -> UploadFile:
        """Read the multipart part, classifying any failure of the read itself."""
        try:
            return await receive_part(max_bytes)
        except FileValidationError as e:
            log.warning("Rejected upload body: %s", str(e))
            raise
        except Exception as error:
            log.exception("Failed to read upload body")
            raise UploadServiceError(f"Could not read upload body: {error!s}") from error

    @staticmethod
    def _extension_for(media_type: str) -> str:
        try:
            return extension_for_media_type(media_type)
        except UnsupportedMediaTypeError as e:
            raise FileValidationError(str(e)) from e

    async def _persist(self, video: Video) -> None:
        try:
            await self.repository.update_video(video)
        except VideoNotFoundError as e:
            raise AssetNotFoundError(f"Video {video.id} not found") from e
        except VideoPersistenceError as e:
            raise PersistenceError(f"Could not update video {video.id}") from e


__all__ = [
    "AssetAccessDeniedError",
    "AssetNotFoundError",
    "FileValidationError",
    "MediaProcessingError",
    "PartReceiver",
    "PersistenceError",
    "StorageError",
    "UploadService",
    "UploadServiceError",
]
