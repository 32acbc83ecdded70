"""
S3-compatible object storage gateway for Tubely.

This module wraps the boto3 operations the upload pipeline needs:
- Uploading a staged file to ``{bucket, key}`` with its Content-Type
- Minting a time-limited presigned GET URL for a stored ObjectReference

Works against AWS S3 or any S3-compatible endpoint such as MinIO. boto3 calls
are blocking, so every operation is run in a worker thread through
``async_wrap`` to keep the event loop responsive.

Presigned URLs are computed locally from the configured credentials: signing
needs no network round trip and the resulting URL carries everything S3 needs
to validate it.
"""

import asyncio
import logging

from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

import boto3

from boto3.exceptions import S3UploadFailedError
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from tubely.config import Settings
from tubely.models.video import ObjectReference


# Set up module-level logger for tracking S3 operations
logger = logging.getLogger(__name__)

# Type variable for generic async wrapper
T = TypeVar("T")

# Default presigned URL expiration time (60 minutes = 3600 seconds)
DEFAULT_PRESIGNED_URL_EXPIRATION = 3600

# SigV4 presigned URLs cannot outlive seven days
MAX_PRESIGNED_URL_EXPIRATION = 7 * 24 * 3600


def async_wrap(func: Callable[..., T]) -> Callable[..., "asyncio.Future[T]"]:
    """
    Decorator to wrap synchronous boto3 operations for async execution.

    Uses asyncio.to_thread to run blocking boto3 operations in a separate
    thread pool, preventing event loop blocking during S3 operations.

    Args:
        func: The synchronous function to wrap

    Returns:
        An async function that executes the original in a thread pool
    """
    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(func, *args, **kwargs)
    return wrapper


class StorageServiceError(Exception):
    """Base exception for storage service errors."""
    pass


class StorageUploadError(StorageServiceError):
    """Raised when an object cannot be written to storage."""
    pass


class StorageSigningError(StorageServiceError):
    """Raised when a presigned URL cannot be generated."""
    pass


class StorageService:
    """
    S3-compatible storage gateway for uploaded videos.

    Attributes:
        bucket_name: Default bucket for uploads
        endpoint_url: The S3-compatible endpoint URL (None for AWS S3)
        region_name: AWS region name

    Example:
        >>> service = StorageService(
        ...     bucket_name="tubely-videos",
        ...     endpoint_url="http://localhost:9000",  # MinIO
        ...     access_key="minioadmin",
        ...     secret_key="minioadmin",
        ... )
        >>> ref = await service.upload_file("tubely-videos", "landscape/a.mp4",
        ...                                 Path("/tmp/a.mp4"), "video/mp4")
        >>> url = await service.generate_presigned_download_url(ref, 3600)
    """

    def __init__(
        self,
        bucket_name: str,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        region_name: str = "us-east-1",
    ) -> None:
        """
        Initialize the S3-compatible storage gateway.

        Args:
            bucket_name: Default bucket for uploads
            endpoint_url: S3-compatible endpoint URL (None for AWS S3 default).
                          Use http://localhost:9000 for MinIO development
            access_key: AWS access key ID or MinIO access key
            secret_key: AWS secret access key or MinIO secret key
            region_name: AWS region (default: us-east-1)

        Raises:
            StorageServiceError: If the boto3 client cannot be created
        """
        self.bucket_name = bucket_name
        self.endpoint_url = endpoint_url
        self.region_name = region_name

        logger.info(
            "Initializing StorageService with bucket=%s, endpoint=%s",
            bucket_name,
            endpoint_url or "AWS S3 default",
        )

        # MinIO and most S3-compatible servers only support path-style addressing
        s3_options: Dict[str, Any] = {}
        if endpoint_url:
            s3_options["addressing_style"] = "path"

        client_config: Dict[str, Any] = {
            "service_name": "s3",
            "region_name": region_name,
            "config": Config(
                signature_version="s3v4",
                s3=s3_options,
                retries={"max_attempts": 3, "mode": "standard"},
            ),
        }
        if endpoint_url:
            client_config["endpoint_url"] = endpoint_url

        # Credentials are optional; boto3 falls back to its default chain
        if access_key and secret_key:
            client_config["aws_access_key_id"] = access_key
            client_config["aws_secret_access_key"] = secret_key

        try:
            self._client = boto3.client(**client_config)
        except BotoCoreError as e:
            error_msg = f"Failed to initialize S3 client: {e!s}"
            logger.error(error_msg)
            raise StorageServiceError(error_msg) from e

        logger.info("StorageService S3 client initialized successfully")

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageService":
        """Build a StorageService from application settings."""
        return cls(
            bucket_name=settings.s3_bucket_name,
            endpoint_url=settings.s3_endpoint_url,
            access_key=settings.s3_access_key_id,
            secret_key=settings.s3_secret_access_key,
            region_name=settings.s3_region,
        )

    async def upload_file(
        self,
        bucket_name: str,
        object_key: str,
        file_path: Path,
        content_type: str,
    ) -> ObjectReference:
        """
        Upload a local file to ``{bucket_name, object_key}``.

        Re-uploading to the same key overwrites the previous object, so a
        retried call leaves exactly one object behind.

        Args:
            bucket_name: Target bucket
            object_key: Target key
            file_path: Local file to upload
            content_type: Content-Type stored with the object

        Returns:
            ObjectReference: The bucket/key pair the object was written to.

        Raises:
            StorageUploadError: If the upload fails for any reason.
        """
        logger.info("Uploading %s to bucket=%s, key=%s", file_path, bucket_name, object_key)

        @async_wrap
        def _upload() -> None:
            self._client.upload_file(
                str(file_path),
                bucket_name,
                object_key,
                ExtraArgs={"ContentType": content_type},
            )

        try:
            await _upload()
        except (ClientError, BotoCoreError, S3UploadFailedError, OSError) as e:
            logger.error(
                "Failed to upload %s to %s/%s: %s",
                file_path,
                bucket_name,
                object_key,
                str(e),
            )
            raise StorageUploadError(f"Failed to upload object {object_key}: {e!s}") from e

        logger.info("Successfully uploaded object %s/%s", bucket_name, object_key)
        return ObjectReference(bucket=bucket_name, key=object_key)

    async def generate_presigned_download_url(
        self,
        reference: ObjectReference,
        expiration: int = DEFAULT_PRESIGNED_URL_EXPIRATION,
    ) -> str:
        """
        Generate a presigned GET URL for a stored object.

        The URL is bound to the reference's bucket and key and is valid for
        ``expiration`` seconds from now. Nothing is persisted server side.

        Args:
            reference: Bucket/key of the object to expose
            expiration: URL lifetime in seconds (default: 3600 = 60 minutes)

        Returns:
            str: The presigned URL.

        Raises:
            ValueError: If ``expiration`` is outside 1..604800 seconds
            StorageSigningError: If URL generation fails
        """
        if expiration <= 0 or expiration > MAX_PRESIGNED_URL_EXPIRATION:
            raise ValueError(
                f"expiration must be between 1 and {MAX_PRESIGNED_URL_EXPIRATION} seconds"
            )

        logger.debug(
            "Generating presigned download URL for %s/%s, expiration=%ds",
            reference.bucket,
            reference.key,
            expiration,
        )

        @async_wrap
        def _generate() -> str:
            return self._client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": reference.bucket, "Key": reference.key},
                ExpiresIn=expiration,
                HttpMethod="GET",
            )

        try:
            return await _generate()
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Failed to sign URL for %s/%s: %s",
                reference.bucket,
                reference.key,
                str(e),
            )
            raise StorageSigningError(
                f"Failed to sign URL for object {reference.key}: {e!s}"
            ) from e
