"""
Temporary staging of uploaded files for Tubely.

An upload is streamed chunk by chunk into a randomly named file created with
``tempfile.mkstemp`` and exposed to the caller through an async context manager.
The staged file belongs to the block that opened it and is removed when the block
exits, whether it completes, raises, or is cancelled.

Example:
    ```python
    async with stage_upload(upload, max_bytes=settings.max_video_upload_bytes,
                            suffix=".mp4") as staged_path:
        dimensions = await prober.probe(staged_path)
    # staged_path no longer exists here
    ```
"""

import logging
import os
import tempfile

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Protocol

import aiofiles

from tubely.utils.file_validator import format_file_size, validate_file_size


# Configure module logger
logger = logging.getLogger(__name__)

# Read size for streaming an upload to disk
CHUNK_SIZE = 1024 * 1024  # 1 MB

# Prefix for every staged file name
TEMP_FILE_PREFIX = "tubely-upload-"


class UploadTooLargeError(Exception):
    """Raised when an upload exceeds the size allowed for its endpoint."""


class UploadSource(Protocol):
    """The subset of ``fastapi.UploadFile`` that staging reads from."""

    size: int | None

    async def read(self, size: int = -1) -> bytes: ...


def create_staging_path(suffix: str = "", directory: str | None = None) -> Path:
    """
    Create an empty, randomly named file to stage an upload into.

    Args:
        suffix: File name suffix, normally the media type's extension
        directory: Parent directory (None uses the system temp directory)

    Returns:
        Path: Path of the newly created file.
    """
    fd, name = tempfile.mkstemp(prefix=TEMP_FILE_PREFIX, suffix=suffix, dir=directory)
    os.close(fd)
    return Path(name)


def remove_staged_file(path: Path | None) -> None:
    """
    Remove a staged file if it exists, logging instead of raising on failure.

    Safe to call with None or with a path that was never created.
    """
    if path is None:
        return

    try:
        path.unlink(missing_ok=True)
        logger.debug("Cleaned up staged file: %s", path)
    except OSError as cleanup_error:
        logger.warning(
            "Failed to clean up staged file '%s': %s",
            path,
            str(cleanup_error),
        )


@asynccontextmanager
async def stage_upload(
    upload: UploadSource,
    *,
    max_bytes: int,
    suffix: str = "",
    directory: str | None = None,
) -> AsyncIterator[Path]:
    """
    Stream an upload into a temporary file and yield its path.

    The size limit is checked against the declared size before anything is
    written, and again against the running byte count while streaming, so an
    understated declared size cannot be used to exceed it.

    Args:
        upload: The uploaded part to read from
        max_bytes: Largest accepted upload in bytes
        suffix: Suffix for the staged file name (e.g. ``".mp4"``)
        directory: Directory for the staged file (None for the system default)

    Yields:
        Path: Location of the fully written staged file.

    Raises:
        UploadTooLargeError: If the upload is larger than ``max_bytes``.
        OSError: If the staged file cannot be created or written.
    """
    declared_size = getattr(upload, "size", None)
    if declared_size is not None:
        size_check = validate_file_size(declared_size, max_bytes)
        if not size_check["is_valid"]:
            raise UploadTooLargeError(size_check["error"])

    staged_path = create_staging_path(suffix=suffix, directory=directory)
    try:
        written = 0
        async with aiofiles.open(staged_path, "wb") as staged_file:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise UploadTooLargeError(
                        f"Upload exceeds maximum allowed size ({format_file_size(max_bytes)})"
                    )
                await staged_file.write(chunk)

        logger.debug("Staged %d bytes to %s", written, staged_path)
        yield staged_path
    finally:
        remove_staged_file(staged_path)
