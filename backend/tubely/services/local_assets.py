"""
Local on-disk asset storage for Tubely thumbnails.

Thumbnails are written beneath ``settings.assets_root`` and served by the
application's ``/assets`` static mount, so their public URL is a direct mapping
of the key: ``http://{public_host}:{port}/assets/{key}``.
"""

import logging
import os

from pathlib import Path

import aiofiles

from tubely.config import Settings


logger = logging.getLogger(__name__)

# Copy buffer size
CHUNK_SIZE = 1024 * 1024  # 1 MB

# Mount point of the static assets route
ASSETS_URL_PATH = "/assets"


class LocalAssetError(Exception):
    """Raised when an asset cannot be written to local storage."""


def ensure_assets_dir(assets_root: str) -> Path:
    """
    Create the assets directory if it does not exist.

    Returns:
        Path: The assets directory.
    """
    path = Path(assets_root)
    path.mkdir(mode=0o755, parents=True, exist_ok=True)
    return path


class LocalAssetStore:
    """
    Writes staged files into the served assets directory.

    Attributes:
        root: Directory that backs the ``/assets`` static mount
        base_url: Scheme, host and port that clients use to reach this server
    """

    def __init__(self, assets_root: str, base_url: str) -> None:
        self.root = Path(assets_root)
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalAssetStore":
        return cls(settings.assets_root, settings.public_base_url)

    def asset_path(self, key: str) -> Path:
        """
        Resolve a key to its location under the assets root.

        Raises:
            LocalAssetError: If the key is empty, nested, or escapes the root.
        """
        if not key or key in {".", ".."} or "/" in key or "\\" in key or os.sep in key:
            raise LocalAssetError(f"Invalid asset key: {key!r}")
        return self.root / key

    def asset_url(self, key: str) -> str:
        """Public URL for an asset key, e.g. http://localhost:8091/assets/abc.png."""
        return f"{self.base_url}{ASSETS_URL_PATH}/{key}"

    async def save(self, source_path: Path, key: str) -> str:
        """
        Copy a staged file into the assets directory under ``key``.

        Args:
            source_path: Staged file to copy
            key: File name to store it under

        Returns:
            str: The public URL of the stored asset.

        Raises:
            LocalAssetError: If the key is invalid or the copy fails.
        """
        destination = self.asset_path(key)

        try:
            ensure_assets_dir(str(self.root))
            async with aiofiles.open(source_path, "rb") as source, aiofiles.open(
                destination, "wb"
            ) as target:
                while True:
                    chunk = await source.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    await target.write(chunk)
        except OSError as e:
            logger.error("Failed to write asset %s: %s", destination, str(e))
            try:
                destination.unlink(missing_ok=True)
            except OSError:
                logger.warning("Could not remove partial asset %s", destination)
            raise LocalAssetError(f"Failed to write asset {key}: {e!s}") from e

        logger.info("Stored asset %s", destination)
        return self.asset_url(key)
