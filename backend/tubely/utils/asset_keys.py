"""
Storage key derivation for uploaded media.

Keys are built from 32 bytes of ``secrets`` entropy rendered as unpadded
URL-safe base64 (always 43 characters) plus the canonical extension of the
declared media type, optionally under a classification prefix:

    landscape/3q2-7wQ...kXo.mp4
    Jf0k1...Zc.png
"""

import logging
import mimetypes
import secrets


logger = logging.getLogger(__name__)

# Bytes of entropy per key (256 bits)
KEY_ENTROPY_BYTES = 32

# Preferred extensions; mimetypes is consulted for anything not listed here
CANONICAL_EXTENSIONS: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/webm": ".webm",
    "video/x-matroska": ".mkv",
}


class UnsupportedMediaTypeError(ValueError):
    """Raised when a media type has no known file extension."""


def extension_for_media_type(media_type: str) -> str:
    """
    Return the canonical file extension (with leading dot) for a media type.

    Raises:
        UnsupportedMediaTypeError: If no extension is known for the type.
    """
    normalized = media_type.strip().lower()
    extension = CANONICAL_EXTENSIONS.get(normalized) or mimetypes.guess_extension(normalized)
    if not extension:
        raise UnsupportedMediaTypeError(f"Unsupported media type: {media_type}")
    return extension


def generate_asset_key(media_type: str, prefix: str = "") -> str:
    """
    Derive a collision-resistant storage key for an upload.

    Args:
        media_type: Declared media type of the upload, e.g. ``"video/mp4"``
        prefix: Optional classification prefix such as ``"landscape"``. Leading
                and trailing slashes are ignored.

    Returns:
        ``"{prefix}/{random}{ext}"`` when a prefix is given, else ``"{random}{ext}"``.

    Raises:
        UnsupportedMediaTypeError: If the media type has no known extension.

    Example:
        >>> generate_asset_key("video/mp4", "portrait").startswith("portrait/")
        True
    """
    extension = extension_for_media_type(media_type)
    name = secrets.token_urlsafe(KEY_ENTROPY_BYTES) + extension

    prefix = prefix.strip("/")
    key = f"{prefix}/{name}" if prefix else name
    logger.debug("Derived asset key %s for media type %s", key, media_type)
    return key
