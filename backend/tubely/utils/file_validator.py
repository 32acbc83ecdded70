"""
Upload Validation Utilities Module for Tubely

This module implements the input checks applied to multipart uploads before any
bytes are staged:
- Parsing of the declared media type from a part's Content-Type header
- Thumbnail media types restricted to exactly image/jpeg and image/png
- Video media types restricted to a configured allow-list of video/* types
- Per-endpoint maximum upload size enforcement

Validators return result dictionaries rather than raising, leaving the decision
of which exception to raise to the calling service.
"""

from typing import Any


# =============================================================================
# CONSTANTS - Sizes
# =============================================================================

# Bytes in a kilobyte (for size conversions and comparisons)
BYTES_PER_KB: int = 1024


# =============================================================================
# CONSTANTS - Allowed Media Types
# =============================================================================

# Thumbnails are served straight from disk, so only these two types are accepted
ALLOWED_THUMBNAIL_MEDIA_TYPES: frozenset[str] = frozenset({"image/jpeg", "image/png"})

# Default video allow-list; the fast-start rewrite always emits an MP4 container
DEFAULT_ALLOWED_VIDEO_MEDIA_TYPES: frozenset[str] = frozenset({"video/mp4"})


# =============================================================================
# MEDIA TYPE VALIDATION
# =============================================================================


def parse_media_type(content_type: str | None) -> str | None:
    """
    Extract the bare media type from a Content-Type header value.

    Parameters such as ``charset`` are discarded and the result is lower-cased.

    Args:
        content_type: Raw header value, e.g. ``"image/PNG; name=thumb.png"``

    Returns:
        The media type (``"image/png"``), or None when the header is missing
        or is not of the ``type/subtype`` form.

    Example:
        >>> parse_media_type("video/mp4; codecs=avc1")
        'video/mp4'
        >>> parse_media_type("garbage") is None
        True
    """
    if not content_type:
        return None

    media_type = content_type.split(";", 1)[0].strip().lower()
    main_type, separator, sub_type = media_type.partition("/")
    if not separator or not main_type or not sub_type or "/" in sub_type:
        return None
    return media_type


def validate_thumbnail_media_type(content_type: str | None) -> dict[str, Any]:
    """
    Validate the declared media type of a thumbnail upload.

    Args:
        content_type: Raw Content-Type header of the uploaded part

    Returns:
        Dictionary with validation results:
        - is_valid: True if the type is image/jpeg or image/png
        - error: Human-readable error message or None if valid
        - media_type: The parsed media type (None if unparseable)
    """
    media_type = parse_media_type(content_type)
    result: dict[str, Any] = {"is_valid": True, "error": None, "media_type": media_type}

    if media_type is None:
        result["is_valid"] = False
        result["error"] = "Invalid Content-Type for thumbnail"
        return result

    if media_type not in ALLOWED_THUMBNAIL_MEDIA_TYPES:
        result["is_valid"] = False
        result["error"] = (
            f"Unsupported thumbnail type '{media_type}'. "
            f"Allowed: {', '.join(sorted(ALLOWED_THUMBNAIL_MEDIA_TYPES))}"
        )

    return result


def validate_video_media_type(
    content_type: str | None,
    allowed_types: list[str] | frozenset[str] | None = None,
) -> dict[str, Any]:
    """
    Validate the declared media type of a video upload against an allow-list.

    Args:
        content_type: Raw Content-Type header of the uploaded part
        allowed_types: Accepted video media types. Defaults to
                       DEFAULT_ALLOWED_VIDEO_MEDIA_TYPES (video/mp4)

    Returns:
        Dictionary with validation results:
        - is_valid: True if the type is in the allow-list
        - error: Human-readable error message or None if valid
        - media_type: The parsed media type (None if unparseable)
    """
    allowed = frozenset(allowed_types) if allowed_types else DEFAULT_ALLOWED_VIDEO_MEDIA_TYPES
    media_type = parse_media_type(content_type)
    result: dict[str, Any] = {"is_valid": True, "error": None, "media_type": media_type}

    if media_type is None:
        result["is_valid"] = False
        result["error"] = "Invalid Content-Type for video"
        return result

    if media_type not in allowed:
        result["is_valid"] = False
        result["error"] = (
            f"Unsupported video type '{media_type}'. Allowed: {', '.join(sorted(allowed))}"
        )

    return result


# =============================================================================
# SIZE VALIDATION
# =============================================================================


def validate_file_size(file_size: int, max_size: int) -> dict[str, Any]:
    """
    Validate a file size against a maximum allowed limit.

    Args:
        file_size: Size of file in bytes
        max_size: Maximum size in bytes

    Returns:
        Dictionary with validation results:
        - is_valid: True if size is within limit, False otherwise
        - error: Human-readable error message or None if valid
        - file_size: The original file size that was validated
        - max_size: The maximum size that was used for validation

    Example:
        >>> validate_file_size(1024, 10 * 1024 * 1024)["is_valid"]
        True
        >>> validate_file_size(11 * 1024 * 1024, 10 * 1024 * 1024)["is_valid"]
        False
    """
    result: dict[str, Any] = {
        "is_valid": True,
        "error": None,
        "file_size": file_size,
        "max_size": max_size,
    }

    if file_size < 0:
        result["is_valid"] = False
        result["error"] = "Invalid file size: cannot be negative"
        return result

    if file_size > max_size:
        result["is_valid"] = False
        result["error"] = (
            f"File size ({format_file_size(file_size)}) exceeds maximum allowed "
            f"({format_file_size(max_size)})"
        )

    return result


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Human-readable size string (e.g., "1.50 KB", "10.00 MB")

    Example:
        >>> format_file_size(1536)
        '1.50 KB'
        >>> format_file_size(1048576)
        '1.00 MB'
    """
    if size_bytes < 0:
        return "Invalid size"

    bytes_per_mb = BYTES_PER_KB * BYTES_PER_KB
    bytes_per_gb = bytes_per_mb * BYTES_PER_KB

    if size_bytes < BYTES_PER_KB:
        return f"{size_bytes} B"
    if size_bytes < bytes_per_mb:
        return f"{size_bytes / BYTES_PER_KB:.2f} KB"
    if size_bytes < bytes_per_gb:
        return f"{size_bytes / bytes_per_mb:.2f} MB"
    return f"{size_bytes / bytes_per_gb:.2f} GB"
