"""
Models Package for Tubely.

This package provides the Pydantic models for the Tubely backend: the Video
record stored in MongoDB, the ObjectReference addressing an uploaded object,
probed Dimensions with their AspectClass, and the API request/response schemas.

Example Usage:
    ```python
    from tubely.models import ObjectReference, Video

    video = Video(user_id="user123", title="My clip")
    video.video_url = ObjectReference(bucket="tubely-videos", key="other/abc.mp4").to_storage_string()
    ```
"""

from tubely.models.video import (
    AspectClass,
    Dimensions,
    ObjectReference,
    Video,
    VideoCreate,
    VideoResponse,
)


__all__ = [
    "AspectClass",
    "Dimensions",
    "ObjectReference",
    "Video",
    "VideoCreate",
    "VideoResponse",
]
