"""
Video Pydantic models for Tubely.

This module defines the Video record persisted in MongoDB, the ObjectReference
that addresses an uploaded object in S3-compatible storage, probed frame
Dimensions with their AspectClass, and the request/response schemas used by the
videos API.

A video's stored reference is never a URL. It is persisted as the single string
``"{bucket},{key}"`` and turned into a signed URL only when a response is built.
"""

import uuid

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# ENUMS
# =============================================================================


class AspectClass(str, Enum):
    """
    Aspect ratio classification of a probed video.

    The value doubles as the storage key prefix for uploaded videos:
    - LANDSCAPE: 16:9 frames, stored under ``landscape/``
    - PORTRAIT: 9:16 frames, stored under ``portrait/``
    - OTHER: anything else, stored under ``other/``
    """

    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    OTHER = "other"


# =============================================================================
# VALUE OBJECTS
# =============================================================================


class Dimensions(BaseModel):
    """Width and height in pixels of a video's primary stream."""

    width: int = Field(..., gt=0, description="Frame width in pixels")
    height: int = Field(..., gt=0, description="Frame height in pixels")

    model_config = ConfigDict(frozen=True)


class ObjectReference(BaseModel):
    """
    Durable address of an uploaded object: a bucket and a key.

    The persisted form is ``"{bucket},{key}"``. S3 bucket names cannot contain
    a comma, so splitting on the first comma always recovers the original pair
    even when the key itself contains commas.

    Example:
        ```python
        ref = ObjectReference(bucket="tubely-videos", key="landscape/abc.mp4")
        stored = ref.to_storage_string()  # "tubely-videos,landscape/abc.mp4"
        assert ObjectReference.from_storage_string(stored) == ref
        ```
    """

    bucket: str = Field(..., min_length=1, max_length=63, description="Bucket name")
    key: str = Field(..., min_length=1, max_length=1024, description="Object key")

    model_config = ConfigDict(frozen=True)

    @field_validator("bucket")
    @classmethod
    def validate_bucket(cls, v: str) -> str:
        """Reject bucket names that would break the stored encoding."""
        if "," in v:
            raise ValueError("Bucket name must not contain a comma")
        return v

    def to_storage_string(self) -> str:
        """Encode as the ``"{bucket},{key}"`` string stored on the video record."""
        return f"{self.bucket},{self.key}"

    @classmethod
    def from_storage_string(cls, value: str) -> "ObjectReference":
        """
        Decode a stored ``"{bucket},{key}"`` string.

        Args:
            value: The string persisted in the video record's ``video_url`` field.

        Returns:
            ObjectReference: The decoded bucket/key pair.

        Raises:
            ValueError: If the value has no comma or an empty bucket or key.
        """
        bucket, separator, key = value.partition(",")
        if not separator or not bucket or not key:
            raise ValueError(f"Invalid stored object reference: {value!r}")
        return cls(bucket=bucket, key=key)


# =============================================================================
# MODELS
# =============================================================================


class Video(BaseModel):
    """
    Pydantic model for a video record in Tubely.

    Records are created as drafts by their owner and then mutated by the upload
    pipeline: a thumbnail upload sets ``thumbnail_url`` and a video upload sets
    ``video_url`` to the stored object reference.

    Attributes:
        id: Opaque unique identity (UUID string)
        user_id: Identity of the owning user
        title: Display title
        description: Optional free-form description
        thumbnail_url: Locally served thumbnail URL, if uploaded
        video_url: Stored ``"{bucket},{key}"`` reference, if uploaded (never a URL)
        created_at: Record creation timestamp (UTC)
        updated_at: Last modification timestamp (UTC)
    """

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()), description="Unique video identity"
    )

    user_id: str = Field(..., min_length=1, max_length=100, description="Owning user's ID")

    title: str = Field(..., min_length=1, max_length=200, description="Video title")

    description: str | None = Field(default=None, max_length=5000, description="Description")

    thumbnail_url: str | None = Field(default=None, description="Locally served thumbnail URL")

    video_url: str | None = Field(
        default=None, description="Stored object reference in the form 'bucket,key'"
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Creation timestamp (UTC)"
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Last modification timestamp (UTC)"
    )

    model_config = ConfigDict(
        validate_assignment=True,
        json_schema_extra={
            "example": {
                "id": "5b2f5d1e-8a7c-4f5e-9d53-0c7e3a7f9a10",
                "user_id": "user123",
                "title": "Boot.dev beats",
                "description": "A lofi mix",
                "thumbnail_url": "http://localhost:8091/assets/q3r...Zk.png",
                "video_url": "tubely-videos,landscape/6c1f...9e.mp4",
            }
        },
    )

    @property
    def video_reference(self) -> ObjectReference | None:
        """Decoded stored reference, or None when no video has been uploaded."""
        if not self.video_url:
            return None
        return ObjectReference.from_storage_string(self.video_url)

    def is_owned_by(self, user_id: str) -> bool:
        return self.user_id == user_id

    def touch(self) -> None:
        """Refresh ``updated_at`` before persisting a modification."""
        self.updated_at = datetime.now(UTC)


class VideoCreate(BaseModel):
    """Schema for creating a draft video record."""

    title: str = Field(..., min_length=1, max_length=200, description="Video title")
    description: str | None = Field(default=None, max_length=5000, description="Description")


class VideoResponse(BaseModel):
    """
    Schema for video API responses.

    Mirrors the Video record except that ``video_url`` holds a time-limited
    signed URL instead of the stored bucket/key pair.
    """

    id: str = Field(..., description="Video ID")
    user_id: str = Field(..., description="Owner user ID")
    title: str = Field(..., description="Video title")
    description: str | None = Field(None, description="Description")
    thumbnail_url: str | None = Field(None, description="Thumbnail URL")
    video_url: str | None = Field(None, description="Signed, time-limited video URL")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    @classmethod
    def from_video(cls, video: Video, signed_video_url: str | None = None) -> "VideoResponse":
        """
        Create response from a Video record.

        Args:
            video: Video record as stored
            signed_video_url: Signed URL for the stored reference, if any

        Returns:
            VideoResponse for API
        """
        return cls(
            id=video.id,
            user_id=video.user_id,
            title=video.title,
            description=video.description,
            thumbnail_url=video.thumbnail_url,
            video_url=signed_video_url,
            created_at=video.created_at,
            updated_at=video.updated_at,
        )


__all__ = [
    "AspectClass",
    "Dimensions",
    "ObjectReference",
    "Video",
    "VideoCreate",
    "VideoResponse",
]
