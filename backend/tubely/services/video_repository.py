"""
MongoDB-backed record store for Tubely video records.

Video documents live in the ``videos`` collection keyed by their ``id`` field.
The repository converts between documents and the Video model and translates
driver failures into repository exceptions.
"""

import logging

from typing import Any

from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from tubely.models.video import Video


# Configure module logger
logger = logging.getLogger(__name__)

# Newest first when listing a user's videos
DEFAULT_LIST_LIMIT = 100


class VideoRepositoryError(Exception):
    """Base exception for video record store errors."""


class VideoNotFoundError(VideoRepositoryError):
    """Raised when no video record exists for an identity."""


class VideoPersistenceError(VideoRepositoryError):
    """Raised when a video record cannot be read or written."""


class VideoRepository:
    """
    Async CRUD access to video records.

    Attributes:
        collection: Motor collection holding video documents

    Example:
        ```python
        repository = VideoRepository(get_db_client().get_videos_collection())
        video = await repository.get_video(video_id)
        video.thumbnail_url = url
        await repository.update_video(video)
        ```
    """

    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self.collection = collection

    @staticmethod
    def _to_video(document: dict[str, Any]) -> Video:
        document = {k: v for k, v in document.items() if k != "_id"}
        try:
            return Video.model_validate(document)
        except ValidationError as e:
            raise VideoPersistenceError(
                f"Stored video document {document.get('id')} is invalid: {e}"
            ) from e

    async def create_video(self, video: Video) -> Video:
        """
        Insert a new video record.

        Raises:
            VideoPersistenceError: If the insert fails.
        """
        try:
            await self.collection.insert_one(video.model_dump())
        except PyMongoError as e:
            logger.exception("Failed to insert video %s", video.id)
            raise VideoPersistenceError(f"Failed to create video {video.id}") from e

        logger.info("Created video record %s for user %s", video.id, video.user_id)
        return video

    async def get_video(self, video_id: str) -> Video:
        """
        Fetch a video record by identity.

        Raises:
            VideoNotFoundError: If no record has this identity.
            VideoPersistenceError: If the lookup fails.
        """
        try:
            document = await self.collection.find_one({"id": video_id})
        except PyMongoError as e:
            logger.exception("Failed to load video %s", video_id)
            raise VideoPersistenceError(f"Failed to load video {video_id}") from e

        if document is None:
            raise VideoNotFoundError(f"Video {video_id} not found")
        return self._to_video(document)

    async def list_videos(self, user_id: str, limit: int = DEFAULT_LIST_LIMIT) -> list[Video]:
        """
        List a user's videos, newest first.

        Raises:
            VideoPersistenceError: If the query fails.
        """
        try:
            cursor = self.collection.find({"user_id": user_id}).sort("created_at", -1).limit(limit)
            documents = await cursor.to_list(length=limit)
        except PyMongoError as e:
            logger.exception("Failed to list videos for user %s", user_id)
            raise VideoPersistenceError(f"Failed to list videos for user {user_id}") from e

        return [self._to_video(document) for document in documents]

    async def update_video(self, video: Video) -> Video:
        """
        Persist the mutable fields of a video record.

        ``updated_at`` is refreshed before writing. Concurrent updates of the
        same record are not coordinated; the last write wins.

        Raises:
            VideoNotFoundError: If the record no longer exists.
            VideoPersistenceError: If the write fails.
        """
        video.touch()
        changes = {
            "title": video.title,
            "description": video.description,
            "thumbnail_url": video.thumbnail_url,
            "video_url": video.video_url,
            "updated_at": video.updated_at,
        }

        try:
            result = await self.collection.update_one({"id": video.id}, {"$set": changes})
        except PyMongoError as e:
            logger.exception("Failed to update video %s", video.id)
            raise VideoPersistenceError(f"Failed to update video {video.id}") from e

        if result.matched_count == 0:
            raise VideoNotFoundError(f"Video {video.id} not found")

        logger.debug("Updated video record %s", video.id)
        return video
