"""
Tubely MongoDB Database Client Module

This module provides async MongoDB connection management for Tubely using Motor
(the async MongoDB driver). It implements:
- Connection pooling with configurable pool size
- Health checks using the MongoDB ping command
- Collection accessor for video records
- Index creation for the lookups the API performs
- Startup/shutdown lifecycle management for FastAPI integration
- Retry logic with exponential backoff for connection reliability
"""

import asyncio
import logging

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from tubely.config import Settings, get_settings


# Configure module logger for structured logging
logger = logging.getLogger(__name__)

# Collection name constants for consistency
VIDEOS_COLLECTION = "videos"

# Connection retry policy
MAX_CONNECT_RETRIES = 3
INITIAL_RETRY_DELAY_SECONDS = 1.0


class DatabaseClient:
    """
    Async MongoDB client wrapper with connection pooling and lifecycle management.

    Attributes:
        _mongodb_uri: MongoDB connection URI
        _db_name: Database name to connect to
        _min_pool_size: Minimum number of connections in pool
        _max_pool_size: Maximum number of connections in pool
        _client: Motor async MongoDB client instance
        _database: Motor async database instance

    Example usage:
        ```python
        client = DatabaseClient(settings)
        if await client.connect():
            videos = client.get_videos_collection()
        ```
    """

    def __init__(self, settings: Settings) -> None:
        """
        Initialize DatabaseClient with configuration settings.

        Args:
            settings: Settings instance containing mongodb_uri, mongodb_db_name,
                     mongodb_min_pool_size and mongodb_max_pool_size.
        """
        self._mongodb_uri = settings.mongodb_uri
        self._db_name = settings.mongodb_db_name
        self._min_pool_size = settings.mongodb_min_pool_size
        self._max_pool_size = settings.mongodb_max_pool_size
        self._client: AsyncIOMotorClient | None = None
        self._database: AsyncIOMotorDatabase | None = None

    async def connect(self) -> bool:
        """
        Establish the MongoDB connection, retrying with exponential backoff.

        Makes up to three attempts (waiting 1s, then 2s between them) and
        verifies each with a ping.

        Returns:
            bool: True if connection successful, False after all retries fail.
        """
        retry_delay = INITIAL_RETRY_DELAY_SECONDS

        for attempt in range(1, MAX_CONNECT_RETRIES + 1):
            try:
                logger.info(
                    "Attempting MongoDB connection (attempt %d/%d) to %s...",
                    attempt,
                    MAX_CONNECT_RETRIES,
                    self._db_name,
                )

                self._client = AsyncIOMotorClient(
                    self._mongodb_uri,
                    minPoolSize=self._min_pool_size,
                    maxPoolSize=self._max_pool_size,
                    serverSelectionTimeoutMS=5000,
                )
                self._database = self._client[self._db_name]
                await self._client.admin.command("ping")

                logger.info("Successfully connected to MongoDB database: %s", self._db_name)
                return True

            except (ServerSelectionTimeoutError, ConnectionFailure):
                logger.exception(
                    "MongoDB connection failure (attempt %d/%d)", attempt, MAX_CONNECT_RETRIES
                )
                if attempt < MAX_CONNECT_RETRIES:
                    logger.warning("Retrying in %.1f seconds...", retry_delay)
                    await asyncio.sleep(retry_delay)
                    retry_delay *= 2

        logger.error(
            "Failed to connect to MongoDB after %d attempts. "
            "Check connection URI and server availability.",
            MAX_CONNECT_RETRIES,
        )
        return False

    async def close(self) -> None:
        """Close the MongoDB connection. Safe to call when not connected."""
        if self._client is None:
            logger.warning("MongoDB close called but no active connection exists")
            return

        self._client.close()
        self._client = None
        self._database = None
        logger.info("MongoDB connection closed for database: %s", self._db_name)

    async def ping(self) -> bool:
        """
        Health check using MongoDB admin ping command.

        Returns:
            bool: True if ping successful, False on failure.
        """
        if self._client is None:
            logger.warning("MongoDB ping failed: No active connection")
            return False

        try:
            await self._client.admin.command("ping")
            return True
        except PyMongoError:
            logger.exception("MongoDB ping failed")
            return False

    def get_database(self) -> AsyncIOMotorDatabase:
        """
        Get the database instance for direct operations.

        Raises:
            RuntimeError: If not connected to MongoDB.
        """
        if self._database is None:
            raise RuntimeError(
                "MongoDB database not available. Call connect() first or check connection status."
            )
        return self._database

    def get_videos_collection(self) -> AsyncIOMotorCollection:
        """
        Get the videos collection.

        Each document holds one video record: id, user_id, title, description,
        thumbnail_url, video_url (stored as "bucket,key") and timestamps.

        Raises:
            RuntimeError: If not connected to MongoDB.
        """
        return self.get_database()[VIDEOS_COLLECTION]

    async def create_indexes(self) -> None:
        """
        Create indexes for the videos collection.

        - id (unique): record lookups by identity
        - user_id + created_at: listing a user's videos newest first
        """
        videos = self.get_videos_collection()
        try:
            await videos.create_index([("id", ASCENDING)], unique=True, name="id_unique")
            await videos.create_index(
                [("user_id", ASCENDING), ("created_at", DESCENDING)],
                name="user_id_created_at",
            )
            logger.info("MongoDB indexes created for collection: %s", VIDEOS_COLLECTION)
        except PyMongoError:
            logger.exception("Error creating MongoDB indexes")
            raise


# Container class for database client singleton to avoid global statements
class _DatabaseClientContainer:
    """Container for database client singleton to avoid global statements."""

    client: DatabaseClient | None = None


_container = _DatabaseClientContainer()


async def init_db(settings: Settings | None = None) -> DatabaseClient:
    """
    Initialize the global database client singleton.

    Creates a DatabaseClient, connects to MongoDB and creates indexes. Called
    during FastAPI application startup.

    Args:
        settings: Optional Settings instance. Defaults to get_settings().

    Returns:
        DatabaseClient: The initialized database client instance.

    Raises:
        RuntimeError: If connection to MongoDB fails after all retries.
    """
    if _container.client is not None:
        logger.warning("Database client already initialized, returning existing instance")
        return _container.client

    client = DatabaseClient(settings or get_settings())
    if not await client.connect():
        raise RuntimeError(
            "Failed to establish MongoDB connection. "
            "Check mongodb_uri configuration and server availability."
        )

    await client.create_indexes()
    _container.client = client
    logger.info("MongoDB database client initialization complete")
    return client


async def close_db() -> None:
    """Close the global database client connection during application shutdown."""
    if _container.client is None:
        logger.warning("close_db called but no database client exists")
        return

    await _container.client.close()
    _container.client = None


def get_db_client() -> DatabaseClient:
    """
    Get the global database client singleton instance.

    Raises:
        RuntimeError: If database client has not been initialized.
    """
    if _container.client is None:
        raise RuntimeError(
            "Database client not initialized. Call init_db() first during application startup."
        )
    return _container.client
