#!/usr/bin/env python3
"""
Test Data Generation Script for Tubely.

Inserts draft video records for a user into MongoDB and prints a bearer token
for that user, so the upload endpoints can be exercised by hand:

    python scripts/create_test_data.py --user-id alice --count 2
    curl -H "Authorization: Bearer <token>" \\
         -F "video=@clip.mp4;type=video/mp4" \\
         http://localhost:8091/api/v1/videos/<video id>/video

Usage:
    python create_test_data.py [options]

Options:
    --user-id ID    Owner of the generated videos (default: random UUID)
    --count N       Number of draft videos to create (default: 3)
    --clean         Delete the user's existing videos first
    --seed N        Random seed for reproducible titles
    --verbose       Display detailed operation logs

Connection settings (MONGODB_URI, MONGODB_DB_NAME, SECRET_KEY) are read from
the environment or .env, the same way the API server reads them.
"""

import argparse
import sys
import time
import uuid

from datetime import datetime, timezone
from typing import List, Optional

from dotenv import load_dotenv
from faker import Faker
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from tubely.config import Settings
from tubely.core.auth import create_access_token
from tubely.core.database import VIDEOS_COLLECTION
from tubely.models.video import Video


CONNECTION_TIMEOUT_MS = 5000
DEFAULT_VIDEO_COUNT = 3


class TestDataGenerator:
    """
    Creates draft videos for one user and mints a token for them.
    """

    def __init__(self, settings: Settings, seed: Optional[int] = None, verbose: bool = False):
        self.settings = settings
        self.verbose = verbose
        self.client: Optional[MongoClient] = None
        self.db: Optional[Database] = None

        self.fake = Faker()
        if seed is not None:
            Faker.seed(seed)

    def log(self, message: str, level: str = "INFO") -> None:
        """
        Log a message with timestamp.

        Args:
            message: Message to log.
            level: Log level (INFO, WARNING, ERROR, DEBUG).
        """
        if level == "DEBUG" and not self.verbose:
            return
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        print(f"[{timestamp}] [{level}] {message}")

    def connect(self) -> bool:
        """
        Establish connection to MongoDB server with retry logic.

        Returns:
            True if connection successful, False otherwise.
        """
        max_retries = 3
        retry_delay = 2

        for attempt in range(max_retries):
            try:
                self.client = MongoClient(
                    self.settings.mongodb_uri,
                    serverSelectionTimeoutMS=CONNECTION_TIMEOUT_MS,
                    connectTimeoutMS=CONNECTION_TIMEOUT_MS,
                )
                self.client.admin.command("ping")
                self.db = self.client[self.settings.mongodb_db_name]
                self.log(f"Using database: {self.settings.mongodb_db_name}", "DEBUG")
                return True

            except ServerSelectionTimeoutError as e:
                self.log(f"Server selection timeout: {e}", "ERROR")
                self.log("Ensure MongoDB is running and accessible at the configured URI.", "ERROR")
                return False

            except ConnectionFailure as e:
                self.log(f"Connection attempt {attempt + 1}/{max_retries} failed: {e}", "WARNING")
                if attempt < max_retries - 1:
                    time.sleep(retry_delay)
                    retry_delay *= 2

        self.log("Failed to connect after all retry attempts", "ERROR")
        return False

    def close(self) -> None:
        if self.client is not None:
            self.client.close()

    def clean_videos(self, user_id: str) -> int:
        """Delete every video owned by ``user_id`` and return how many were removed."""
        result = self.db[VIDEOS_COLLECTION].delete_many({"user_id": user_id})
        self.log(f"Removed {result.deleted_count} existing videos for {user_id}")
        return result.deleted_count

    def generate_videos(self, user_id: str, count: int) -> List[Video]:
        """Insert ``count`` draft videos owned by ``user_id``."""
        videos = [
            Video(
                user_id=user_id,
                title=self.fake.sentence(nb_words=4).rstrip("."),
                description=self.fake.paragraph(nb_sentences=2),
            )
            for _ in range(count)
        ]
        if videos:
            self.db[VIDEOS_COLLECTION].insert_many([video.model_dump() for video in videos])
        for video in videos:
            self.log(f"Created video {video.id}: {video.title}", "DEBUG")
        return videos


def parse_arguments() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create draft Tubely videos and a bearer token for manual testing.",
    )
    parser.add_argument("--user-id", default=None, help="Owner of the generated videos")
    parser.add_argument(
        "--count",
        type=int,
        default=DEFAULT_VIDEO_COUNT,
        help=f"Number of draft videos to create (default: {DEFAULT_VIDEO_COUNT})",
    )
    parser.add_argument(
        "--clean", action="store_true", help="Delete the user's existing videos first"
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed for titles")
    parser.add_argument("--verbose", action="store_true", help="Display detailed logs")
    return parser.parse_args()


def main() -> int:
    """
    Main entry point for test data generation.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    args = parse_arguments()
    if args.count < 0:
        print("--count must not be negative", file=sys.stderr)
        return 1

    load_dotenv()
    settings = Settings()
    user_id = args.user_id or str(uuid.uuid4())

    generator = TestDataGenerator(settings, seed=args.seed, verbose=args.verbose)
    if not generator.connect():
        return 1

    try:
        if args.clean:
            generator.clean_videos(user_id)
        videos = generator.generate_videos(user_id, args.count)
    except PyMongoError as e:
        generator.log(f"Failed to write test data: {e}", "ERROR")
        return 1
    finally:
        generator.close()

    token = create_access_token(user_id, settings)

    print()
    print(f"User ID: {user_id}")
    for video in videos:
        print(f"Video:   {video.id}  {video.title}")
    print(f"Token:   {token}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
