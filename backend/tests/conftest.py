"""
Pytest Configuration and Test Fixtures for the Tubely Backend

This module provides the shared fixtures for the test suite:
- Frozen test Settings pointing staging and assets at a per-test tmp directory
- In-memory video repository standing in for MongoDB
- Fake prober and optimizer implementing the narrow pipeline protocols
- Mocked S3 storage gateway
- Upload helpers building Starlette UploadFile parts
- JWT tokens for the video owner and for a stranger
- FastAPI TestClient with dependency overrides
"""

import shutil

from io import BytesIO
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from fastapi.testclient import TestClient
from starlette.datastructures import Headers, UploadFile

from tubely.config import Settings, get_settings
from tubely.core.auth import create_access_token
from tubely.models.video import Dimensions, ObjectReference, Video
from tubely.services.local_assets import LocalAssetStore
from tubely.services.optimizer_service import OptimizeError, processing_path_for
from tubely.services.metadata_service import ProbeError
from tubely.services.storage_service import StorageService
from tubely.services.upload_service import UploadService
from tubely.services.video_repository import VideoNotFoundError, VideoPersistenceError


# ==============================================================================
# Pytest Configuration
# ==============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")


# ==============================================================================
# Sample Data
# ==============================================================================

OWNER_ID = "user-owner-0001"
STRANGER_ID = "user-stranger-0002"

# Minimal PNG signature plus IHDR chunk header; content is never decoded
PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR" + b"\x00" * 64
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 64
GIF_BYTES = b"GIF89a" + b"\x00" * 64
MP4_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 256


# ==============================================================================
# Settings
# ==============================================================================


@pytest.fixture
def mock_settings(tmp_path: Path) -> Settings:
    """
    Create test Settings isolated from the environment's .env file.

    Staged uploads go to ``tmp_path/staging`` and thumbnails to
    ``tmp_path/assets`` so tests can inspect both directories.
    """
    staging_dir = tmp_path / "staging"
    staging_dir.mkdir()

    return Settings(
        _env_file=None,
        app_env="testing",
        log_level="debug",
        json_logs=False,
        port=8091,
        public_host="localhost",
        secret_key="test-secret-key-for-testing-only-32-characters",
        mongodb_uri="mongodb://localhost:27017",
        mongodb_db_name="tubely_test",
        s3_bucket_name="tubely-test-bucket",
        s3_region="us-east-1",
        s3_endpoint_url="http://localhost:9000",
        s3_access_key_id="test-access-key",
        s3_secret_access_key="test-secret-access-key",
        assets_root=str(tmp_path / "assets"),
        upload_temp_dir=str(staging_dir),
        max_thumbnail_upload_mb=1,
        max_video_upload_mb=2,
    )


@pytest.fixture
def staging_dir(mock_settings: Settings) -> Path:
    """Directory that receives staged uploads."""
    return Path(mock_settings.upload_temp_dir)


@pytest.fixture
def assets_dir(mock_settings: Settings) -> Path:
    """Directory that receives stored thumbnails."""
    return Path(mock_settings.assets_root)


# ==============================================================================
# Pipeline Collaborators
# ==============================================================================


class InMemoryVideoRepository:
    """Dictionary-backed stand-in for VideoRepository."""

    def __init__(self) -> None:
        self.videos: Dict[str, Video] = {}
        self.fail_updates = False
        self.update_calls = 0

    def add(self, video: Video) -> Video:
        self.videos[video.id] = video.model_copy(deep=True)
        return video

    async def create_video(self, video: Video) -> Video:
        return self.add(video)

    async def get_video(self, video_id: str) -> Video:
        if video_id not in self.videos:
            raise VideoNotFoundError(f"Video {video_id} not found")
        return self.videos[video_id].model_copy(deep=True)

    async def list_videos(self, user_id: str, limit: int = 100) -> List[Video]:
        owned = [v for v in self.videos.values() if v.user_id == user_id]
        return [v.model_copy(deep=True) for v in owned[:limit]]

    async def update_video(self, video: Video) -> Video:
        self.update_calls += 1
        if self.fail_updates:
            raise VideoPersistenceError("simulated write failure")
        if video.id not in self.videos:
            raise VideoNotFoundError(f"Video {video.id} not found")
        video.touch()
        self.videos[video.id] = video.model_copy(deep=True)
        return video


class FakeProber:
    """VideoProber returning fixed dimensions, or raising a configured error."""

    def __init__(self, width: int = 1920, height: int = 1080) -> None:
        self.dimensions = Dimensions(width=width, height=height)
        self.error: Optional[Exception] = None
        self.calls: List[Path] = []

    async def probe(self, file_path: Path) -> Dimensions:
        self.calls.append(Path(file_path))
        assert Path(file_path).is_file()
        if self.error is not None:
            raise self.error
        return self.dimensions


class FakeOptimizer:
    """StreamOptimizer that copies its input to the ``.processing`` path."""

    def __init__(self) -> None:
        self.error: Optional[Exception] = None
        self.calls: List[Path] = []
        self.outputs: List[Path] = []

    async def optimize(self, file_path: Path) -> Path:
        self.calls.append(Path(file_path))
        if self.error is not None:
            raise self.error
        output = processing_path_for(Path(file_path))
        shutil.copyfile(file_path, output)
        self.outputs.append(output)
        return output


@pytest.fixture
def video_repository() -> InMemoryVideoRepository:
    return InMemoryVideoRepository()


@pytest.fixture
def fake_prober() -> FakeProber:
    return FakeProber()


@pytest.fixture
def fake_optimizer() -> FakeOptimizer:
    return FakeOptimizer()


@pytest.fixture
def failing_optimizer() -> FakeOptimizer:
    optimizer = FakeOptimizer()
    optimizer.error = OptimizeError("ffmpeg exited with status 1")
    return optimizer


@pytest.fixture
def failing_prober() -> FakeProber:
    prober = FakeProber()
    prober.error = ProbeError("No video streams found")
    return prober


@pytest.fixture
def mock_storage() -> Mock:
    """
    Create a mocked StorageService.

    ``upload_file`` echoes the bucket/key it was given as an ObjectReference and
    ``generate_presigned_download_url`` returns a deterministic fake URL.
    """
    storage = Mock(spec=StorageService)

    async def _upload_file(bucket_name: str, object_key: str, file_path: Path, content_type: str):
        assert Path(file_path).is_file()
        return ObjectReference(bucket=bucket_name, key=object_key)

    async def _sign(reference: ObjectReference, expiration: int = 3600) -> str:
        return (
            f"https://s3.example.test/{reference.bucket}/{reference.key}"
            f"?X-Amz-Expires={expiration}&X-Amz-Signature=fake"
        )

    storage.upload_file = AsyncMock(side_effect=_upload_file)
    storage.generate_presigned_download_url = AsyncMock(side_effect=_sign)
    return storage


@pytest.fixture
def local_assets(mock_settings: Settings) -> LocalAssetStore:
    return LocalAssetStore.from_settings(mock_settings)


@pytest.fixture
def upload_service(
    mock_settings: Settings,
    video_repository: InMemoryVideoRepository,
    mock_storage: Mock,
    local_assets: LocalAssetStore,
    fake_prober: FakeProber,
    fake_optimizer: FakeOptimizer,
) -> UploadService:
    """UploadService wired entirely with test doubles."""
    return UploadService(
        settings=mock_settings,
        repository=video_repository,
        storage=mock_storage,
        local_assets=local_assets,
        prober=fake_prober,
        optimizer=fake_optimizer,
    )


# ==============================================================================
# Records and Uploads
# ==============================================================================


@pytest.fixture
def draft_video(video_repository: InMemoryVideoRepository) -> Video:
    """A video record owned by OWNER_ID with nothing uploaded yet."""
    return video_repository.add(
        Video(user_id=OWNER_ID, title="Boots and bytes", description="A test video")
    )


def make_upload(data: bytes, content_type: Optional[str], filename: str = "upload.bin") -> UploadFile:
    """Build a Starlette UploadFile the way the multipart parser would."""
    headers = Headers({"content-type": content_type}) if content_type else Headers({})
    return UploadFile(file=BytesIO(data), size=len(data), filename=filename, headers=headers)


@pytest.fixture
def upload_factory() -> Callable[..., UploadFile]:
    return make_upload


@pytest.fixture
def receiver_for() -> Callable[[UploadFile], AsyncMock]:
    """Wrap an UploadFile in an AsyncMock PartReceiver."""

    def _receiver(upload: UploadFile) -> AsyncMock:
        return AsyncMock(return_value=upload)

    return _receiver


# ==============================================================================
# Authentication
# ==============================================================================


@pytest.fixture
def owner_token(mock_settings: Settings) -> str:
    return create_access_token(OWNER_ID, mock_settings)


@pytest.fixture
def stranger_token(mock_settings: Settings) -> str:
    return create_access_token(STRANGER_ID, mock_settings)


@pytest.fixture
def owner_headers(owner_token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {owner_token}"}


@pytest.fixture
def stranger_headers(stranger_token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {stranger_token}"}


# ==============================================================================
# FastAPI Test Client
# ==============================================================================


@pytest.fixture
def test_client(
    mock_settings: Settings,
    upload_service: UploadService,
) -> Generator[TestClient, None, None]:
    """
    TestClient with settings and the upload service overridden.

    The client is not used as a context manager, so the lifespan handler (and
    with it the MongoDB connection) never runs.
    """
    from tubely.api.v1.videos import get_upload_service
    from tubely.main import app

    app.dependency_overrides[get_settings] = lambda: mock_settings
    app.dependency_overrides[get_upload_service] = lambda: upload_service

    yield TestClient(app)

    app.dependency_overrides.clear()


def list_files(directory: Path) -> List[Path]:
    """Files currently present in a directory (empty if it does not exist)."""
    if not directory.exists():
        return []
    return sorted(p for p in directory.iterdir() if p.is_file())

