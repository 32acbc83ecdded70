"""
Tubely Upload Service Test Suite

Exercises the upload pipeline with every collaborator replaced by a test double
from conftest.py. The staging and assets directories are real tmp directories,
so tests can assert that no staged or processing file survives a request.

Test Organization:
- TestAuthorization: Ownership is enforced before the body is read
- TestVideoUpload: Happy path, key layout and stored reference
- TestVideoUploadFailures: Validation, probe, optimize, storage and persistence failures
- TestThumbnailUpload: Thumbnail happy path and rejections
- TestRecordAccess: Create/get/list with read-time URL signing
"""

from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from conftest import (
    GIF_BYTES,
    JPEG_BYTES,
    MP4_BYTES,
    OWNER_ID,
    PNG_BYTES,
    STRANGER_ID,
    FakeOptimizer,
    FakeProber,
    InMemoryVideoRepository,
    list_files,
    make_upload,
)
from tubely.config import Settings
from tubely.models.video import ObjectReference, Video, VideoCreate
from tubely.services.local_assets import LocalAssetStore
from tubely.services.storage_service import StorageSigningError, StorageUploadError
from tubely.services.upload_service import (
    AssetAccessDeniedError,
    AssetNotFoundError,
    FileValidationError,
    MediaProcessingError,
    PersistenceError,
    StorageError,
    UploadService,
    UploadServiceError,
)


def stored_reference(repository: InMemoryVideoRepository, video_id: str) -> ObjectReference:
    return ObjectReference.from_storage_string(repository.videos[video_id].video_url)


# =============================================================================
# AUTHORIZATION
# =============================================================================


class TestAuthorization:
    """Ownership and existence are checked before any bytes are consumed."""

    @pytest.mark.asyncio
    async def test_stranger_video_upload_is_forbidden(
        self,
        upload_service: UploadService,
        draft_video: Video,
        receiver_for,
        mock_storage: Mock,
        fake_prober: FakeProber,
        staging_dir: Path,
    ) -> None:
        receiver = receiver_for(make_upload(MP4_BYTES, "video/mp4"))

        with pytest.raises(AssetAccessDeniedError):
            await upload_service.upload_video(STRANGER_ID, draft_video.id, receiver)

        receiver.assert_not_awaited()
        assert fake_prober.calls == []
        mock_storage.upload_file.assert_not_awaited()
        assert list_files(staging_dir) == []

    @pytest.mark.asyncio
    async def test_stranger_thumbnail_upload_is_forbidden(
        self,
        upload_service: UploadService,
        draft_video: Video,
        receiver_for,
        video_repository: InMemoryVideoRepository,
        assets_dir: Path,
    ) -> None:
        receiver = receiver_for(make_upload(PNG_BYTES, "image/png"))

        with pytest.raises(AssetAccessDeniedError):
            await upload_service.upload_thumbnail(STRANGER_ID, draft_video.id, receiver)

        receiver.assert_not_awaited()
        assert video_repository.update_calls == 0
        assert list_files(assets_dir) == []

    @pytest.mark.asyncio
    async def test_unknown_video(self, upload_service: UploadService, receiver_for) -> None:
        receiver = receiver_for(make_upload(MP4_BYTES, "video/mp4"))

        with pytest.raises(AssetNotFoundError):
            await upload_service.upload_video(
                OWNER_ID, "00000000-0000-4000-8000-000000000000", receiver
            )

        receiver.assert_not_awaited()


# =============================================================================
# VIDEO UPLOAD
# =============================================================================


class TestVideoUpload:
    """Successful video uploads."""

    @pytest.mark.asyncio
    async def test_landscape_upload(
        self,
        upload_service: UploadService,
        draft_video: Video,
        receiver_for,
        video_repository: InMemoryVideoRepository,
        mock_storage: Mock,
        fake_prober: FakeProber,
        fake_optimizer: FakeOptimizer,
        mock_settings: Settings,
        staging_dir: Path,
    ) -> None:
        receiver = receiver_for(make_upload(MP4_BYTES, "video/mp4", "clip.mp4"))

        response = await upload_service.upload_video(OWNER_ID, draft_video.id, receiver)

        receiver.assert_awaited_once_with(mock_settings.max_video_upload_bytes)

        # Prober saw the staged original, the optimized copy was uploaded
        assert len(fake_prober.calls) == 1
        assert fake_optimizer.calls == fake_prober.calls
        bucket, key, uploaded_path, content_type = mock_storage.upload_file.await_args.args
        assert bucket == mock_settings.s3_bucket_name
        assert uploaded_path == fake_optimizer.outputs[0]
        assert content_type == "video/mp4"
        assert key.startswith("landscape/")
        assert key.endswith(".mp4")

        # Stored value is the unsigned pair and splits back on the first comma
        stored = video_repository.videos[draft_video.id].video_url
        assert stored == f"{mock_settings.s3_bucket_name},{key}"
        assert stored_reference(video_repository, draft_video.id) == ObjectReference(
            bucket=mock_settings.s3_bucket_name, key=key
        )

        # Response carries a signed URL for the same object, never the raw pair
        assert response.video_url != stored
        assert f"/{mock_settings.s3_bucket_name}/{key}?" in response.video_url
        assert "X-Amz-Expires=3600" in response.video_url

        assert list_files(staging_dir) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("width", "height", "prefix"),
        [(1080, 1920, "portrait/"), (1000, 1000, "other/"), (1280, 720, "landscape/")],
    )
    async def test_key_prefix_follows_aspect(
        self,
        upload_service: UploadService,
        draft_video: Video,
        receiver_for,
        fake_prober: FakeProber,
        video_repository: InMemoryVideoRepository,
        width: int,
        height: int,
        prefix: str,
    ) -> None:
        fake_prober.dimensions = fake_prober.dimensions.model_copy(
            update={"width": width, "height": height}
        )

        await upload_service.upload_video(
            OWNER_ID, draft_video.id, receiver_for(make_upload(MP4_BYTES, "video/mp4"))
        )

        assert stored_reference(video_repository, draft_video.id).key.startswith(prefix)

    @pytest.mark.asyncio
    async def test_reupload_replaces_reference(
        self,
        upload_service: UploadService,
        draft_video: Video,
        receiver_for,
        video_repository: InMemoryVideoRepository,
    ) -> None:
        await upload_service.upload_video(
            OWNER_ID, draft_video.id, receiver_for(make_upload(MP4_BYTES, "video/mp4"))
        )
        first = video_repository.videos[draft_video.id].video_url

        await upload_service.upload_video(
            OWNER_ID, draft_video.id, receiver_for(make_upload(MP4_BYTES, "video/mp4"))
        )
        second = video_repository.videos[draft_video.id].video_url

        assert first != second

    @pytest.mark.asyncio
    async def test_content_type_parameters_are_ignored(
        self,
        upload_service: UploadService,
        draft_video: Video,
        receiver_for,
        mock_storage: Mock,
    ) -> None:
        upload = make_upload(MP4_BYTES, "video/mp4; codecs=avc1")

        await upload_service.upload_video(OWNER_ID, draft_video.id, receiver_for(upload))

        assert mock_storage.upload_file.await_args.args[3] == "video/mp4"

    @pytest.mark.asyncio
    async def test_allowed_non_mp4_is_stored_as_mp4(
        self,
        mock_settings: Settings,
        video_repository: InMemoryVideoRepository,
        mock_storage: Mock,
        local_assets: LocalAssetStore,
        fake_prober: FakeProber,
        fake_optimizer: FakeOptimizer,
        draft_video: Video,
        receiver_for,
    ) -> None:
        settings = mock_settings.model_copy(
            update={"allowed_video_types": ["video/mp4", "video/webm"]}
        )
        service = UploadService(
            settings=settings,
            repository=video_repository,
            storage=mock_storage,
            local_assets=local_assets,
            prober=fake_prober,
            optimizer=fake_optimizer,
        )
        receiver = receiver_for(make_upload(b"\x1aE\xdf\xa3webm", "video/webm", "clip.webm"))

        await service.upload_video(OWNER_ID, draft_video.id, receiver)

        # Staged under the declared extension, stored as the mp4 the optimizer wrote
        assert fake_prober.calls[0].suffix == ".webm"
        _, key, _, content_type = mock_storage.upload_file.await_args.args
        assert key.startswith("landscape/")
        assert key.endswith(".mp4")
        assert content_type == "video/mp4"
        assert stored_reference(video_repository, draft_video.id).key == key


# =============================================================================
# VIDEO UPLOAD FAILURES
# =============================================================================


class TestVideoUploadFailures:
    """Every failure leaves the staging directory empty and the record unchanged."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content_type", ["video/quicktime", "image/png", "text/plain", None])
    async def test_disallowed_media_type(
        self,
        upload_service: UploadService,
        draft_video: Video,
        receiver_for,
        fake_prober: FakeProber,
        staging_dir: Path,
        video_repository: InMemoryVideoRepository,
        content_type,
    ) -> None:
        receiver = receiver_for(make_upload(MP4_BYTES, content_type))

        with pytest.raises(FileValidationError):
            await upload_service.upload_video(OWNER_ID, draft_video.id, receiver)

        assert fake_prober.calls == []
        assert list_files(staging_dir) == []
        assert video_repository.update_calls == 0

    @pytest.mark.asyncio
    async def test_oversized_video(
        self,
        upload_service: UploadService,
        draft_video: Video,
        receiver_for,
        mock_settings: Settings,
        staging_dir: Path,
    ) -> None:
        payload = b"\x00" * (mock_settings.max_video_upload_bytes + 1)

        with pytest.raises(FileValidationError, match="exceeds"):
            await upload_service.upload_video(
                OWNER_ID, draft_video.id, receiver_for(make_upload(payload, "video/mp4"))
            )

        assert list_files(staging_dir) == []

    @pytest.mark.asyncio
    async def test_body_read_rejection_propagates(
        self,
        upload_service: UploadService,
        draft_video: Video,
        video_repository: InMemoryVideoRepository,
    ) -> None:
        receiver = AsyncMock(side_effect=FileValidationError("Client disconnected"))

        with pytest.raises(FileValidationError, match="disconnected"):
            await upload_service.upload_video(OWNER_ID, draft_video.id, receiver)

        assert video_repository.update_calls == 0

    @pytest.mark.asyncio
    async def test_unexpected_body_read_failure_is_classified(
        self,
        upload_service: UploadService,
        draft_video: Video,
        fake_prober: FakeProber,
        staging_dir: Path,
    ) -> None:
        receiver = AsyncMock(side_effect=RuntimeError("receive channel closed"))

        with pytest.raises(UploadServiceError, match="receive channel closed") as exc_info:
            await upload_service.upload_thumbnail(OWNER_ID, draft_video.id, receiver)

        assert type(exc_info.value) is UploadServiceError
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert fake_prober.calls == []
        assert list_files(staging_dir) == []

    @pytest.mark.asyncio
    async def test_probe_failure(
        self,
        mock_settings: Settings,
        video_repository: InMemoryVideoRepository,
        mock_storage: Mock,
        local_assets,
        failing_prober: FakeProber,
        fake_optimizer: FakeOptimizer,
        draft_video: Video,
        receiver_for,
        staging_dir: Path,
    ) -> None:
        service = UploadService(
            mock_settings, video_repository, mock_storage, local_assets, failing_prober, fake_optimizer
        )

        with pytest.raises(MediaProcessingError):
            await service.upload_video(
                OWNER_ID, draft_video.id, receiver_for(make_upload(MP4_BYTES, "video/mp4"))
            )

        assert fake_optimizer.calls == []
        mock_storage.upload_file.assert_not_awaited()
        assert video_repository.videos[draft_video.id].video_url is None
        assert list_files(staging_dir) == []

    @pytest.mark.asyncio
    async def test_optimizer_failure(
        self,
        mock_settings: Settings,
        video_repository: InMemoryVideoRepository,
        mock_storage: Mock,
        local_assets,
        fake_prober: FakeProber,
        failing_optimizer: FakeOptimizer,
        draft_video: Video,
        receiver_for,
        staging_dir: Path,
    ) -> None:
        service = UploadService(
            mock_settings, video_repository, mock_storage, local_assets, fake_prober, failing_optimizer
        )

        with pytest.raises(MediaProcessingError):
            await service.upload_video(
                OWNER_ID, draft_video.id, receiver_for(make_upload(MP4_BYTES, "video/mp4"))
            )

        mock_storage.upload_file.assert_not_awaited()
        assert video_repository.videos[draft_video.id].video_url is None
        assert list_files(staging_dir) == []

    @pytest.mark.asyncio
    async def test_storage_failure_removes_staged_and_processing_files(
        self,
        upload_service: UploadService,
        draft_video: Video,
        receiver_for,
        mock_storage: Mock,
        fake_optimizer: FakeOptimizer,
        video_repository: InMemoryVideoRepository,
        staging_dir: Path,
    ) -> None:
        mock_storage.upload_file.side_effect = StorageUploadError("bucket unreachable")

        with pytest.raises(StorageError):
            await upload_service.upload_video(
                OWNER_ID, draft_video.id, receiver_for(make_upload(MP4_BYTES, "video/mp4"))
            )

        assert len(fake_optimizer.outputs) == 1
        assert not fake_optimizer.outputs[0].exists()
        assert video_repository.update_calls == 0
        assert list_files(staging_dir) == []

    @pytest.mark.asyncio
    async def test_persistence_failure_after_upload(
        self,
        upload_service: UploadService,
        draft_video: Video,
        receiver_for,
        mock_storage: Mock,
        video_repository: InMemoryVideoRepository,
        staging_dir: Path,
    ) -> None:
        video_repository.fail_updates = True

        with pytest.raises(PersistenceError):
            await upload_service.upload_video(
                OWNER_ID, draft_video.id, receiver_for(make_upload(MP4_BYTES, "video/mp4"))
            )

        # The object was written before the record update failed
        mock_storage.upload_file.assert_awaited_once()
        assert video_repository.videos[draft_video.id].video_url is None
        assert list_files(staging_dir) == []

    @pytest.mark.asyncio
    async def test_signing_failure_after_persist(
        self,
        upload_service: UploadService,
        draft_video: Video,
        receiver_for,
        mock_storage: Mock,
        video_repository: InMemoryVideoRepository,
    ) -> None:
        mock_storage.generate_presigned_download_url.side_effect = StorageSigningError("no creds")

        with pytest.raises(StorageError):
            await upload_service.upload_video(
                OWNER_ID, draft_video.id, receiver_for(make_upload(MP4_BYTES, "video/mp4"))
            )

        assert video_repository.videos[draft_video.id].video_url is not None

    @pytest.mark.asyncio
    async def test_part_is_closed_on_failure(
        self,
        upload_service: UploadService,
        draft_video: Video,
        receiver_for,
    ) -> None:
        upload = make_upload(GIF_BYTES, "image/gif")

        with pytest.raises(FileValidationError):
            await upload_service.upload_video(OWNER_ID, draft_video.id, receiver_for(upload))

        assert upload.file.closed


# =============================================================================
# THUMBNAIL UPLOAD
# =============================================================================


class TestThumbnailUpload:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("payload", "content_type", "extension"),
        [(PNG_BYTES, "image/png", ".png"), (JPEG_BYTES, "image/jpeg", ".jpg")],
    )
    async def test_thumbnail_stored_and_served(
        self,
        upload_service: UploadService,
        draft_video: Video,
        receiver_for,
        video_repository: InMemoryVideoRepository,
        mock_settings: Settings,
        assets_dir: Path,
        staging_dir: Path,
        payload: bytes,
        content_type: str,
        extension: str,
    ) -> None:
        receiver = receiver_for(make_upload(payload, content_type, "thumb"))

        response = await upload_service.upload_thumbnail(OWNER_ID, draft_video.id, receiver)

        receiver.assert_awaited_once_with(mock_settings.max_thumbnail_upload_bytes)

        stored_files = list_files(assets_dir)
        assert len(stored_files) == 1
        assert stored_files[0].suffix == extension
        assert stored_files[0].read_bytes() == payload

        expected_url = f"http://localhost:8091/assets/{stored_files[0].name}"
        assert response.thumbnail_url == expected_url
        assert video_repository.videos[draft_video.id].thumbnail_url == expected_url
        assert list_files(staging_dir) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content_type", ["image/gif", "image/webp", "video/mp4", None])
    async def test_rejected_types_write_nothing(
        self,
        upload_service: UploadService,
        draft_video: Video,
        receiver_for,
        video_repository: InMemoryVideoRepository,
        assets_dir: Path,
        staging_dir: Path,
        content_type,
    ) -> None:
        with pytest.raises(FileValidationError):
            await upload_service.upload_thumbnail(
                OWNER_ID, draft_video.id, receiver_for(make_upload(GIF_BYTES, content_type))
            )

        assert list_files(assets_dir) == []
        assert list_files(staging_dir) == []
        assert video_repository.update_calls == 0

    @pytest.mark.asyncio
    async def test_oversized_thumbnail(
        self,
        upload_service: UploadService,
        draft_video: Video,
        receiver_for,
        mock_settings: Settings,
        assets_dir: Path,
    ) -> None:
        payload = b"\x89PNG" + b"\x00" * mock_settings.max_thumbnail_upload_bytes

        with pytest.raises(FileValidationError):
            await upload_service.upload_thumbnail(
                OWNER_ID, draft_video.id, receiver_for(make_upload(payload, "image/png"))
            )

        assert list_files(assets_dir) == []

    @pytest.mark.asyncio
    async def test_thumbnail_does_not_touch_video_reference(
        self,
        upload_service: UploadService,
        draft_video: Video,
        receiver_for,
        mock_storage: Mock,
    ) -> None:
        response = await upload_service.upload_thumbnail(
            OWNER_ID, draft_video.id, receiver_for(make_upload(PNG_BYTES, "image/png"))
        )

        assert response.video_url is None
        mock_storage.upload_file.assert_not_awaited()
        mock_storage.generate_presigned_download_url.assert_not_awaited()


# =============================================================================
# RECORD ACCESS
# =============================================================================


class TestRecordAccess:
    @pytest.mark.asyncio
    async def test_create_video(
        self, upload_service: UploadService, video_repository: InMemoryVideoRepository
    ) -> None:
        response = await upload_service.create_video(
            OWNER_ID, VideoCreate(title="New", description="Fresh draft")
        )

        assert response.user_id == OWNER_ID
        assert response.video_url is None
        assert video_repository.videos[response.id].title == "New"

    @pytest.mark.asyncio
    async def test_get_signs_at_read_time(
        self,
        upload_service: UploadService,
        video_repository: InMemoryVideoRepository,
        mock_storage: Mock,
    ) -> None:
        video = video_repository.add(
            Video(user_id=OWNER_ID, title="Uploaded", video_url="tubely-test-bucket,portrait/a.mp4")
        )

        first = await upload_service.get_video(OWNER_ID, video.id)
        second = await upload_service.get_video(OWNER_ID, video.id)

        assert mock_storage.generate_presigned_download_url.await_count == 2
        assert "/tubely-test-bucket/portrait/a.mp4?" in first.video_url
        assert first.video_url == second.video_url

    @pytest.mark.asyncio
    async def test_get_forbidden_for_stranger(
        self, upload_service: UploadService, draft_video: Video
    ) -> None:
        with pytest.raises(AssetAccessDeniedError):
            await upload_service.get_video(STRANGER_ID, draft_video.id)

    @pytest.mark.asyncio
    async def test_malformed_stored_reference(
        self, upload_service: UploadService, video_repository: InMemoryVideoRepository
    ) -> None:
        video = video_repository.add(
            Video(user_id=OWNER_ID, title="Legacy", video_url="https://old.example/video.mp4")
        )

        with pytest.raises(StorageError):
            await upload_service.get_video(OWNER_ID, video.id)

    @pytest.mark.asyncio
    async def test_list_only_returns_own_videos(
        self,
        upload_service: UploadService,
        video_repository: InMemoryVideoRepository,
        draft_video: Video,
    ) -> None:
        video_repository.add(Video(user_id=STRANGER_ID, title="Not yours"))

        responses = await upload_service.list_videos(OWNER_ID)

        assert [r.id for r in responses] == [draft_video.id]
