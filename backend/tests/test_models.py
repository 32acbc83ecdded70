"""
Tests for the video models and the stored object reference encoding.
"""

import pytest

from pydantic import ValidationError

from tubely.models.video import Dimensions, ObjectReference, Video, VideoResponse


class TestObjectReference:
    def test_storage_string(self) -> None:
        ref = ObjectReference(bucket="tubely-videos", key="landscape/abc.mp4")
        assert ref.to_storage_string() == "tubely-videos,landscape/abc.mp4"

    def test_round_trip_with_comma_in_key(self) -> None:
        ref = ObjectReference(bucket="tubely-videos", key="other/a,b,c.mp4")

        decoded = ObjectReference.from_storage_string(ref.to_storage_string())

        assert decoded == ref
        assert decoded.key == "other/a,b,c.mp4"

    @pytest.mark.parametrize("value", ["", "no-comma", ",key-only", "bucket-only,"])
    def test_malformed_storage_string(self, value: str) -> None:
        with pytest.raises(ValueError):
            ObjectReference.from_storage_string(value)

    def test_bucket_cannot_contain_comma(self) -> None:
        with pytest.raises(ValidationError):
            ObjectReference(bucket="bad,bucket", key="k.mp4")

    def test_is_immutable(self) -> None:
        ref = ObjectReference(bucket="b", key="k")
        with pytest.raises(ValidationError):
            ref.key = "other"


class TestDimensions:
    def test_rejects_zero(self) -> None:
        with pytest.raises(ValidationError):
            Dimensions(width=0, height=1080)


class TestVideo:
    def test_defaults(self) -> None:
        video = Video(user_id="user-1", title="Draft")

        assert video.id
        assert video.thumbnail_url is None
        assert video.video_url is None
        assert video.video_reference is None

    def test_video_reference_decodes_stored_value(self) -> None:
        video = Video(user_id="user-1", title="Draft", video_url="tubely-videos,portrait/x.mp4")

        assert video.video_reference == ObjectReference(bucket="tubely-videos", key="portrait/x.mp4")

    def test_malformed_stored_value(self) -> None:
        video = Video(user_id="user-1", title="Draft", video_url="https://not-a-reference")

        with pytest.raises(ValueError):
            _ = video.video_reference

    def test_ownership(self) -> None:
        video = Video(user_id="user-1", title="Draft")

        assert video.is_owned_by("user-1")
        assert not video.is_owned_by("user-2")

    def test_touch_advances_updated_at(self) -> None:
        video = Video(user_id="user-1", title="Draft")
        before = video.updated_at

        video.touch()

        assert video.updated_at >= before

    def test_response_never_carries_stored_reference(self) -> None:
        video = Video(user_id="user-1", title="Draft", video_url="tubely-videos,portrait/x.mp4")

        assert VideoResponse.from_video(video).video_url is None
        assert (
            VideoResponse.from_video(video, "https://signed.example/x").video_url
            == "https://signed.example/x"
        )
