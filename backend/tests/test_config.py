"""
Tests for the Tubely Settings model.
"""

import pytest

from pydantic import ValidationError

from tubely.config import Settings


SECRET = "test-secret-key-for-testing-only-32-characters"


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, secret_key=SECRET, **overrides)


class TestDefaults:
    def test_upload_limits(self) -> None:
        settings = make_settings()

        assert settings.max_thumbnail_upload_bytes == 10 * 1024 * 1024
        assert settings.max_video_upload_bytes == 1024 * 1024 * 1024

    def test_signed_url_lifetime_is_one_hour(self) -> None:
        assert make_settings().signed_url_expiration_seconds == 3600

    def test_video_allow_list(self) -> None:
        assert make_settings().allowed_video_types == ["video/mp4"]

    def test_public_base_url(self) -> None:
        assert make_settings(public_host="media.local", port=9000).public_base_url == (
            "http://media.local:9000"
        )


class TestValidation:
    def test_settings_are_frozen(self) -> None:
        settings = make_settings()

        with pytest.raises(ValidationError):
            settings.s3_bucket_name = "elsewhere"

    def test_short_secret_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, secret_key="too-short")

    def test_allow_list_normalized(self) -> None:
        settings = make_settings(allowed_video_types=[" Video/MP4 ", "video/webm"])

        assert settings.allowed_video_types == ["video/mp4", "video/webm"]

    def test_allow_list_rejects_non_video(self) -> None:
        with pytest.raises(ValidationError):
            make_settings(allowed_video_types=["video/mp4", "image/png"])

    @pytest.mark.parametrize("expiration", [30, 604801])
    def test_signed_url_lifetime_bounds(self, expiration: int) -> None:
        with pytest.raises(ValidationError):
            make_settings(signed_url_expiration_seconds=expiration)

    def test_log_level_normalized(self) -> None:
        assert make_settings(log_level="WARNING").log_level == "warning"

    def test_invalid_app_env(self) -> None:
        with pytest.raises(ValidationError):
            make_settings(app_env="moon")
