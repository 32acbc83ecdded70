"""
Tubely Configuration Management Module

This module provides configuration management for the Tubely media backend using
Pydantic Settings. It loads and validates the environment variables required for:
- Application settings (name, environment, debug mode, logging)
- HTTP server binding and the public host used in local asset URLs
- Local JWT signing
- MongoDB record store connection and pooling
- S3-compatible object storage and signed URL lifetime
- The media pipeline (upload limits, video allow-list, ffprobe/ffmpeg binaries
  and their timeouts, local asset and temp directories)

The Settings model is frozen: once loaded it is an immutable value that is passed
explicitly into the services that need it.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configuration settings for the Tubely backend.

    This class uses Pydantic Settings to load configuration from environment
    variables and .env files with full type validation. Every field has a
    development default so the service boots locally without a .env file.

    Configuration Categories:
    - Application: Core app settings like name, environment, debug mode
    - Server: Bind address and the public host embedded in asset URLs
    - Security: Local JWT secret and lifetime
    - MongoDB: Database connection URI and connection pool settings
    - S3: Object storage credentials, bucket and signed URL lifetime
    - Media pipeline: Upload limits, allowed types and external tool settings

    Example usage:
        ```python
        from tubely.config import Settings

        settings = Settings()
        print(f"Uploading videos to bucket: {settings.s3_bucket_name}")
        ```
    """

    # =========================================================================
    # Application Settings
    # =========================================================================

    app_name: str = Field(
        default="tubely",
        description="Application name displayed in API documentation and logs",
    )

    app_env: str = Field(
        default="development",
        description="Application environment (development, staging, production, testing)",
    )

    debug: bool = Field(default=False, description="Enable debug mode and verbose logging")

    log_level: str = Field(
        default="info", description="Logging level (debug, info, warning, error, critical)"
    )

    json_logs: bool = Field(
        default=True, description="Emit structured JSON logs instead of plain text"
    )

    # =========================================================================
    # Server Settings
    # =========================================================================

    host: str = Field(default="0.0.0.0", description="Host address for the API server to bind to")

    port: int = Field(default=8091, description="Port number for the API server", ge=1, le=65535)

    public_host: str = Field(
        default="localhost",
        description="Host name clients use to reach this server, embedded in asset URLs",
    )

    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="List of allowed CORS origins for frontend access",
    )

    # =========================================================================
    # Security Settings
    # =========================================================================

    secret_key: str = Field(
        default="development-secret-key-change-in-production-32chars",
        description="Secret key for JWT signing. Must be a secure random string.",
        min_length=32,
    )

    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")

    jwt_expiration_hours: int = Field(
        default=24, description="JWT token expiration time in hours", ge=1, le=168
    )

    # =========================================================================
    # MongoDB Configuration
    # =========================================================================

    mongodb_uri: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI (e.g., mongodb://localhost:27017)",
    )

    mongodb_db_name: str = Field(
        default="tubely", description="MongoDB database name for video records"
    )

    mongodb_min_pool_size: int = Field(
        default=1, description="Minimum number of connections in MongoDB connection pool", ge=0
    )

    mongodb_max_pool_size: int = Field(
        default=50, description="Maximum number of connections in MongoDB connection pool", ge=1
    )

    # =========================================================================
    # S3 Storage Configuration
    # =========================================================================

    s3_endpoint_url: str | None = Field(
        default=None, description="S3-compatible endpoint URL for MinIO (None for AWS S3)"
    )

    s3_access_key_id: str | None = Field(
        default=None,
        description="S3 access key ID (None to use the default AWS credential chain)",
    )

    s3_secret_access_key: str | None = Field(
        default=None,
        description="S3 secret access key (None to use the default AWS credential chain)",
    )

    s3_bucket_name: str = Field(
        default="tubely-videos", description="S3 bucket name for storing uploaded videos"
    )

    s3_region: str = Field(default="us-east-1", description="AWS region for the S3 bucket")

    signed_url_expiration_seconds: int = Field(
        default=3600,
        description="Lifetime of signed video URLs in seconds (60 minutes)",
        ge=60,
        le=604800,
    )

    # =========================================================================
    # Media Pipeline Settings
    # =========================================================================

    assets_root: str = Field(
        default="assets", description="Directory where thumbnails are written and served from"
    )

    upload_temp_dir: str | None = Field(
        default=None,
        description="Directory for staged uploads (None uses the system temp directory)",
    )

    max_thumbnail_upload_mb: int = Field(
        default=10, description="Maximum thumbnail upload size in megabytes", ge=1, le=100
    )

    max_video_upload_mb: int = Field(
        default=1024, description="Maximum video upload size in megabytes", ge=1, le=10240
    )

    allowed_video_types: list[str] = Field(
        default=["video/mp4"],
        description="Media types accepted by the video upload endpoint",
    )

    ffprobe_path: str = Field(default="ffprobe", description="Path to the ffprobe binary")

    ffmpeg_path: str = Field(default="ffmpeg", description="Path to the ffmpeg binary")

    probe_timeout_seconds: float = Field(
        default=30.0, description="Timeout for a single ffprobe invocation", gt=0
    )

    optimize_timeout_seconds: float = Field(
        default=600.0, description="Timeout for a single ffmpeg fast-start rewrite", gt=0
    )

    # =========================================================================
    # Model Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"debug", "info", "warning", "error", "critical"}
        normalized = v.lower()
        if normalized not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {', '.join(valid_levels)}")
        return normalized

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate that app_env is a valid environment name."""
        valid_envs = {"development", "staging", "production", "testing"}
        normalized = v.lower()
        if normalized not in valid_envs:
            raise ValueError(f"Invalid app_env '{v}'. Must be one of: {', '.join(valid_envs)}")
        return normalized

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """Validate that jwt_algorithm is a supported symmetric algorithm."""
        valid_algorithms = {"HS256", "HS384", "HS512"}
        if v.upper() not in valid_algorithms:
            raise ValueError(
                f"Invalid jwt_algorithm '{v}'. Must be one of: {', '.join(valid_algorithms)}"
            )
        return v.upper()

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from comma-separated string if provided as string."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("allowed_video_types", mode="before")
    @classmethod
    def validate_allowed_video_types(cls, v: str | list[str]) -> list[str]:
        """Parse and normalize the video allow-list; every entry must be a video/* type."""
        if isinstance(v, str):
            v = [item for item in v.split(",") if item.strip()]
        normalized = [item.strip().lower() for item in v]
        invalid = [item for item in normalized if not item.startswith("video/")]
        if invalid:
            raise ValueError(f"allowed_video_types must only contain video/* types: {invalid}")
        return normalized

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def max_thumbnail_upload_bytes(self) -> int:
        """Maximum thumbnail upload size in bytes."""
        return self.max_thumbnail_upload_mb * 1024 * 1024

    @property
    def max_video_upload_bytes(self) -> int:
        """
        Maximum video upload size in bytes.

        Convenience property that converts max_video_upload_mb to bytes for
        the staging size guard.
        """
        return self.max_video_upload_mb * 1024 * 1024

    @property
    def public_base_url(self) -> str:
        """Base URL for locally served assets, e.g. http://localhost:8091."""
        return f"http://{self.public_host}:{self.port}"


@lru_cache
def get_settings() -> Settings:
    """
    Get the global Settings instance.

    This function provides a singleton pattern for the Settings class using
    lru_cache, ensuring that configuration is loaded only once and reused
    throughout the application lifecycle. It doubles as the FastAPI dependency
    that route handlers and dependency providers use to receive configuration.

    Returns:
        Settings: The global configuration instance.

    Example:
        ```python
        from tubely.config import get_settings

        settings = get_settings()
        print(f"Running in {settings.app_env} mode")
        ```
    """
    return Settings()
