"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

Mock modes enable local development without S3 or FFmpeg.
"""

import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like api_keys), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "Video Upload API"
    api_version: str = "v1"
    api_keys: str = Field(
        default="dev-key-1,dev-key-2",
        description="Comma-separated API keys. Using a list enables key rotation without downtime."
    )

    # Upload limits
    max_upload_size_bytes: int = Field(
        default=10 * 1024 * 1024 * 1024,
        description="Largest accepted video upload (10 GiB)."
    )
    supported_content_type: str = Field(
        default="video/mp4",
        description="The one media type accepted for video uploads."
    )
    max_thumbnail_size_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Largest accepted thumbnail (10 MiB)."
    )
    temp_root: Path = Field(
        default=Path(tempfile.gettempdir()) / "video-uploads",
        description="Where uploads are spooled while being processed. Every file here is transient."
    )

    # S3 Storage Configuration
    s3_bucket: str = Field(
        default="",
        description="Bucket that holds processed videos"
    )
    s3_region: str = Field(
        default="us-east-1",
        description="Bucket region"
    )
    s3_endpoint_url: Optional[str] = Field(
        default=None,
        description="Custom endpoint for S3-compatible stores (R2, MinIO). Leave unset for AWS."
    )
    s3_access_key_id: str = Field(
        default="",
        description="Access key ID. Empty means boto3's default credential chain."
    )
    s3_secret_access_key: str = Field(
        default="",
        description="Secret access key"
    )
    s3_verify_uploads: bool = Field(
        default=True,
        description="Check the stored object size before deleting local copies."
    )
    storage_mock_mode: bool = Field(
        default=False,
        description="Use in-memory mock instead of real S3. Enables local dev without object storage."
    )
    presign_expiry_seconds: int = Field(
        default=3600,
        description="Lifetime of presigned video URLs."
    )

    # Media tooling
    ffprobe_path: str = Field(default="ffprobe", description="ffprobe binary")
    ffmpeg_path: str = Field(default="ffmpeg", description="ffmpeg binary")
    probe_timeout_seconds: float = Field(
        default=30,
        description="Hard limit for one ffprobe run."
    )
    remux_timeout_seconds: float = Field(
        default=600,
        description="Hard limit for one ffmpeg remux. Stream copy is I/O bound, so this scales with file size."
    )
    upload_timeout_seconds: float = Field(
        default=1800,
        description="Hard limit for one object store upload."
    )
    media_mock_mode: bool = Field(
        default=False,
        description="Use mock prober/remuxer instead of FFmpeg."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def api_keys_list(self) -> list[str]:
        """Parse comma-separated API keys into a list."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on whether we're in mock mode.
        """
        missing = []

        if not self.api_keys_list:
            missing.append("API_KEYS")

        # S3 only required if not in mock mode
        if not self.storage_mock_mode:
            if not self.s3_bucket:
                missing.append("S3_BUCKET")
            # one without the other is a misconfiguration
            if bool(self.s3_access_key_id) != bool(self.s3_secret_access_key):
                missing.append("S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache means we only load settings once per process.
    For tests, you can call get_settings.cache_clear() to reset.
    """
    return Settings()
