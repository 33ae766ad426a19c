"""
Application configuration management using Pydantic Settings.
Loads environment variables and provides centralized configuration.
"""
import logging
from datetime import timedelta
from functools import cached_property, lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from oneshot.core.units import InvalidFormatError, parse_duration, parse_size
from oneshot.storage.lifecycle import LifecyclePolicy

logger = logging.getLogger(__name__)

# Used when MAX_UPLOAD_SIZE / FILE_EXPIRY cannot be parsed.
FALLBACK_MAX_UPLOAD_BYTES = 1024 ** 3
FALLBACK_FILE_EXPIRY = timedelta(days=3)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # API Metadata
    APP_NAME: str = "oneshot"
    APP_VERSION: str = "2.0.0"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    PUBLIC_BASE_URL: Optional[str] = None

    # Database
    DATABASE_URL: str = "sqlite:///./fileuploader.db"

    # Object storage
    STORAGE_BACKEND: str = "local"
    UPLOAD_DIR: str = "./uploads"

    # MinIO / S3
    MINIO_HOST: str = "localhost"
    MINIO_PORT: int = 9000
    MINIO_ACCESS_KEY: Optional[str] = None
    MINIO_SECRET_KEY: Optional[str] = None
    MINIO_BUCKET: str = "uploads"
    MINIO_PREFIX: str = "uploads/"
    MINIO_SECURE: bool = False

    # File lifecycle policy (human-readable sizes and durations)
    MAX_UPLOAD_SIZE: str = "1GB"
    MAX_DOWNLOADS: int = 1
    FILE_EXPIRY: str = "3d"

    # Shared secret for uploads and the JSON API
    API_KEY: Optional[str] = None

    # Background reclaimer
    RECLAIMER_ENABLED: bool = True
    RECLAIM_INTERVAL_SECONDS: int = Field(3600, ge=1)
    RECLAIM_BATCH_SIZE: int = Field(500, ge=1)
    RECLAIM_ORPHAN_GRACE_SECONDS: int = Field(3600, ge=0)

    # Rate Limiting
    REDIS_URL: Optional[str] = None
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_PER_MINUTE: int = Field(100, ge=1)

    # CORS
    CORS_ORIGINS: list = ["*"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"

    @field_validator("MAX_DOWNLOADS")
    @classmethod
    def validate_max_downloads(cls, v):
        """At least one download must be permitted."""
        if v < 1:
            raise ValueError("MAX_DOWNLOADS must be >= 1")
        return v

    @field_validator("STORAGE_BACKEND")
    @classmethod
    def validate_storage_backend(cls, v):
        v = v.lower()
        if v not in ("local", "minio"):
            raise ValueError("STORAGE_BACKEND must be 'local' or 'minio'")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown LOG_LEVEL: {v}")
        return v

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v):
        v = v.lower()
        if v not in ("text", "json"):
            raise ValueError("LOG_FORMAT must be 'text' or 'json'")
        return v

    @cached_property
    def max_upload_bytes(self) -> int:
        """MAX_UPLOAD_SIZE in bytes, falling back to 1GB on a bad value."""
        try:
            return parse_size(self.MAX_UPLOAD_SIZE)
        except InvalidFormatError as e:
            logger.warning(f"Invalid MAX_UPLOAD_SIZE {self.MAX_UPLOAD_SIZE!r} ({e}), using default 1GB")
            return FALLBACK_MAX_UPLOAD_BYTES

    @cached_property
    def file_expiry(self) -> timedelta:
        """FILE_EXPIRY as a timedelta, falling back to 3 days on a bad value."""
        try:
            expiry = parse_duration(self.FILE_EXPIRY)
        except InvalidFormatError as e:
            logger.warning(f"Invalid FILE_EXPIRY {self.FILE_EXPIRY!r} ({e}), using default 3 days")
            return FALLBACK_FILE_EXPIRY

        if expiry <= timedelta(0):
            logger.warning(f"FILE_EXPIRY {self.FILE_EXPIRY!r} is not positive, using default 3 days")
            return FALLBACK_FILE_EXPIRY
        return expiry

    @property
    def lifecycle_policy(self) -> LifecyclePolicy:
        return LifecyclePolicy(
            max_upload_bytes=self.max_upload_bytes,
            max_downloads=self.MAX_DOWNLOADS,
            ttl=self.file_expiry,
        )

    @property
    def reclaim_orphan_grace(self) -> timedelta:
        return timedelta(seconds=self.RECLAIM_ORPHAN_GRACE_SECONDS)

    @property
    def api_key_required(self) -> bool:
        return bool(self.API_KEY)

    @property
    def rate_limit_active(self) -> bool:
        return self.RATE_LIMIT_ENABLED and bool(self.REDIS_URL)


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
