"""
Unit tests for application settings.
Tests oneshot/core/config.py
"""
import logging
from datetime import timedelta

import pytest
from pydantic import ValidationError

from oneshot.core.config import Settings
from oneshot.storage import LifecyclePolicy


@pytest.mark.unit
class TestSettings:
    """Test Settings defaults, validation and derived values."""

    def test_lifecycle_policy(self, settings_factory):
        settings = settings_factory(MAX_UPLOAD_SIZE="2.5GB", MAX_DOWNLOADS=3, FILE_EXPIRY="2d")

        assert settings.lifecycle_policy == LifecyclePolicy(
            max_upload_bytes=2684354560,
            max_downloads=3,
            ttl=timedelta(days=2),
        )

    def test_invalid_upload_size_falls_back(self, settings_factory, caplog):
        settings = settings_factory(MAX_UPLOAD_SIZE="huge")

        with caplog.at_level(logging.WARNING, logger="oneshot.core.config"):
            assert settings.max_upload_bytes == 1024 ** 3

        assert "MAX_UPLOAD_SIZE" in caplog.text

    def test_invalid_expiry_falls_back(self, settings_factory, caplog):
        settings = settings_factory(FILE_EXPIRY="whenever")

        with caplog.at_level(logging.WARNING, logger="oneshot.core.config"):
            assert settings.file_expiry == timedelta(days=3)

        assert "FILE_EXPIRY" in caplog.text

    def test_zero_expiry_falls_back(self, settings_factory):
        assert settings_factory(FILE_EXPIRY="0h").file_expiry == timedelta(days=3)

    def test_bare_number_expiry_is_hours(self, settings_factory):
        assert settings_factory(FILE_EXPIRY="72").file_expiry == timedelta(days=3)

    def test_max_downloads_must_be_positive(self, settings_factory):
        with pytest.raises(ValidationError):
            settings_factory(MAX_DOWNLOADS=0)

    def test_unknown_storage_backend(self, settings_factory):
        with pytest.raises(ValidationError):
            settings_factory(STORAGE_BACKEND="floppy")

    def test_normalizes_case(self, settings_factory):
        settings = settings_factory(STORAGE_BACKEND="LOCAL", LOG_LEVEL="debug", LOG_FORMAT="JSON")
        assert settings.STORAGE_BACKEND == "local"
        assert settings.LOG_LEVEL == "DEBUG"
        assert settings.LOG_FORMAT == "json"

    def test_feature_flags(self, settings_factory):
        settings = settings_factory(API_KEY="s3cret", REDIS_URL="redis://localhost:6379/0")
        assert settings.api_key_required
        assert settings.rate_limit_active
        assert settings.reclaim_orphan_grace == timedelta(hours=1)

        assert not settings_factory().api_key_required
        assert not settings_factory().rate_limit_active

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("MAX_DOWNLOADS", "5")
        monkeypatch.setenv("FILE_EXPIRY", "1w")

        settings = Settings(_env_file=None)

        assert settings.MAX_DOWNLOADS == 5
        assert settings.file_expiry == timedelta(weeks=1)
        assert settings.PORT == 3000
