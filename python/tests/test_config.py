"""Tests for configuration loading and validation."""

import pytest
from pydantic import ValidationError

from rendezvous.config import Environment, Settings, clear_settings_cache, get_settings


@pytest.fixture
def base_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("RENDEZVOUS_ENV", "local")
    monkeypatch.delenv("RENDEZVOUS_INTERNAL_SECRET", raising=False)
    for name in (
        "REDIS_URL",
        "CELERY_BROKER_URL",
        "CELERY_RESULT_BACKEND",
        "SESSION_STALENESS_SECONDS",
        "SESSION_RETENTION_SECONDS",
        "HEARTBEAT_INTERVAL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    def test_defaults(self, base_env):
        settings = Settings(_env_file=None)

        assert settings.rendezvous_env == Environment.LOCAL
        assert settings.session_staleness_seconds == 60
        assert settings.heartbeat_interval_seconds < settings.session_staleness_seconds
        assert settings.connection_request_expiry_seconds == 300
        assert settings.liveness_ping_timeout_seconds == 3.0

    def test_database_url_required(self, base_env, monkeypatch):
        monkeypatch.delenv("DATABASE_URL")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_internal_secret_required_in_prod(self, base_env, monkeypatch):
        monkeypatch.setenv("RENDEZVOUS_ENV", "prod")

        with pytest.raises(ValidationError, match="RENDEZVOUS_INTERNAL_SECRET"):
            Settings(_env_file=None)

    def test_internal_secret_optional_locally(self, base_env):
        assert Settings(_env_file=None).rendezvous_internal_secret is None

    def test_heartbeat_must_be_shorter_than_staleness(self, base_env, monkeypatch):
        monkeypatch.setenv("HEARTBEAT_INTERVAL_SECONDS", "60")
        monkeypatch.setenv("SESSION_STALENESS_SECONDS", "60")

        with pytest.raises(ValidationError, match="HEARTBEAT_INTERVAL_SECONDS"):
            Settings(_env_file=None)

    def test_staleness_must_be_shorter_than_retention(self, base_env, monkeypatch):
        monkeypatch.setenv("SESSION_STALENESS_SECONDS", "120")
        monkeypatch.setenv("SESSION_RETENTION_SECONDS", "120")

        with pytest.raises(ValidationError, match="SESSION_STALENESS_SECONDS"):
            Settings(_env_file=None)

    def test_celery_urls_fall_back_to_redis(self, base_env, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")

        settings = Settings(_env_file=None)

        assert settings.effective_celery_broker_url == "redis://localhost:6379/0"
        assert settings.effective_celery_result_backend == "redis://localhost:6379/0"

    def test_json_logs_outside_local(self, base_env, monkeypatch):
        assert Settings(_env_file=None).json_logs is False

        monkeypatch.setenv("RENDEZVOUS_ENV", "test")
        assert Settings(_env_file=None).json_logs is True


class TestSettingsCache:
    def test_get_settings_is_cached_until_cleared(self, base_env, monkeypatch):
        clear_settings_cache()
        first = get_settings()
        monkeypatch.setenv("SESSION_STALENESS_SECONDS", "90")

        assert get_settings() is first

        clear_settings_cache()
        assert get_settings().session_staleness_seconds == 90
