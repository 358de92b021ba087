"""Application settings loaded from environment variables.

Environment Configuration:
    RENDEZVOUS_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: SQLAlchemy connection string (required)
    RENDEZVOUS_INTERNAL_SECRET: Secret for /internal/* routes (required in staging/prod)

Redis / Celery Configuration:
    REDIS_URL: Redis connection string (rate limiting, Celery broker fallback)
    CELERY_BROKER_URL: Celery broker URL (defaults to REDIS_URL)
    CELERY_RESULT_BACKEND: Celery result backend URL (defaults to REDIS_URL)

Coordinator Timing:
    SESSION_STALENESS_SECONDS: A session with no heartbeat for this long is not live
    SESSION_RETENTION_SECONDS: Session rows older than this are physically deleted
    HEARTBEAT_INTERVAL_SECONDS: Heartbeat period clients are expected to keep
    LIVENESS_PING_TIMEOUT_SECONDS: How long a prober waits for a ping response
    LIVENESS_PING_RETENTION_SECONDS: Pings older than this are swept
    CONNECTION_REQUEST_EXPIRY_SECONDS: A request still 'sent' after this is dead
    CONNECTION_REQUEST_RETENTION_SECONDS: Replied/completed requests are swept after this
"""

from enum import Enum
from functools import lru_cache
from typing import Annotated

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application configuration.

    Validation rules:
    - DATABASE_URL is always required
    - RENDEZVOUS_INTERNAL_SECRET is required in staging and prod only
    - heartbeat interval < staleness window < retention bound
    """

    rendezvous_env: Environment = Field(default=Environment.LOCAL, alias="RENDEZVOUS_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]
    rendezvous_internal_secret: str | None = Field(
        default=None, alias="RENDEZVOUS_INTERNAL_SECRET"
    )

    # Redis / Celery settings
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    celery_broker_url: str | None = Field(default=None, alias="CELERY_BROKER_URL")
    celery_result_backend: str | None = Field(default=None, alias="CELERY_RESULT_BACKEND")

    # Session registry
    session_staleness_seconds: int = Field(default=60, ge=1, alias="SESSION_STALENESS_SECONDS")
    session_retention_seconds: int = Field(
        default=3600, ge=1, alias="SESSION_RETENTION_SECONDS"
    )  # 1 hour
    heartbeat_interval_seconds: int = Field(
        default=30, ge=1, alias="HEARTBEAT_INTERVAL_SECONDS"
    )

    # Liveness prober
    liveness_ping_timeout_seconds: float = Field(
        default=3.0, gt=0, alias="LIVENESS_PING_TIMEOUT_SECONDS"
    )
    liveness_ping_retention_seconds: int = Field(
        default=30, ge=1, alias="LIVENESS_PING_RETENTION_SECONDS"
    )

    # Connection request coordinator
    connection_request_expiry_seconds: int = Field(
        default=300, ge=1, alias="CONNECTION_REQUEST_EXPIRY_SECONDS"
    )  # 5 minutes
    connection_request_retention_seconds: int = Field(
        default=3600, ge=1, alias="CONNECTION_REQUEST_RETENTION_SECONDS"
    )
    max_handshake_payload_bytes: int = Field(
        default=64 * 1024, ge=1, alias="MAX_HANDSHAKE_PAYLOAD_BYTES"
    )  # 64 KB

    # Rate limiting on signaling writes
    rate_limit_rpm: int = Field(default=60, ge=1, alias="RATE_LIMIT_RPM")

    # Celery beat
    sweep_interval_seconds: int = Field(default=30, ge=1, alias="SWEEP_INTERVAL_SECONDS")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure timing windows are ordered and secrets exist where required."""
        if self.heartbeat_interval_seconds >= self.session_staleness_seconds:
            raise ValueError(
                "HEARTBEAT_INTERVAL_SECONDS must be smaller than SESSION_STALENESS_SECONDS"
            )
        if self.session_staleness_seconds >= self.session_retention_seconds:
            raise ValueError(
                "SESSION_STALENESS_SECONDS must be smaller than SESSION_RETENTION_SECONDS"
            )

        if self.rendezvous_env in (Environment.STAGING, Environment.PROD):
            if not self.rendezvous_internal_secret:
                raise ValueError(
                    "RENDEZVOUS_INTERNAL_SECRET is required for "
                    f"RENDEZVOUS_ENV={self.rendezvous_env.value}"
                )

        return self

    @property
    def effective_celery_broker_url(self) -> str | None:
        """Return Celery broker URL, falling back to REDIS_URL if not set."""
        return self.celery_broker_url or self.redis_url

    @property
    def effective_celery_result_backend(self) -> str | None:
        """Return Celery result backend URL, falling back to REDIS_URL if not set."""
        return self.celery_result_backend or self.redis_url

    @property
    def json_logs(self) -> bool:
        """Deployed environments log JSON; local development logs for humans."""
        return self.rendezvous_env != Environment.LOCAL


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
