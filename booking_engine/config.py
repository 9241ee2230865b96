"""Centralized application configuration using Pydantic settings."""
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration shared across services."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = Field(
        default="sqlite:///./reservations.db",
        description="SQLAlchemy database URL. Defaults to local SQLite for development.",
    )
    run_db_migrations: bool = Field(
        default=False,
        description="Whether this service should create/update database tables on startup.",
    )
    service_api_key: str = Field(default="service-key", description="API key for service-to-service calls")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")
    default_rate_limit: str = Field(default="60/minute", description="Global rate limiting rule")
    rate_limiting_enabled: bool = Field(default=True, description="Toggle to disable SlowAPI limits (useful in tests)")
    catalog_cache_ttl: int = Field(default=60, description="TTL (s) for cached resource listings")

    payment_window_hours: int = Field(default=24, description="Hours an accepted request may stay unpaid")
    pending_claim_hours: int = Field(
        default=24,
        description="Hours a request awaiting review keeps its slot claimed (0 disables pending claims)",
    )
    pricing_rule: Literal["daily", "hourly"] = Field(default="daily", description="How total_amount is computed")
    booking_code_prefix: str = Field(default="AMN", description="Prefix of externally visible booking codes")

    checkin_token_secret: str = Field(default="checkin-secret", description="Signing secret for check-in tokens")
    checkin_token_algorithm: str = Field(default="HS256", description="Signing algorithm for check-in tokens")

    reservation_isolation_level: Optional[str] = Field(
        default="SERIALIZABLE",
        description="Isolation level for the check-and-insert transaction (ignored on SQLite)",
    )
    conflict_retry_attempts: int = Field(default=1, description="Retries after a serialization failure on create")
    hold_sweep_interval_seconds: int = Field(
        default=300,
        description="Interval of the background hold sweep (0 disables it)",
    )

    event_broker_host: Optional[str] = Field(default=None, description="RabbitMQ host for state-change events")
    event_queue: str = Field(default="reservations", description="Queue receiving state-change events")

    log_dir: str = Field(default="logs", description="Directory for audit logs")

    reservations_service_port: int = 8005
    resources_service_port: int = 8006


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the Settings object."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached Settings instance (useful for tests)."""

    get_settings.cache_clear()
