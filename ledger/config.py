"""Centralized ledger configuration using Pydantic settings."""
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration for the booking ledger and its HTTP adapter."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = Field(
        default="sqlite:///./hotel_booking.db",
        description="SQLAlchemy database URL. Defaults to local SQLite for development.",
    )
    run_db_migrations: bool = Field(
        default=False,
        description="Whether the service should create database tables on startup.",
    )
    jwt_secret: str = Field(default="super-secret", description="JWT signing secret")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60, description="Token lifetime in minutes")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")
    default_rate_limit: str = Field(default="30/minute", description="Global rate limiting rule")
    write_rate_limit: str = Field(default="20/minute", description="Rate limit for booking writes")
    rate_limiting_enabled: bool = Field(default=True, description="Toggle to disable SlowAPI limits (useful in tests)")
    availability_cache_ttl: int = Field(default=30, description="TTL (s) for cached hotel availability listings")
    lock_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Upper bound on waiting for a room lock or a database lock before giving up.",
    )
    max_units_per_booking: int = Field(default=10, ge=1, description="Largest quantity a single booking may hold")
    log_dir: str = Field(default="logs", description="Directory for per-service audit logs")


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the Settings object."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached Settings instance (useful for tests)."""

    get_settings.cache_clear()
