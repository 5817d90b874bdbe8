"""
Tandem — Application Configuration

Loads all configuration from environment variables (and an optional .env file)
using Pydantic Settings.  A cached ``get_settings()`` helper is provided so that
FastAPI dependency-injection (and any other call-site) always receives the same
validated instance without re-parsing the environment on every request.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Tandem chat backend."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Storage backend
    # ------------------------------------------------------------------ #
    STORE_BACKEND: str = "sql"  # sql / memory

    # ------------------------------------------------------------------ #
    # Database – Cloud SQL via Unix socket or private IP
    # ------------------------------------------------------------------ #
    DATABASE_URL: str = "postgresql+asyncpg://tandem_user@localhost:5432/tandem"
    DB_USER: str = "tandem_user"
    DB_PASSWORD: str = ""
    DB_NAME: str = "tandem"
    CLOUD_SQL_INSTANCE_CONNECTION: str = ""
    CLOUD_SQL_USE_UNIX_SOCKET: bool = True

    # ------------------------------------------------------------------ #
    # Redis – change fan-out between API processes (empty disables)
    # ------------------------------------------------------------------ #
    REDIS_URL: str = ""
    REDIS_CHANGES_CHANNEL: str = "tandem:changes"

    # ------------------------------------------------------------------ #
    # Chat limits
    # ------------------------------------------------------------------ #
    MAX_MESSAGE_LENGTH: int = 500
    MESSAGE_PAGE_LIMIT: int = 200

    # ------------------------------------------------------------------ #
    # Live feeds
    # ------------------------------------------------------------------ #
    FEED_KEEPALIVE_SECONDS: float = 15.0

    # ------------------------------------------------------------------ #
    # Security
    # ------------------------------------------------------------------ #
    AUTH_HOOK_SECRET: str = ""  # Shared secret for the auth provider's user-created hook

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "*"

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @field_validator("STORE_BACKEND")
    @classmethod
    def _backend_must_be_known(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("sql", "memory"):
            raise ValueError(f"STORE_BACKEND must be 'sql' or 'memory', got {v!r}")
        return v

    @field_validator("MAX_MESSAGE_LENGTH", "MESSAGE_PAGE_LIMIT")
    @classmethod
    def _limit_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Limit must be positive, got {v}")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached, validated ``Settings`` instance.

    Using ``@lru_cache`` guarantees the .env file is read and validated
    exactly once per process lifetime.  Import this function anywhere you
    need access to configuration::

        from app.config import get_settings
        settings = get_settings()
    """
    return Settings()
