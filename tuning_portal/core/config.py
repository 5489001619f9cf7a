"""
Centralized configuration for the Tuning Portal security backend.

Settings are loaded from environment variables (prefix ``TUNING_PORTAL_``,
nested sections separated by ``__``) and an optional ``.env`` file, e.g.::

    TUNING_PORTAL_DATABASE__URL=sqlite+aiosqlite:///./data/portal.db
    TUNING_PORTAL_SECURITY__ADMIN_API_RATE_LIMIT=60
    TUNING_PORTAL_GEOLOCATION__API_KEY=...
"""

import logging
from functools import lru_cache

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class ServerSettings(BaseModel):
    """HTTP server settings."""

    host: str = Field(default="127.0.0.1", description="Host to bind")
    port: int = Field(default=8000, description="Port to bind")
    reload: bool = Field(default=False, description="Enable auto-reload")
    workers: int = Field(default=1, description="Number of worker processes")
    proxy_headers: bool = Field(default=True, description="Trust X-Forwarded-* headers")


class LoggingSettings(BaseModel):
    """Logging settings."""

    level: str = Field(default="INFO", description="Root log level")
    format: str = Field(
        default="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        description="Log record format",
    )


class DatabaseSettings(BaseModel):
    """Relational store settings."""

    url: str = Field(
        default="sqlite+aiosqlite:///./data/tuning_portal.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(default=False, description="Echo SQL statements")


class GeolocationSettings(BaseModel):
    """IP geolocation lookup settings."""

    api_key: str | None = Field(default=None, description="ipstack access key")
    base_url: str = Field(default="https://api.ipstack.com", description="ipstack base URL")
    timeout_seconds: float = Field(default=5.0, description="Lookup request timeout")


class SecuritySettings(BaseModel):
    """Security monitoring and rate limiting settings."""

    rate_limit_enabled: bool = Field(default=True, description="Enable API rate limiting")
    admin_api_rate_limit: int = Field(
        default=120, description="Admin API requests allowed per window and client"
    )
    admin_api_rate_window_ms: int = Field(
        default=60_000, description="Admin API rate limit window in milliseconds"
    )
    rate_limit_sweep_interval_seconds: float = Field(
        default=300.0, description="Interval between in-memory rate limit sweeps"
    )
    retention_sweep_interval_seconds: float = Field(
        default=86_400.0, description="Interval between retention sweeps"
    )
    event_retention_days: int = Field(default=365, description="Security event retention")
    resolved_alert_retention_days: int = Field(
        default=182, description="Retention of resolved alerts after resolution"
    )


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="TUNING_PORTAL_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="Tuning Portal Security", description="Application name")
    environment: str = Field(default="development", description="Deployment environment")
    debug: bool = Field(default=False, description="Enable debug mode")

    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    geolocation: GeolocationSettings = Field(default_factory=GeolocationSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    # Accepted outside the prefix for parity with existing deployments
    ipstack_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("IPSTACK_API_KEY", "TUNING_PORTAL_IPSTACK_API_KEY"),
    )

    def is_development(self) -> bool:
        """Check whether the application runs in development mode."""
        return self.environment.lower() in ("development", "dev", "local")

    def get_geolocation_api_key(self) -> str | None:
        """Return the configured geolocation key, preferring the nested setting."""
        return self.geolocation.api_key or self.ipstack_api_key


@lru_cache
def get_settings() -> Settings:
    """Get the cached application settings."""
    settings = Settings()
    logger.debug(f"Loaded settings for environment: {settings.environment}")
    return settings
