"""Tests for environment-driven settings."""

import pytest

from tuning_portal.core.config import LoggingSettings, Settings, get_settings
from tuning_portal.core.logging_config import build_logging_config


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults(monkeypatch):
    monkeypatch.delenv("IPSTACK_API_KEY", raising=False)

    settings = Settings(_env_file=None)

    assert settings.security.rate_limit_enabled
    assert settings.security.event_retention_days == 365
    assert settings.database.url.startswith("sqlite+aiosqlite://")
    assert settings.get_geolocation_api_key() is None
    assert settings.is_development()


def test_nested_environment_overrides(monkeypatch):
    monkeypatch.setenv("TUNING_PORTAL_ENVIRONMENT", "production")
    monkeypatch.setenv("TUNING_PORTAL_DATABASE__URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("TUNING_PORTAL_SECURITY__ADMIN_API_RATE_LIMIT", "5")
    monkeypatch.setenv("TUNING_PORTAL_SECURITY__RATE_LIMIT_ENABLED", "false")

    settings = get_settings()

    assert not settings.is_development()
    assert settings.database.url == "sqlite+aiosqlite:///:memory:"
    assert settings.security.admin_api_rate_limit == 5
    assert not settings.security.rate_limit_enabled


def test_geolocation_key_sources(monkeypatch):
    monkeypatch.setenv("IPSTACK_API_KEY", "legacy-key")
    assert Settings(_env_file=None).get_geolocation_api_key() == "legacy-key"

    monkeypatch.setenv("TUNING_PORTAL_GEOLOCATION__API_KEY", "nested-key")
    assert Settings(_env_file=None).get_geolocation_api_key() == "nested-key"


def test_settings_are_cached():
    assert get_settings() is get_settings()


def test_logging_config_uses_level():
    config = build_logging_config(LoggingSettings(level="debug"))

    assert config["root"]["level"] == "DEBUG"
    assert config["loggers"]["tuning_portal"]["level"] == "DEBUG"
    assert config["loggers"]["uvicorn.access"]["handlers"] == ["console"]
