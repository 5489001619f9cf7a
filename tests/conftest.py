"""
Shared fixtures for the security pipeline tests.

Every test gets its own in-memory SQLite database behind a real
``DatabaseManager`` and a geolocation service without an API key, so lookups
use the deterministic simulated locations.
"""

from datetime import UTC, datetime, timedelta

import pytest

from tuning_portal.core.config import DatabaseSettings
from tuning_portal.models.auth import UserRole
from tuning_portal.repositories.access_location_repository import AccessLocationRepository
from tuning_portal.repositories.rate_limit_repository import RateLimitRepository
from tuning_portal.repositories.security_alert_repository import SecurityAlertRepository
from tuning_portal.repositories.security_event_repository import SecurityEventRepository
from tuning_portal.repositories.user_repository import UserRepository
from tuning_portal.services.anomaly_detection_service import AnomalyDetectionService
from tuning_portal.services.auth_security_service import AuthSecurityService
from tuning_portal.services.database_manager import DatabaseManager
from tuning_portal.services.geolocation_service import GeolocationService
from tuning_portal.services.lockout_service import LockoutService
from tuning_portal.services.security_event_service import SecurityEventService
from tuning_portal.services.security_report_service import SecurityReportService


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, milliseconds: int) -> None:
        self.now += timedelta(milliseconds=milliseconds)


@pytest.fixture
def fake_clock():
    """Clock fixed at a known instant."""
    return FakeClock()


@pytest.fixture
async def database_manager():
    """Initialized database manager over an in-memory SQLite database."""
    manager = DatabaseManager(DatabaseSettings(url="sqlite+aiosqlite:///:memory:"))
    assert await manager.initialize()

    yield manager

    await manager.shutdown()


@pytest.fixture
def event_repository(database_manager):
    return SecurityEventRepository(database_manager)


@pytest.fixture
def alert_repository(database_manager):
    return SecurityAlertRepository(database_manager)


@pytest.fixture
def location_repository(database_manager):
    return AccessLocationRepository(database_manager)


@pytest.fixture
def user_repository(database_manager):
    return UserRepository(database_manager)


@pytest.fixture
def rate_limit_repository(database_manager):
    return RateLimitRepository(database_manager)


@pytest.fixture
async def geolocation_service():
    """Geolocation without an API key: always simulated."""
    service = GeolocationService(api_key=None)
    yield service
    await service.close()


@pytest.fixture
def event_service(event_repository, alert_repository):
    return SecurityEventService(event_repository, alert_repository)


@pytest.fixture
def anomaly_service(event_service, location_repository, geolocation_service):
    return AnomalyDetectionService(event_service, location_repository, geolocation_service)


@pytest.fixture
def lockout_service(event_service, event_repository, user_repository):
    return LockoutService(event_service, event_repository, user_repository)


@pytest.fixture
def auth_security_service(
    event_service,
    anomaly_service,
    lockout_service,
    user_repository,
    location_repository,
    geolocation_service,
):
    return AuthSecurityService(
        event_service,
        anomaly_service,
        lockout_service,
        user_repository,
        location_repository,
        geolocation_service,
    )


@pytest.fixture
def report_service(event_repository, alert_repository):
    return SecurityReportService(event_repository, alert_repository)


@pytest.fixture
async def test_user(user_repository):
    """Regular user in the database."""
    return await user_repository.create_user("driver", "driver@example.com")


@pytest.fixture
async def admin_user(user_repository):
    """Admin user in the database."""
    return await user_repository.create_user("tuner", "tuner@example.com", UserRole.ADMIN)
