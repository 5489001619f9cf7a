"""
Tests for geographic anomaly detection on successful logins.

The geolocation fixture has no API key, so locations come from the
deterministic simulation: 203.0.113.7 and 10.0.0.1 map to the same
country/region, 10.0.0.2 to a different one.
"""

from unittest.mock import AsyncMock

from sqlalchemy.exc import OperationalError

from tuning_portal.models.security_events import AlertType, SecurityEventType
from tuning_portal.services.anomaly_detection_service import AnomalyDetectionService
from tuning_portal.services.auth_security_service import AuthSecurityService
from tuning_portal.services.geolocation_service import simulate_geolocation

HOME_IP = "203.0.113.7"
SAME_REGION_IP = "10.0.0.1"
OTHER_REGION_IP = "10.0.0.2"


def test_fixture_addresses_map_as_expected():
    home = simulate_geolocation(HOME_IP)
    same = simulate_geolocation(SAME_REGION_IP)
    other = simulate_geolocation(OTHER_REGION_IP)

    assert (home.country, home.region) == (same.country, same.region)
    assert (home.country, home.region) != (other.country, other.region)


async def count_location_alerts(alert_repository) -> int:
    alerts = await alert_repository.list_alerts(alert_type=AlertType.NEW_LOCATION_ACCESS, limit=100)
    return len(alerts)


class TestGeographicAnomaly:
    """Test first-access detection."""

    async def test_first_login_raises_one_alert(
        self, auth_security_service, alert_repository, test_user
    ):
        await auth_security_service.log_auth_success(test_user.id, HOME_IP, "pytest-agent")
        assert await count_location_alerts(alert_repository) == 1

        await auth_security_service.log_auth_success(test_user.id, HOME_IP, "pytest-agent")
        assert await count_location_alerts(alert_repository) == 1

    async def test_same_region_from_other_ip_is_not_new(
        self, anomaly_service, alert_repository, test_user
    ):
        first = await anomaly_service.check_geographic_anomaly(test_user.id, HOME_IP, "ua")
        second = await anomaly_service.check_geographic_anomaly(test_user.id, SAME_REGION_IP, "ua")

        assert first.value is True
        assert second.value is False
        assert await count_location_alerts(alert_repository) == 1

    async def test_new_region_raises_another_alert(
        self, anomaly_service, alert_repository, test_user
    ):
        await anomaly_service.check_geographic_anomaly(test_user.id, HOME_IP, "ua")
        result = await anomaly_service.check_geographic_anomaly(test_user.id, OTHER_REGION_IP, "ua")

        assert result.value is True
        assert await count_location_alerts(alert_repository) == 2

    async def test_locations_are_tracked_per_user(
        self, anomaly_service, alert_repository, test_user, admin_user
    ):
        await anomaly_service.check_geographic_anomaly(test_user.id, HOME_IP, "ua")
        result = await anomaly_service.check_geographic_anomaly(admin_user.id, HOME_IP, "ua")

        assert result.value is True
        assert await count_location_alerts(alert_repository) == 2

    async def test_every_access_is_recorded(
        self, anomaly_service, location_repository, test_user
    ):
        await anomaly_service.check_geographic_anomaly(test_user.id, HOME_IP, "ua")
        await anomaly_service.check_geographic_anomaly(test_user.id, SAME_REGION_IP, "ua")

        locations = await location_repository.list_for_user(test_user.id)
        assert len(locations) == 2
        assert sorted(loc["is_first_access"] for loc in locations) == [False, True]

    async def test_anomaly_event_details(
        self, anomaly_service, alert_repository, event_service, test_user
    ):
        await anomaly_service.check_geographic_anomaly(
            test_user.id, HOME_IP, "ua", related_event_id=12
        )

        [alert] = await alert_repository.list_alerts(alert_type=AlertType.NEW_LOCATION_ACCESS)
        event = await event_service.get_event(alert.event_id)
        location = simulate_geolocation(HOME_IP)

        assert event.event_type == SecurityEventType.GEOGRAPHIC_ANOMALY
        assert event.details == {
            "country": location.country,
            "region": location.region,
            "city": location.city,
            "relatedEventId": 12,
        }
        assert alert.message == (
            "User accessed account from a new location: "
            f"{location.city}, {location.region}, {location.country}"
        )

    async def test_store_failure_does_not_fail_login(
        self,
        event_service,
        geolocation_service,
        user_repository,
        lockout_service,
        location_repository,
        test_user,
    ):
        """A broken location store is reported but the login event still lands."""
        broken_locations = AsyncMock()
        broken_locations.count_matching_locations.side_effect = OperationalError(
            "SELECT", {}, Exception("database is locked")
        )
        anomaly_service = AnomalyDetectionService(
            event_service, broken_locations, geolocation_service
        )
        service = AuthSecurityService(
            event_service,
            anomaly_service,
            lockout_service,
            user_repository,
            location_repository,
            geolocation_service,
        )

        direct = await anomaly_service.check_geographic_anomaly(test_user.id, HOME_IP, "ua")
        assert not direct.ok

        result = await service.log_auth_success(test_user.id, HOME_IP, "ua")
        assert result.ok
        event = await event_service.get_event(result.value)
        assert event.event_type == SecurityEventType.LOGIN_SUCCESS


class TestRegistration:
    """Test registration seeding the first location."""

    async def test_registration_seeds_location(
        self, auth_security_service, anomaly_service, alert_repository, event_service, test_user
    ):
        result = await auth_security_service.log_registration(test_user.id, HOME_IP, "ua")

        event = await event_service.get_event(result.value)
        assert event.event_type == SecurityEventType.REGISTRATION
        expected = simulate_geolocation(HOME_IP)
        assert event.details["geolocation"] == {
            "country": expected.country,
            "region": expected.region,
            "city": expected.city,
            "latitude": expected.latitude,
            "longitude": expected.longitude,
        }
        assert "country" not in event.details

        login = await anomaly_service.check_geographic_anomaly(test_user.id, HOME_IP, "ua")
        assert login.value is False
        assert await count_location_alerts(alert_repository) == 0
