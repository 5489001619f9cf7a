"""
Geographic Anomaly Detection

Flags the first access of a user from a country and region combination that
has never been recorded for them.

The novelty check is a SELECT followed by an INSERT without a surrounding
transaction. Two concurrent logins from the same new location can both see
zero prior rows and both raise an alert; this race is accepted.
"""

import logging

from tuning_portal.core.best_effort import best_effort
from tuning_portal.models.security_events import (
    AlertType,
    GeolocationData,
    SecurityEventCreate,
    SecurityEventType,
    SecuritySeverity,
)
from tuning_portal.repositories.access_location_repository import AccessLocationRepository
from tuning_portal.services.geolocation_service import GeolocationService
from tuning_portal.services.security_event_service import SecurityEventService

logger = logging.getLogger(__name__)


def new_location_message(location: GeolocationData) -> str:
    return (
        "User accessed account from a new location: "
        f"{location.city}, {location.region}, {location.country}"
    )


class AnomalyDetectionService:
    """Detects logins from previously unseen locations."""

    def __init__(
        self,
        event_service: SecurityEventService,
        location_repository: AccessLocationRepository,
        geolocation_service: GeolocationService,
    ):
        self._events = event_service
        self._locations = location_repository
        self._geolocation = geolocation_service

    @best_effort("check_geographic_anomaly")
    async def check_geographic_anomaly(
        self,
        user_id: int,
        ip_address: str,
        user_agent: str,
        related_event_id: int | None = None,
    ) -> bool:
        """
        Record this access and raise an alert if its location is new for the user.

        Args:
            user_id: User who logged in
            ip_address: Source IP of the login
            user_agent: Client user agent
            related_event_id: Login event that triggered the check

        Returns:
            Best-effort result whose value is True when this was a first access
        """
        location = await self._geolocation.lookup(ip_address)

        prior = await self._locations.count_matching_locations(
            user_id, location.country, location.region
        )
        is_first_access = prior == 0

        await self._locations.insert_location(
            user_id=user_id,
            ip_address=ip_address,
            location=location,
            is_first_access=is_first_access,
        )

        if not is_first_access:
            return False

        anomaly_event_id = await self._events.record_event(
            SecurityEventCreate(
                user_id=user_id,
                event_type=SecurityEventType.GEOGRAPHIC_ANOMALY,
                severity=SecuritySeverity.WARNING,
                ip_address=ip_address,
                user_agent=user_agent,
                details={
                    "country": location.country,
                    "region": location.region,
                    "city": location.city,
                    "relatedEventId": related_event_id,
                },
            )
        )

        await self._events.create_alert(
            event_id=anomaly_event_id,
            alert_type=AlertType.NEW_LOCATION_ACCESS,
            severity=SecuritySeverity.WARNING,
            message=new_location_message(location),
            user_id=user_id,
        )

        logger.info(
            f"First access for user {user_id} from {location.region}, {location.country}",
            extra={"user_id": user_id, "simulated_location": location.simulated},
        )
        return True
