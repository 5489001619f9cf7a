"""
Authentication Security Service

Entry points the authentication flow calls after verifying credentials or
creating an account. They record the corresponding event and then run the
anomaly and lockout checks explicitly in the same call chain.

Every entry point is best effort: a monitoring store outage is logged and
returned in the result, never raised into the login or registration handler.
"""

import logging

from tuning_portal.core.best_effort import best_effort, log_failure
from tuning_portal.core.exceptions import AccountLockedError
from tuning_portal.core.performance import PerformanceMonitor
from tuning_portal.models.security_events import (
    AccountLockStatus,
    SecurityEventCreate,
    SecurityEventType,
    SecuritySeverity,
)
from tuning_portal.repositories.access_location_repository import AccessLocationRepository
from tuning_portal.repositories.user_repository import UserRepository
from tuning_portal.services.anomaly_detection_service import AnomalyDetectionService
from tuning_portal.services.geolocation_service import GeolocationService
from tuning_portal.services.lockout_service import LockoutService
from tuning_portal.services.security_event_service import SecurityEventService, timestamp_detail

logger = logging.getLogger(__name__)

LOGIN_METHOD = "jwt+session"


class AuthSecurityService:
    """Security logging for login and registration."""

    def __init__(
        self,
        event_service: SecurityEventService,
        anomaly_service: AnomalyDetectionService,
        lockout_service: LockoutService,
        user_repository: UserRepository,
        location_repository: AccessLocationRepository,
        geolocation_service: GeolocationService,
        performance_monitor: PerformanceMonitor | None = None,
    ):
        self._events = event_service
        self._anomaly = anomaly_service
        self._lockout = lockout_service
        self._users = user_repository
        self._locations = location_repository
        self._geolocation = geolocation_service
        self._monitor = performance_monitor

        if self._monitor:
            self._apply_monitoring()

    def _apply_monitoring(self) -> None:
        """Apply performance monitoring to the entry points."""
        for name in ("log_auth_success", "log_auth_failure", "log_registration"):
            wrapped = self._monitor.monitor_service_method("AuthSecurityService", name)(
                getattr(self, name)
            )
            setattr(self, name, wrapped)

    @best_effort("log_auth_success")
    async def log_auth_success(self, user_id: int, ip_address: str, user_agent: str) -> int:
        """
        Record a successful login and check its location.

        The user's last login IP and time are updated and the failed login
        counter is reset.

        Args:
            user_id: Authenticated user
            ip_address: Client IP
            user_agent: Client user agent

        Returns:
            Best-effort result carrying the login event ID
        """
        event_id = await self._events.record_event(
            SecurityEventCreate(
                user_id=user_id,
                event_type=SecurityEventType.LOGIN_SUCCESS,
                severity=SecuritySeverity.INFO,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"method": LOGIN_METHOD, "timestamp": timestamp_detail()},
            )
        )

        await self._users.record_successful_login(user_id, ip_address)

        anomaly = await self._anomaly.check_geographic_anomaly(
            user_id, ip_address, user_agent, event_id
        )
        log_failure(anomaly, f"Geographic anomaly check for login event {event_id}")

        return event_id

    @best_effort("log_auth_failure")
    async def log_auth_failure(
        self, username: str, ip_address: str, user_agent: str, reason: str
    ) -> int:
        """
        Record a failed login and apply the lockout and brute-force rules.

        The failure event is recorded whether or not ``username`` exists. Only
        attempts against an existing account touch its counter and trigger the
        per-IP check.

        Args:
            username: Attempted username
            ip_address: Client IP
            user_agent: Client user agent
            reason: Why authentication failed

        Returns:
            Best-effort result carrying the failure event ID
        """
        user = await self._users.get_by_username(username)

        event_id = await self._events.record_event(
            SecurityEventCreate(
                user_id=user.id if user else None,
                event_type=SecurityEventType.LOGIN_FAILURE,
                severity=SecuritySeverity.WARNING,
                ip_address=ip_address,
                user_agent=user_agent,
                details={
                    "username": username,
                    "reason": reason,
                    "timestamp": timestamp_detail(),
                },
            )
        )

        if user is not None:
            attempts = await self._lockout.register_failed_attempt(user, ip_address, user_agent)
            log_failure(attempts, f"Lockout bookkeeping for user {user.id}")

            brute_force = await self._lockout.check_brute_force_attempts(ip_address, event_id)
            log_failure(brute_force, f"Brute force check for failure event {event_id}")

        return event_id

    @best_effort("log_registration")
    async def log_registration(self, user_id: int, ip_address: str, user_agent: str) -> int:
        """
        Record a registration and seed the user's first access location.

        Args:
            user_id: Newly created user
            ip_address: Client IP
            user_agent: Client user agent

        Returns:
            Best-effort result carrying the registration event ID
        """
        location = await self._geolocation.lookup(ip_address)

        event_id = await self._events.record_event(
            SecurityEventCreate(
                user_id=user_id,
                event_type=SecurityEventType.REGISTRATION,
                severity=SecuritySeverity.INFO,
                ip_address=ip_address,
                user_agent=user_agent,
                details={
                    "geolocation": {
                        "country": location.country,
                        "region": location.region,
                        "city": location.city,
                        "latitude": location.latitude,
                        "longitude": location.longitude,
                    },
                    "timestamp": timestamp_detail(),
                },
            )
        )

        await self._locations.insert_location(
            user_id=user_id,
            ip_address=ip_address,
            location=location,
            is_first_access=True,
        )
        return event_id

    async def check_account_lock(self, username: str) -> AccountLockStatus:
        """Current lock status of ``username``; expired locks are cleared."""
        return await self._lockout.check_account_lock(username)

    async def ensure_account_unlocked(self, username: str) -> None:
        """
        Guard for the login handler.

        Raises:
            AccountLockedError: If the account is currently locked
        """
        status = await self._lockout.check_account_lock(username)
        if status.locked:
            raise AccountLockedError(
                username, lockout_until=status.locked_until, attempts=status.attempts
            )
