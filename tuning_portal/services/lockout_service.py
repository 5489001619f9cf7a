"""
Brute-Force and Lockout Monitoring

Two checks run on the authentication failure path:

* per account: a persistent failed login counter on the user row; at
  ``MAX_FAILED_ATTEMPTS`` the account is locked for ``LOCKOUT_DURATION``.
* per source IP: failed logins from one address within ``BRUTE_FORCE_WINDOW``;
  at ``BRUTE_FORCE_THRESHOLD`` an IP-level event and alert are raised. The
  check fires again on every further failure inside the window.

Thresholds are fixed and not configurable per call.
"""

import logging
from datetime import timedelta

from tuning_portal.core.best_effort import best_effort
from tuning_portal.core.performance import PerformanceMonitor
from tuning_portal.core.time_utils import ensure_utc, utcnow
from tuning_portal.models.auth import User
from tuning_portal.models.security_events import (
    AccountLockStatus,
    AlertType,
    SecurityEventCreate,
    SecurityEventType,
    SecuritySeverity,
)
from tuning_portal.repositories.security_event_repository import SecurityEventRepository
from tuning_portal.repositories.user_repository import UserRepository
from tuning_portal.services.security_event_service import SecurityEventService, timestamp_detail

logger = logging.getLogger(__name__)

MAX_FAILED_ATTEMPTS = 5
LOCKOUT_DURATION = timedelta(minutes=30)
LOCKOUT_REASON = "Multiple failed login attempts"

BRUTE_FORCE_THRESHOLD = 10
BRUTE_FORCE_WINDOW = timedelta(hours=1)
BRUTE_FORCE_WINDOW_LABEL = "1 hour"

SYSTEM_USER_AGENT = "system"


class LockoutService:
    """Service for account lockout and brute-force detection."""

    def __init__(
        self,
        event_service: SecurityEventService,
        event_repository: SecurityEventRepository,
        user_repository: UserRepository,
        performance_monitor: PerformanceMonitor | None = None,
    ):
        """Initialize the lockout service.

        Args:
            event_service: Event recorder used for lockout and brute-force events
            event_repository: Event store used for the per-IP failure count
            user_repository: User store holding the lock state
            performance_monitor: Optional performance monitoring instance
        """
        self._events = event_service
        self._event_repo = event_repository
        self._users = user_repository
        self._monitor = performance_monitor

        if self._monitor:
            self._apply_monitoring()

        logger.info("LockoutService initialized")

    def _apply_monitoring(self) -> None:
        """Apply performance monitoring to service methods."""
        self.register_failed_attempt = self._monitor.monitor_service_method(
            "LockoutService", "register_failed_attempt"
        )(self.register_failed_attempt)

        self.check_brute_force_attempts = self._monitor.monitor_service_method(
            "LockoutService", "check_brute_force_attempts"
        )(self.check_brute_force_attempts)

    @best_effort("register_failed_attempt")
    async def register_failed_attempt(
        self, user: User, ip_address: str, user_agent: str
    ) -> int:
        """Increment a resolved user's failed login counter and lock at the threshold.

        Args:
            user: The account the failed login targeted
            ip_address: Source IP of the attempt
            user_agent: Client user agent

        Returns:
            Best-effort result carrying the failed attempt count after this attempt
        """
        attempts = (user.login_attempts or 0) + 1
        await self._users.set_login_attempts(user.id, attempts)

        if attempts >= MAX_FAILED_ATTEMPTS:
            await self._lock_account(user, attempts, ip_address, user_agent)

        return attempts

    async def _lock_account(
        self, user: User, attempts: int, ip_address: str, user_agent: str
    ) -> None:
        lock_until = utcnow() + LOCKOUT_DURATION
        await self._users.lock_account(user.id, LOCKOUT_REASON, lock_until)

        lockout_event_id = await self._events.record_event(
            SecurityEventCreate(
                user_id=user.id,
                event_type=SecurityEventType.ACCOUNT_LOCKOUT,
                severity=SecuritySeverity.ERROR,
                ip_address=ip_address,
                user_agent=user_agent,
                details={
                    "reason": LOCKOUT_REASON,
                    "lockUntil": lock_until.isoformat(),
                    "attempts": attempts,
                },
            )
        )

        await self._events.create_alert(
            event_id=lockout_event_id,
            alert_type=AlertType.ACCOUNT_LOCKOUT,
            severity=SecuritySeverity.ERROR,
            message=f"Account locked after {attempts} failed login attempts",
            user_id=user.id,
        )

        logger.warning(
            f"User {user.username} locked out until {lock_until.isoformat()}",
            extra={"user_id": user.id, "attempts": attempts},
        )

    @best_effort("check_brute_force_attempts")
    async def check_brute_force_attempts(
        self, ip_address: str, related_event_id: int | None = None
    ) -> bool:
        """Raise an IP-level alert when failed logins from one address pile up.

        Args:
            ip_address: Source IP to evaluate
            related_event_id: Failure event that triggered the check

        Returns:
            Best-effort result whose value is True when the threshold was reached
        """
        failed_attempts = await self._event_repo.count_events(
            since=utcnow() - BRUTE_FORCE_WINDOW,
            event_types=[SecurityEventType.LOGIN_FAILURE],
            ip_address=ip_address,
        )

        if failed_attempts < BRUTE_FORCE_THRESHOLD:
            return False

        event_id = await self._events.record_event(
            SecurityEventCreate(
                user_id=None,
                event_type=SecurityEventType.MULTIPLE_FAILED_ATTEMPTS,
                severity=SecuritySeverity.ERROR,
                ip_address=ip_address,
                user_agent=SYSTEM_USER_AGENT,
                details={
                    "failedAttempts": failed_attempts,
                    "timeWindow": BRUTE_FORCE_WINDOW_LABEL,
                    "relatedEventId": related_event_id,
                },
            )
        )

        await self._events.create_alert(
            event_id=event_id,
            alert_type=AlertType.BRUTE_FORCE_ATTEMPT,
            severity=SecuritySeverity.ERROR,
            message=(
                f"Possible brute force attack detected: {failed_attempts} failed login "
                f"attempts from IP {ip_address} in the last {BRUTE_FORCE_WINDOW_LABEL}"
            ),
        )
        return True

    async def check_account_lock(self, username: str) -> AccountLockStatus:
        """Report the lock state of an account, clearing an expired lock.

        Args:
            username: Account to check

        Returns:
            Lock status at call time
        """
        user = await self._users.get_by_username(username)
        if user is None:
            return AccountLockStatus(username=username)

        locked_until = ensure_utc(user.account_locked_until)
        if user.account_locked and locked_until is not None and locked_until <= utcnow():
            await self._users.unlock_account(user.id)
            await self._events.record_event(
                SecurityEventCreate(
                    user_id=user.id,
                    event_type=SecurityEventType.ACCOUNT_UNLOCK,
                    severity=SecuritySeverity.INFO,
                    ip_address="unknown",
                    user_agent=SYSTEM_USER_AGENT,
                    details={"reason": "Lock expired", "timestamp": timestamp_detail()},
                )
            )
            logger.info(f"Lock on user {username} expired and was cleared")
            return AccountLockStatus(username=username, exists=True)

        return AccountLockStatus(
            username=username,
            exists=True,
            locked=user.account_locked,
            locked_until=locked_until if user.account_locked else None,
            reason=user.account_locked_reason if user.account_locked else None,
            attempts=user.login_attempts or 0,
        )

    async def unlock_account(
        self, user_id: int, unlocked_by: int, ip_address: str, user_agent: str
    ) -> bool:
        """Operator unlock of an account.

        Args:
            user_id: Account to unlock
            unlocked_by: Admin performing the unlock
            ip_address: Admin's source IP
            user_agent: Admin's user agent

        Returns:
            True if the account exists and was unlocked
        """
        if not await self._users.unlock_account(user_id):
            return False

        await self._events.record_event(
            SecurityEventCreate(
                user_id=user_id,
                event_type=SecurityEventType.ACCOUNT_UNLOCK,
                severity=SecuritySeverity.INFO,
                ip_address=ip_address,
                user_agent=user_agent,
                details={
                    "reason": "Unlocked by administrator",
                    "unlockedBy": unlocked_by,
                    "timestamp": timestamp_detail(),
                },
            )
        )
        logger.info(f"User {user_id} unlocked by admin {unlocked_by}")
        return True
