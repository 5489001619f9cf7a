"""
Tests for account lockout and brute-force detection.

Tests cover:
- Lock threshold on the per-account failed login counter
- Lock expiry and manual unlock
- Per-IP brute-force threshold and window
- Failed logins against unknown usernames
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from tuning_portal.core.exceptions import AccountLockedError
from tuning_portal.core.time_utils import utcnow
from tuning_portal.models.security_events import (
    AlertType,
    SecurityEventCreate,
    SecurityEventType,
    SecurityLogQuery,
    SecuritySeverity,
)
from tuning_portal.services.lockout_service import (
    BRUTE_FORCE_THRESHOLD,
    LOCKOUT_REASON,
    MAX_FAILED_ATTEMPTS,
)

ATTACKER_IP = "203.0.113.50"


async def fail_login(auth_security_service, username="driver", ip=ATTACKER_IP, times=1):
    for _ in range(times):
        result = await auth_security_service.log_auth_failure(
            username, ip, "pytest-agent", "Invalid password"
        )
        assert result.ok


async def seed_failures(event_service, count, ip=ATTACKER_IP, age=timedelta(0)):
    for _ in range(count):
        await event_service.record_event(
            SecurityEventCreate(
                event_type=SecurityEventType.LOGIN_FAILURE,
                severity=SecuritySeverity.WARNING,
                ip_address=ip,
                created_at=utcnow() - age,
            )
        )


class TestAccountLockout:
    """Test the per-account lock threshold."""

    async def test_below_threshold_stays_unlocked(self, auth_security_service, test_user):
        await fail_login(auth_security_service, times=MAX_FAILED_ATTEMPTS - 1)

        status = await auth_security_service.check_account_lock("driver")
        assert status.exists
        assert not status.locked
        assert status.attempts == MAX_FAILED_ATTEMPTS - 1

    async def test_threshold_locks_for_thirty_minutes(
        self, auth_security_service, alert_repository, event_service, test_user
    ):
        await fail_login(auth_security_service, times=MAX_FAILED_ATTEMPTS)

        status = await auth_security_service.check_account_lock("driver")
        assert status.locked
        assert status.reason == LOCKOUT_REASON
        assert status.attempts == MAX_FAILED_ATTEMPTS

        now = utcnow()
        assert now + timedelta(minutes=29) <= status.locked_until <= now + timedelta(minutes=31)

        alerts = await alert_repository.list_alerts(alert_type=AlertType.ACCOUNT_LOCKOUT)
        assert len(alerts) == 1
        lockout_event = await event_service.get_event(alerts[0].event_id)
        assert lockout_event.event_type == SecurityEventType.ACCOUNT_LOCKOUT
        assert lockout_event.user_id == test_user.id
        assert lockout_event.details["attempts"] == MAX_FAILED_ATTEMPTS

    async def test_ensure_account_unlocked_raises_when_locked(
        self, auth_security_service, test_user
    ):
        await fail_login(auth_security_service, times=MAX_FAILED_ATTEMPTS)

        with pytest.raises(AccountLockedError) as exc_info:
            await auth_security_service.ensure_account_unlocked("driver")
        assert exc_info.value.attempts == MAX_FAILED_ATTEMPTS
        assert exc_info.value.lockout_until is not None

    async def test_successful_login_resets_counter(self, auth_security_service, test_user):
        await fail_login(auth_security_service, times=3)

        result = await auth_security_service.log_auth_success(
            test_user.id, "198.51.100.1", "pytest-agent"
        )
        assert result.ok

        status = await auth_security_service.check_account_lock("driver")
        assert status.attempts == 0

    async def test_expired_lock_is_cleared(
        self, lockout_service, user_repository, event_repository, test_user
    ):
        await user_repository.lock_account(
            test_user.id, LOCKOUT_REASON, utcnow() - timedelta(minutes=1)
        )

        status = await lockout_service.check_account_lock("driver")
        assert not status.locked

        user = await user_repository.get_by_id(test_user.id)
        assert not user.account_locked
        assert user.login_attempts == 0
        assert await event_repository.count_events(
            event_types=[SecurityEventType.ACCOUNT_UNLOCK]
        ) == 1

    async def test_manual_unlock(self, lockout_service, auth_security_service, admin_user, test_user):
        await fail_login(auth_security_service, times=MAX_FAILED_ATTEMPTS)

        assert await lockout_service.unlock_account(
            test_user.id, admin_user.id, "192.0.2.10", "browser"
        )

        status = await lockout_service.check_account_lock("driver")
        assert not status.locked
        assert status.attempts == 0

    async def test_unlock_unknown_user(self, lockout_service, admin_user):
        assert not await lockout_service.unlock_account(4242, admin_user.id, "192.0.2.10", "x")

    async def test_unknown_username(self, auth_security_service, event_repository):
        """A failure for an unknown username is recorded without touching any account."""
        await fail_login(auth_security_service, username="ghost", times=MAX_FAILED_ATTEMPTS)

        status = await auth_security_service.check_account_lock("ghost")
        assert not status.exists
        assert not status.locked
        assert await event_repository.count_events(
            event_types=[SecurityEventType.LOGIN_FAILURE]
        ) == MAX_FAILED_ATTEMPTS
        assert await event_repository.count_events(
            event_types=[SecurityEventType.ACCOUNT_LOCKOUT]
        ) == 0


class TestBruteForceDetection:
    """Test the per-IP failure threshold."""

    async def test_threshold_boundary(self, lockout_service, event_service, event_repository):
        await seed_failures(event_service, BRUTE_FORCE_THRESHOLD - 1)
        result = await lockout_service.check_brute_force_attempts(ATTACKER_IP)
        assert result.ok and result.value is False

        await seed_failures(event_service, 1)
        result = await lockout_service.check_brute_force_attempts(ATTACKER_IP)
        assert result.value is True

        await seed_failures(event_service, 1)
        result = await lockout_service.check_brute_force_attempts(ATTACKER_IP)
        assert result.value is True

        assert await event_repository.count_events(
            event_types=[SecurityEventType.MULTIPLE_FAILED_ATTEMPTS]
        ) == 2

    async def test_login_flow_fires_on_tenth_and_eleventh(
        self, auth_security_service, event_repository, alert_repository, test_user
    ):
        await fail_login(auth_security_service, times=BRUTE_FORCE_THRESHOLD - 1)
        assert await event_repository.count_events(
            event_types=[SecurityEventType.MULTIPLE_FAILED_ATTEMPTS]
        ) == 0

        await fail_login(auth_security_service)
        assert await event_repository.count_events(
            event_types=[SecurityEventType.MULTIPLE_FAILED_ATTEMPTS]
        ) == 1

        await fail_login(auth_security_service)
        assert await event_repository.count_events(
            event_types=[SecurityEventType.MULTIPLE_FAILED_ATTEMPTS]
        ) == 2

        alerts = await alert_repository.list_alerts(alert_type=AlertType.BRUTE_FORCE_ATTEMPT)
        assert len(alerts) == 2
        assert all(alert.user_id is None for alert in alerts)
        assert any(
            f"{BRUTE_FORCE_THRESHOLD + 1} failed login attempts from IP {ATTACKER_IP}"
            in alert.message
            for alert in alerts
        )

    async def test_brute_force_event_details(self, lockout_service, event_service, event_repository):
        await seed_failures(event_service, BRUTE_FORCE_THRESHOLD)

        await lockout_service.check_brute_force_attempts(ATTACKER_IP, related_event_id=77)

        logs, total = await event_repository.query_logs(
            SecurityLogQuery(event_type=SecurityEventType.MULTIPLE_FAILED_ATTEMPTS)
        )
        assert total == 1
        assert logs[0].user_id is None
        assert logs[0].user_agent == "system"
        assert logs[0].details == {
            "failedAttempts": BRUTE_FORCE_THRESHOLD,
            "timeWindow": "1 hour",
            "relatedEventId": 77,
        }

    async def test_old_failures_are_ignored(self, lockout_service, event_service):
        await seed_failures(event_service, BRUTE_FORCE_THRESHOLD, age=timedelta(hours=2))

        result = await lockout_service.check_brute_force_attempts(ATTACKER_IP)
        assert result.value is False

    async def test_other_ips_are_ignored(self, lockout_service, event_service):
        await seed_failures(event_service, BRUTE_FORCE_THRESHOLD, ip="198.51.100.99")

        result = await lockout_service.check_brute_force_attempts(ATTACKER_IP)
        assert result.value is False


class TestLockoutStoreFailures:
    """Test that lockout bookkeeping failures stay out of the login path."""

    @pytest.fixture
    def failing_lockout_insert(self, monkeypatch, event_service):
        record_event = event_service.record_event

        async def record_event_or_fail(event):
            if event.event_type == SecurityEventType.ACCOUNT_LOCKOUT:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return await record_event(event)

        monkeypatch.setattr(event_service, "record_event", record_event_or_fail)

    async def test_lockout_failure_is_returned(
        self, lockout_service, test_user, failing_lockout_insert
    ):
        test_user.login_attempts = MAX_FAILED_ATTEMPTS - 1

        result = await lockout_service.register_failed_attempt(
            test_user, ATTACKER_IP, "pytest-agent"
        )

        assert not result.ok
        assert isinstance(result.error, OperationalError)

    async def test_brute_force_check_still_runs(
        self, auth_security_service, event_repository, test_user, failing_lockout_insert
    ):
        await fail_login(auth_security_service, times=BRUTE_FORCE_THRESHOLD)

        assert await event_repository.count_events(
            event_types=[SecurityEventType.LOGIN_FAILURE]
        ) == BRUTE_FORCE_THRESHOLD
        assert await event_repository.count_events(
            event_types=[SecurityEventType.MULTIPLE_FAILED_ATTEMPTS]
        ) == 1
