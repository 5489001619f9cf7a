"""
Tests for the security report service.

Tests cover:
- Overall and windowed statistics
- Log listing filters, pagination and the user join
- Unresolved alert ordering
- Alert resolution
"""

from datetime import timedelta
from unittest.mock import AsyncMock

from sqlalchemy.exc import OperationalError

from tuning_portal.core.time_utils import utcnow
from tuning_portal.models.security_events import (
    AlertType,
    SecurityEventCreate,
    SecurityEventType,
    SecurityLogQuery,
    SecuritySeverity,
)
from tuning_portal.services.security_report_service import SecurityReportService


async def record(event_service, event_type, severity, user_id=None, age=timedelta(0)):
    return await event_service.record_event(
        SecurityEventCreate(
            user_id=user_id,
            event_type=event_type,
            severity=severity,
            ip_address="192.0.2.33",
            user_agent="pytest-agent",
            created_at=utcnow() - age,
        )
    )


async def raise_alert(event_service, severity, user_id=None, message="alert"):
    event_id = await record(event_service, SecurityEventType.SUSPICIOUS_ACTIVITY, severity, user_id)
    return await event_service.create_alert(
        event_id=event_id,
        alert_type=AlertType.BRUTE_FORCE_ATTEMPT,
        severity=severity,
        message=message,
        user_id=user_id,
    )


class TestStatistics:
    """Test aggregate statistics."""

    async def test_security_stats(self, report_service, event_service):
        await record(event_service, SecurityEventType.LOGIN_SUCCESS, SecuritySeverity.INFO)
        await record(event_service, SecurityEventType.LOGIN_SUCCESS, SecuritySeverity.INFO)
        await record(event_service, SecurityEventType.LOGIN_FAILURE, SecuritySeverity.WARNING)
        alert_id = await raise_alert(event_service, SecuritySeverity.ERROR)
        await raise_alert(event_service, SecuritySeverity.CRITICAL)
        await report_service.resolve_security_alert(alert_id, resolved_by=1)

        stats = await report_service.get_security_stats()

        assert stats.total_events == 5
        assert stats.events_by_type == {
            "login_success": 2,
            "login_failure": 1,
            "suspicious_activity": 2,
        }
        assert stats.events_by_severity == {"info": 2, "warning": 1, "error": 1, "critical": 1}
        assert len(stats.recent_alerts) == 2
        assert stats.unresolved_alerts == 1

    async def test_recent_alerts_are_capped(self, report_service, event_service):
        for _ in range(12):
            await raise_alert(event_service, SecuritySeverity.WARNING)

        stats = await report_service.get_security_stats()
        assert len(stats.recent_alerts) == 10

    async def test_log_stats_windows(self, report_service, event_service):
        await record(event_service, SecurityEventType.LOGIN_FAILURE, SecuritySeverity.WARNING)
        await record(
            event_service,
            SecurityEventType.LOGIN_FAILURE,
            SecuritySeverity.WARNING,
            age=timedelta(hours=30),
        )
        await record(
            event_service,
            SecurityEventType.LOGIN_FAILURE,
            SecuritySeverity.WARNING,
            age=timedelta(days=45),
        )
        await record(event_service, SecurityEventType.SUSPICIOUS_ACTIVITY, SecuritySeverity.ERROR)
        await record(event_service, SecurityEventType.API_ACCESS, SecuritySeverity.INFO)
        await record(
            event_service, SecurityEventType.SENSITIVE_DATA_ACCESS, SecuritySeverity.WARNING
        )

        stats = await report_service.get_security_log_stats(days=30)

        assert stats.total_events == 5
        assert stats.events_by_type["login_failure"] == 2
        assert stats.recent_failed_logins == 1
        assert stats.recent_suspicious_activities == 1
        assert stats.recent_api_access == 2

    async def test_empty_store(self, report_service):
        stats = await report_service.get_security_log_stats()

        assert stats.total_events == 0
        assert stats.events_by_type == {}
        assert stats.recent_failed_logins == 0

    async def test_store_failure_degrades_to_zero(self):
        events = AsyncMock()
        events.count_events.side_effect = OperationalError("SELECT", {}, Exception("gone"))
        service = SecurityReportService(events, AsyncMock())

        stats = await service.get_security_stats()
        log_stats = await service.get_security_log_stats()

        assert stats.total_events == 0
        assert stats.recent_alerts == []
        assert log_stats.recent_api_access == 0


class TestSecurityLogs:
    """Test the filtered log listing."""

    async def test_pagination_and_user_join(self, report_service, event_service, test_user):
        for age in range(5):
            await record(
                event_service,
                SecurityEventType.LOGIN_SUCCESS,
                SecuritySeverity.INFO,
                user_id=test_user.id,
                age=timedelta(minutes=age),
            )

        page = await report_service.get_security_logs(SecurityLogQuery(limit=2, offset=1))

        assert page.total == 5
        assert len(page.logs) == 2
        assert page.logs[0].created_at > page.logs[1].created_at
        assert page.logs[0].username == "driver"
        assert page.logs[0].email == "driver@example.com"

    async def test_api_access_filter_includes_sensitive_access(
        self, report_service, event_service
    ):
        await record(event_service, SecurityEventType.API_ACCESS, SecuritySeverity.INFO)
        await record(
            event_service, SecurityEventType.SENSITIVE_DATA_ACCESS, SecuritySeverity.WARNING
        )
        await record(event_service, SecurityEventType.LOGIN_SUCCESS, SecuritySeverity.INFO)

        page = await report_service.get_security_logs(
            SecurityLogQuery(event_type=SecurityEventType.API_ACCESS)
        )

        assert page.total == 2
        assert {log.event_type for log in page.logs} == {
            SecurityEventType.API_ACCESS,
            SecurityEventType.SENSITIVE_DATA_ACCESS,
        }

    async def test_filters_combine(self, report_service, event_service, test_user, admin_user):
        await record(
            event_service,
            SecurityEventType.LOGIN_FAILURE,
            SecuritySeverity.WARNING,
            user_id=test_user.id,
        )
        await record(
            event_service,
            SecurityEventType.LOGIN_FAILURE,
            SecuritySeverity.WARNING,
            user_id=test_user.id,
            age=timedelta(days=3),
        )
        await record(
            event_service,
            SecurityEventType.LOGIN_FAILURE,
            SecuritySeverity.WARNING,
            user_id=admin_user.id,
        )

        page = await report_service.get_security_logs(
            SecurityLogQuery(
                user_id=test_user.id,
                severity=SecuritySeverity.WARNING,
                start_date=utcnow() - timedelta(days=1),
            )
        )

        assert page.total == 1
        assert page.logs[0].user_id == test_user.id

    async def test_anonymous_events_have_no_username(self, report_service, event_service):
        await record(event_service, SecurityEventType.API_ACCESS, SecuritySeverity.INFO)

        page = await report_service.get_security_logs(SecurityLogQuery())
        assert page.logs[0].username is None


class TestAlertTriage:
    """Test unresolved alert listing and resolution."""

    async def test_unresolved_ordering(self, report_service, event_service, test_user):
        warning_id = await raise_alert(event_service, SecuritySeverity.WARNING)
        critical_id = await raise_alert(event_service, SecuritySeverity.CRITICAL, test_user.id)
        older_error_id = await raise_alert(event_service, SecuritySeverity.ERROR)
        newer_error_id = await raise_alert(event_service, SecuritySeverity.ERROR)
        resolved_id = await raise_alert(event_service, SecuritySeverity.CRITICAL)
        await report_service.resolve_security_alert(resolved_id, resolved_by=1)

        alerts = await report_service.get_unresolved_alerts()

        assert [alert.id for alert in alerts] == [
            critical_id,
            newer_error_id,
            older_error_id,
            warning_id,
        ]
        assert alerts[0].username == "driver"
        assert alerts[0].event_type == SecurityEventType.SUSPICIOUS_ACTIVITY
        assert alerts[0].ip_address == "192.0.2.33"
        assert alerts[1].username is None

    async def test_resolve_alert(self, report_service, event_service, admin_user):
        alert_id = await raise_alert(event_service, SecuritySeverity.ERROR)

        assert await report_service.resolve_security_alert(alert_id, admin_user.id, "checked")

        alert = await report_service.get_alert(alert_id)
        assert alert.is_resolved
        assert alert.resolved_by == admin_user.id
        assert alert.resolution_notes == "checked"
        assert alert.resolved_at is not None

    async def test_re_resolving_overwrites(self, report_service, event_service, admin_user):
        alert_id = await raise_alert(event_service, SecuritySeverity.ERROR)
        await report_service.resolve_security_alert(alert_id, admin_user.id, "first")

        assert await report_service.resolve_security_alert(alert_id, admin_user.id, "second")
        alert = await report_service.get_alert(alert_id)
        assert alert.resolution_notes == "second"

    async def test_resolve_missing_alert(self, report_service):
        assert not await report_service.resolve_security_alert(404, resolved_by=1)
        assert await report_service.get_alert(404) is None
