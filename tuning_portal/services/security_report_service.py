"""
Security Report Service

Read-only aggregations over security events and alerts for the admin
dashboard, plus the single operator mutation: resolving an alert.

Store failures never reach the dashboard as errors; they degrade to empty
lists and zero counts and are logged.
"""

import logging
from datetime import timedelta

from tuning_portal.core.time_utils import utcnow
from tuning_portal.models.security_events import (
    SecurityAlertRecord,
    SecurityEventType,
    SecurityLogPage,
    SecurityLogQuery,
    SecurityLogStats,
    SecuritySeverity,
    SecurityStats,
    UnresolvedAlert,
)
from tuning_portal.repositories.security_alert_repository import SecurityAlertRepository
from tuning_portal.repositories.security_event_repository import SecurityEventRepository
from tuning_portal.services.security_event_service import STORE_ERRORS

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(hours=24)
RECENT_ALERTS_LIMIT = 10

SUSPICIOUS_SEVERITIES = (SecuritySeverity.ERROR, SecuritySeverity.CRITICAL)
API_ACCESS_EVENT_TYPES = (
    SecurityEventType.API_ACCESS,
    SecurityEventType.SENSITIVE_DATA_ACCESS,
)


class SecurityReportService:
    """Statistics, log listing and alert triage."""

    def __init__(
        self,
        event_repository: SecurityEventRepository,
        alert_repository: SecurityAlertRepository,
    ):
        self._events = event_repository
        self._alerts = alert_repository

    async def get_security_stats(self) -> SecurityStats:
        """Overall event distribution, newest alerts and unresolved alert count."""
        try:
            return SecurityStats(
                total_events=await self._events.count_events(),
                events_by_type=await self._events.count_by_type(),
                events_by_severity=await self._events.count_by_severity(),
                recent_alerts=await self._alerts.list_alerts(limit=RECENT_ALERTS_LIMIT),
                unresolved_alerts=await self._alerts.count_unresolved(),
            )
        except STORE_ERRORS as e:
            logger.error(f"Failed to get security stats: {e}")
            return SecurityStats()

    async def get_security_log_stats(self, days: int = 30) -> SecurityLogStats:
        """
        Event distribution over the last ``days`` days and trailing 24h activity.

        Args:
            days: Window for the totals and groupings

        Returns:
            Log statistics; zeros if the store is unavailable
        """
        now = utcnow()
        since = now - timedelta(days=days)
        recent = now - RECENT_WINDOW

        try:
            return SecurityLogStats(
                total_events=await self._events.count_events(since=since),
                events_by_type=await self._events.count_by_type(since=since),
                events_by_severity=await self._events.count_by_severity(since=since),
                recent_failed_logins=await self._events.count_events(
                    since=recent, event_types=[SecurityEventType.LOGIN_FAILURE]
                ),
                recent_suspicious_activities=await self._events.count_events(
                    since=recent, severities=SUSPICIOUS_SEVERITIES
                ),
                recent_api_access=await self._events.count_events(
                    since=recent, event_types=API_ACCESS_EVENT_TYPES
                ),
            )
        except STORE_ERRORS as e:
            logger.error(f"Failed to get security log stats: {e}")
            return SecurityLogStats()

    async def get_security_logs(self, query: SecurityLogQuery) -> SecurityLogPage:
        """
        Filtered, paginated security log, newest first.

        Filtering by ``api_access`` also returns sensitive data access rows.

        Args:
            query: Filters and pagination

        Returns:
            Page of events with the total match count
        """
        try:
            logs, total = await self._events.query_logs(query)
        except STORE_ERRORS as e:
            logger.error(f"Failed to get security logs: {e}")
            return SecurityLogPage()
        return SecurityLogPage(logs=logs, total=total)

    async def get_unresolved_alerts(self, limit: int = 100) -> list[UnresolvedAlert]:
        """Unresolved alerts, most severe and newest first."""
        try:
            return await self._alerts.get_unresolved(limit=limit)
        except STORE_ERRORS as e:
            logger.error(f"Failed to get unresolved alerts: {e}")
            return []

    async def get_alert(self, alert_id: int) -> SecurityAlertRecord | None:
        try:
            return await self._alerts.get_alert(alert_id)
        except STORE_ERRORS as e:
            logger.error(f"Failed to get security alert {alert_id}: {e}")
            return None

    async def resolve_security_alert(
        self, alert_id: int, resolved_by: int, notes: str | None = None
    ) -> bool:
        """
        Mark an alert resolved.

        Resolving an already resolved alert overwrites the resolver, notes
        and resolution time.

        Args:
            alert_id: Alert to resolve
            resolved_by: Operator resolving it
            notes: Resolution notes

        Returns:
            True if the alert exists and was updated, False otherwise
        """
        try:
            resolved = await self._alerts.resolve_alert(alert_id, resolved_by, notes)
        except STORE_ERRORS as e:
            logger.error(f"Failed to resolve security alert {alert_id}: {e}")
            return False

        if resolved:
            logger.info(f"Security alert {alert_id} resolved by user {resolved_by}")
        else:
            logger.warning(f"Security alert {alert_id} not found, nothing resolved")
        return resolved
