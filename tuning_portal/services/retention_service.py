"""
Retention Service

Purges security events past their retention period and resolved alerts some
months after their resolution. Scheduled daily by the application lifespan.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from tuning_portal.core.metrics import RETENTION_DELETIONS
from tuning_portal.core.time_utils import utcnow
from tuning_portal.repositories.security_alert_repository import SecurityAlertRepository
from tuning_portal.repositories.security_event_repository import SecurityEventRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionResult:
    events_deleted: int = 0
    alerts_deleted: int = 0


class RetentionService:
    """Deletes expired security data."""

    def __init__(
        self,
        event_repository: SecurityEventRepository,
        alert_repository: SecurityAlertRepository,
        event_retention_days: int = 365,
        resolved_alert_retention_days: int = 182,
    ):
        self._events = event_repository
        self._alerts = alert_repository
        self.event_retention = timedelta(days=event_retention_days)
        self.resolved_alert_retention = timedelta(days=resolved_alert_retention_days)

    async def run_sweep(self) -> RetentionResult:
        """
        Delete expired events and resolved alerts.

        Alerts that reference a purged event are removed with it.

        Returns:
            Number of deleted events and alerts
        """
        now = utcnow()
        event_cutoff = now - self.event_retention

        alerts_deleted = await self._alerts.delete_resolved_before(
            now - self.resolved_alert_retention
        )
        alerts_deleted += await self._alerts.delete_for_events_before(event_cutoff)
        events_deleted = await self._events.delete_older_than(event_cutoff)

        if RETENTION_DELETIONS:
            RETENTION_DELETIONS.labels(table="security_events").inc(events_deleted)
            RETENTION_DELETIONS.labels(table="security_alerts").inc(alerts_deleted)

        logger.info(
            f"Retention sweep removed {events_deleted} events and {alerts_deleted} alerts"
        )
        return RetentionResult(events_deleted=events_deleted, alerts_deleted=alerts_deleted)
