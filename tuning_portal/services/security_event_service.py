"""
Security Event Service

The event recorder: persists normalized security events and the alerts the
detectors derive from them. Recording is inert; it never triggers anomaly or
lockout evaluation on its own.
"""

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from tuning_portal.core.best_effort import best_effort
from tuning_portal.core.exceptions import SecurityStoreError
from tuning_portal.core.metrics import SECURITY_ALERTS_CREATED, SECURITY_EVENTS_RECORDED
from tuning_portal.core.sensitive_data_filter import filter_for_logging, sanitize_log_data
from tuning_portal.core.time_utils import utcnow
from tuning_portal.models.security_events import (
    ADMIN_EVENT_TYPES,
    SecurityEventCreate,
    SecurityEventRecord,
    SecurityEventType,
    SecuritySeverity,
)
from tuning_portal.repositories.security_alert_repository import SecurityAlertRepository
from tuning_portal.repositories.security_event_repository import SecurityEventRepository

logger = logging.getLogger(__name__)

# Store-level failures: driver errors and an uninitialized database manager
STORE_ERRORS = (SQLAlchemyError, OSError, RuntimeError)


def timestamp_detail() -> str:
    """ISO-8601 timestamp embedded in event details."""
    return utcnow().isoformat()


class SecurityEventService:
    """Records security events and alerts."""

    def __init__(
        self,
        event_repository: SecurityEventRepository,
        alert_repository: SecurityAlertRepository,
    ):
        """
        Initialize the security event service.

        Args:
            event_repository: Security event persistence
            alert_repository: Security alert persistence
        """
        self._events = event_repository
        self._alerts = alert_repository

    async def record_event(self, event: SecurityEventCreate) -> int:
        """
        Persist one security event.

        The detail map is stripped of log-injection characters and stored as
        JSON text.

        Args:
            event: Validated event input

        Returns:
            The generated event ID

        Raises:
            SecurityStoreError: If the store cannot be written
        """
        details = sanitize_log_data(event.details) if event.details is not None else None

        try:
            event_id = await self._events.insert_event(event, details)
        except STORE_ERRORS as e:
            logger.error(f"Failed to record security event {event.event_type.value}: {e}")
            raise SecurityStoreError("record_event", str(e)) from e

        if SECURITY_EVENTS_RECORDED:
            SECURITY_EVENTS_RECORDED.labels(
                event_type=event.event_type.value, severity=event.severity.value
            ).inc()
        logger.debug(
            f"Recorded security event {event_id}: {event.event_type.value}",
            extra={
                "event_type": event.event_type.value,
                "severity": event.severity.value,
                "details": filter_for_logging(details),
            },
        )
        return event_id

    async def create_alert(
        self,
        event_id: int,
        alert_type: str,
        severity: SecuritySeverity,
        message: str,
        user_id: int | None = None,
    ) -> int:
        """
        Create an unresolved alert for an originating event.

        Args:
            event_id: Event the alert derives from
            alert_type: Alert type tag
            severity: Alert severity
            message: Operator-facing message
            user_id: Subject user, if any

        Returns:
            The generated alert ID

        Raises:
            SecurityStoreError: If the store cannot be written
        """
        try:
            alert_id = await self._alerts.insert_alert(
                event_id=event_id,
                alert_type=alert_type,
                severity=severity,
                message=message,
                user_id=user_id,
            )
        except STORE_ERRORS as e:
            logger.error(f"Failed to create security alert {alert_type}: {e}")
            raise SecurityStoreError("create_alert", str(e)) from e

        if SECURITY_ALERTS_CREATED:
            SECURITY_ALERTS_CREATED.labels(alert_type=alert_type, severity=severity.value).inc()
        logger.warning(f"Security alert {alert_id} ({alert_type}): {message}")
        return alert_id

    async def get_event(self, event_id: int) -> SecurityEventRecord | None:
        """Read one event back by ID."""
        return await self._events.get_event(event_id)

    @best_effort("log_api_access")
    async def log_api_access(
        self,
        user_id: int | None,
        ip_address: str,
        user_agent: str,
        method: str,
        endpoint: str,
        is_sensitive: bool = False,
    ) -> int:
        """Record an API access, as sensitive data access when flagged."""
        return await self.record_event(
            SecurityEventCreate(
                user_id=user_id,
                event_type=(
                    SecurityEventType.SENSITIVE_DATA_ACCESS
                    if is_sensitive
                    else SecurityEventType.API_ACCESS
                ),
                severity=SecuritySeverity.WARNING if is_sensitive else SecuritySeverity.INFO,
                ip_address=ip_address,
                user_agent=user_agent,
                details={
                    "endpoint": endpoint,
                    "method": method,
                    "timestamp": timestamp_detail(),
                },
            )
        )

    @best_effort("log_admin_action")
    async def log_admin_action(
        self,
        admin_id: int,
        action_type: SecurityEventType,
        ip_address: str,
        user_agent: str,
        details: dict[str, Any] | None = None,
    ) -> int:
        """Record an administrative action at warning severity."""
        if action_type not in ADMIN_EVENT_TYPES:
            msg = f"{action_type.value} is not an admin action type"
            raise ValueError(msg)
        return await self.record_event(
            SecurityEventCreate(
                user_id=admin_id,
                event_type=action_type,
                severity=SecuritySeverity.WARNING,
                ip_address=ip_address,
                user_agent=user_agent,
                details={**(details or {}), "timestamp": timestamp_detail()},
            )
        )

    @best_effort("log_logout")
    async def log_logout(self, user_id: int, ip_address: str, user_agent: str) -> int:
        """Record a logout."""
        return await self.record_event(
            SecurityEventCreate(
                user_id=user_id,
                event_type=SecurityEventType.LOGOUT,
                severity=SecuritySeverity.INFO,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"timestamp": timestamp_detail()},
            )
        )
