"""Security Alert Repository

Data access for operator-facing security alerts: creation, triage listing,
resolution and retention of resolved alerts.
"""

import logging
from datetime import datetime

from sqlalchemy import case, delete, func, select, update

from tuning_portal.core.time_utils import ensure_utc, utcnow
from tuning_portal.models.auth import User
from tuning_portal.models.security_events import (
    SecurityAlertRecord,
    SecurityEventType,
    SecuritySeverity,
    UnresolvedAlert,
)
from tuning_portal.models.security_events_db import SecurityAlertDB, SecurityEventDB
from tuning_portal.repositories.base import MonitoredRepository

logger = logging.getLogger(__name__)

_SEVERITY_ORDER = case(
    {severity.value: severity.rank for severity in SecuritySeverity},
    value=SecurityAlertDB.severity,
    else_=-1,
)


class SecurityAlertRepository(MonitoredRepository):
    """Repository for security alerts."""

    @MonitoredRepository._monitored_operation("insert_alert")
    async def insert_alert(
        self,
        event_id: int,
        alert_type: str,
        severity: SecuritySeverity,
        message: str,
        user_id: int | None = None,
    ) -> int:
        """Insert an unresolved alert.

        Returns:
            Generated alert ID
        """
        row = SecurityAlertDB(
            event_id=event_id,
            user_id=user_id,
            alert_type=alert_type,
            severity=severity.value,
            message=message,
            is_resolved=False,
            created_at=utcnow(),
        )
        async with self._db_manager.get_session() as session:
            session.add(row)
            await session.commit()
            return row.id

    @MonitoredRepository._monitored_operation("get_alert")
    async def get_alert(self, alert_id: int) -> SecurityAlertRecord | None:
        """Get one alert by ID, or None."""
        async with self._db_manager.get_session() as session:
            row = await session.get(SecurityAlertDB, alert_id)
            return row.to_record() if row else None

    @MonitoredRepository._monitored_operation("list_alerts")
    async def list_alerts(
        self, alert_type: str | None = None, limit: int = 10
    ) -> list[SecurityAlertRecord]:
        """List alerts newest first, optionally of one type."""
        stmt = select(SecurityAlertDB)
        if alert_type is not None:
            stmt = stmt.where(SecurityAlertDB.alert_type == alert_type)
        stmt = stmt.order_by(SecurityAlertDB.created_at.desc(), SecurityAlertDB.id.desc()).limit(
            limit
        )
        async with self._db_manager.get_session() as session:
            result = await session.execute(stmt)
            return [row.to_record() for row in result.scalars().all()]

    @MonitoredRepository._monitored_operation("count_unresolved")
    async def count_unresolved(self) -> int:
        """Number of unresolved alerts."""
        async with self._db_manager.get_session() as session:
            result = await session.execute(
                select(func.count())
                .select_from(SecurityAlertDB)
                .where(SecurityAlertDB.is_resolved.is_(False))
            )
            return result.scalar() or 0

    @MonitoredRepository._monitored_operation("get_unresolved")
    async def get_unresolved(self, limit: int = 100) -> list[UnresolvedAlert]:
        """Unresolved alerts joined with their event and subject user.

        Ordered by severity (critical first), then newest first.
        """
        stmt = (
            select(
                SecurityAlertDB,
                SecurityEventDB.event_type,
                SecurityEventDB.ip_address,
                User.username,
                User.email,
            )
            .join(SecurityEventDB, SecurityAlertDB.event_id == SecurityEventDB.id)
            .outerjoin(User, SecurityAlertDB.user_id == User.id)
            .where(SecurityAlertDB.is_resolved.is_(False))
            .order_by(
                _SEVERITY_ORDER.desc(),
                SecurityAlertDB.created_at.desc(),
                SecurityAlertDB.id.desc(),
            )
            .limit(limit)
        )
        async with self._db_manager.get_session() as session:
            result = await session.execute(stmt)
            alerts = []
            for row in result.all():
                record = row.SecurityAlertDB.to_record()
                alerts.append(
                    UnresolvedAlert(
                        **record.model_dump(),
                        event_type=SecurityEventType(row.event_type),
                        ip_address=row.ip_address,
                        username=row.username,
                        email=row.email,
                    )
                )
            return alerts

    @MonitoredRepository._monitored_operation("resolve_alert")
    async def resolve_alert(
        self,
        alert_id: int,
        resolved_by: int,
        notes: str | None,
        resolved_at: datetime | None = None,
    ) -> bool:
        """Mark an alert resolved; re-resolving overwrites the previous resolution.

        Returns:
            True if a row was updated, False if the alert does not exist
        """
        stmt = (
            update(SecurityAlertDB)
            .where(SecurityAlertDB.id == alert_id)
            .values(
                is_resolved=True,
                resolved_by=resolved_by,
                resolution_notes=notes,
                resolved_at=ensure_utc(resolved_at) or utcnow(),
            )
        )
        async with self._db_manager.get_session() as session:
            result = await session.execute(stmt)
            await session.commit()
            return (result.rowcount or 0) > 0

    @MonitoredRepository._monitored_operation("delete_for_events_before")
    async def delete_for_events_before(self, cutoff: datetime) -> int:
        """Delete alerts whose originating event was created before ``cutoff``.

        Mirrors the ON DELETE CASCADE of the event foreign key on backends
        that do not enforce it (SQLite without ``PRAGMA foreign_keys``).
        """
        expired_events = select(SecurityEventDB.id).where(
            SecurityEventDB.created_at < ensure_utc(cutoff)
        )
        stmt = delete(SecurityAlertDB).where(SecurityAlertDB.event_id.in_(expired_events))
        async with self._db_manager.get_session() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    @MonitoredRepository._monitored_operation("delete_resolved_before")
    async def delete_resolved_before(self, cutoff: datetime) -> int:
        """Delete resolved alerts whose resolution predates ``cutoff``."""
        stmt = delete(SecurityAlertDB).where(
            SecurityAlertDB.is_resolved.is_(True),
            SecurityAlertDB.resolved_at < ensure_utc(cutoff),
        )
        async with self._db_manager.get_session() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0
