"""Security Event Repository

Handles data access for security events including:
- Event storage and read-back
- Filtered, paginated log queries joined with the subject user
- Windowed counts and grouped statistics
- Retention management
"""

import json
import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import Select, delete, func, select

from tuning_portal.core.time_utils import ensure_utc, utcnow
from tuning_portal.models.auth import User
from tuning_portal.models.security_events import (
    SecurityEventCreate,
    SecurityEventRecord,
    SecurityEventType,
    SecurityLogQuery,
    SecuritySeverity,
)
from tuning_portal.models.security_events_db import SecurityEventDB
from tuning_portal.repositories.base import MonitoredRepository

logger = logging.getLogger(__name__)

# Filtering the log by api_access also returns sensitive access rows
API_ACCESS_TYPES = (
    SecurityEventType.API_ACCESS.value,
    SecurityEventType.SENSITIVE_DATA_ACCESS.value,
)


class SecurityEventRepository(MonitoredRepository):
    """Repository for security event persistence and querying."""

    @MonitoredRepository._monitored_operation("insert_event")
    async def insert_event(self, event: SecurityEventCreate, details: dict[str, Any] | None) -> int:
        """Insert one event row.

        Args:
            event: Validated event input
            details: Sanitized detail payload, stored as JSON text

        Returns:
            Generated event ID
        """
        row = SecurityEventDB(
            user_id=event.user_id,
            event_type=event.event_type.value,
            severity=event.severity.value,
            ip_address=event.ip_address[:45],
            user_agent=event.user_agent[:255],
            details=json.dumps(details, default=str) if details is not None else None,
            created_at=ensure_utc(event.created_at) or utcnow(),
        )
        async with self._db_manager.get_session() as session:
            session.add(row)
            await session.commit()
            return row.id

    @MonitoredRepository._monitored_operation("get_event")
    async def get_event(self, event_id: int) -> SecurityEventRecord | None:
        """Get one event by ID, or None."""
        async with self._db_manager.get_session() as session:
            row = await session.get(SecurityEventDB, event_id)
            return row.to_record() if row else None

    def _apply_log_filters(self, stmt: Select, query: SecurityLogQuery) -> Select:
        if query.user_id is not None:
            stmt = stmt.where(SecurityEventDB.user_id == query.user_id)
        if query.event_type is not None:
            if query.event_type == SecurityEventType.API_ACCESS:
                stmt = stmt.where(SecurityEventDB.event_type.in_(API_ACCESS_TYPES))
            else:
                stmt = stmt.where(SecurityEventDB.event_type == query.event_type.value)
        if query.severity is not None:
            stmt = stmt.where(SecurityEventDB.severity == query.severity.value)
        if query.start_date is not None:
            stmt = stmt.where(SecurityEventDB.created_at >= ensure_utc(query.start_date))
        if query.end_date is not None:
            stmt = stmt.where(SecurityEventDB.created_at <= ensure_utc(query.end_date))
        return stmt

    @MonitoredRepository._monitored_operation("query_logs")
    async def query_logs(self, query: SecurityLogQuery) -> tuple[list[SecurityEventRecord], int]:
        """Get one page of events plus the total number of matching rows.

        Runs a COUNT query and a separate page query, newest first.

        Args:
            query: Filters and pagination

        Returns:
            Tuple of (page rows, total matches)
        """
        async with self._db_manager.get_session() as session:
            count_stmt = self._apply_log_filters(
                select(func.count()).select_from(SecurityEventDB), query
            )
            total = (await session.execute(count_stmt)).scalar() or 0

            page_stmt = self._apply_log_filters(
                select(SecurityEventDB, User.username, User.email).outerjoin(
                    User, SecurityEventDB.user_id == User.id
                ),
                query,
            )
            page_stmt = (
                page_stmt.order_by(SecurityEventDB.created_at.desc(), SecurityEventDB.id.desc())
                .limit(query.limit)
                .offset(query.offset)
            )
            result = await session.execute(page_stmt)
            logs = [
                row.SecurityEventDB.to_record(username=row.username, email=row.email)
                for row in result.all()
            ]
            return logs, total

    @MonitoredRepository._monitored_operation("count_events")
    async def count_events(
        self,
        since: datetime | None = None,
        event_types: Iterable[SecurityEventType] | None = None,
        severities: Iterable[SecuritySeverity] | None = None,
        ip_address: str | None = None,
    ) -> int:
        """Count events matching all given filters.

        Args:
            since: Only events created at or after this time
            event_types: Only these event types
            severities: Only these severities
            ip_address: Only events from this source IP

        Returns:
            Number of matching events
        """
        stmt = select(func.count()).select_from(SecurityEventDB)
        if since is not None:
            stmt = stmt.where(SecurityEventDB.created_at >= ensure_utc(since))
        if event_types is not None:
            stmt = stmt.where(SecurityEventDB.event_type.in_([t.value for t in event_types]))
        if severities is not None:
            stmt = stmt.where(SecurityEventDB.severity.in_([s.value for s in severities]))
        if ip_address is not None:
            stmt = stmt.where(SecurityEventDB.ip_address == ip_address)

        async with self._db_manager.get_session() as session:
            return (await session.execute(stmt)).scalar() or 0

    async def _count_grouped(self, column: Any, since: datetime | None) -> dict[str, int]:
        stmt = select(column, func.count().label("count")).group_by(column)
        if since is not None:
            stmt = stmt.where(SecurityEventDB.created_at >= ensure_utc(since))
        async with self._db_manager.get_session() as session:
            result = await session.execute(stmt)
            return {value: count or 0 for value, count in result.all()}

    @MonitoredRepository._monitored_operation("count_by_type")
    async def count_by_type(self, since: datetime | None = None) -> dict[str, int]:
        """Event counts grouped by event type."""
        return await self._count_grouped(SecurityEventDB.event_type, since)

    @MonitoredRepository._monitored_operation("count_by_severity")
    async def count_by_severity(self, since: datetime | None = None) -> dict[str, int]:
        """Event counts grouped by severity."""
        return await self._count_grouped(SecurityEventDB.severity, since)

    @MonitoredRepository._monitored_operation("delete_older_than")
    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete events created before ``cutoff``.

        Returns:
            Number of deleted rows
        """
        async with self._db_manager.get_session() as session:
            result = await session.execute(
                delete(SecurityEventDB).where(SecurityEventDB.created_at < ensure_utc(cutoff))
            )
            await session.commit()
            return result.rowcount or 0
