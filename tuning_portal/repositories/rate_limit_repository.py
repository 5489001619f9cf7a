"""Rate Limit Repository

Database-backed rate limit windows shared by every application instance,
plus the rate limit audit log.
"""

import logging
from datetime import datetime

from sqlalchemy import delete, select, update

from tuning_portal.core.time_utils import ensure_utc, utcnow
from tuning_portal.models.security_events_db import RateLimitEntryDB, RateLimitLogDB
from tuning_portal.repositories.base import MonitoredRepository

logger = logging.getLogger(__name__)


class RateLimitRepository(MonitoredRepository):
    """Repository for rate limit windows and logs."""

    @MonitoredRepository._monitored_operation("get_live_entry")
    async def get_live_entry(self, key_identifier: str, now: datetime) -> RateLimitEntryDB | None:
        """Current window for ``key_identifier``, or None when absent or expired."""
        stmt = (
            select(RateLimitEntryDB)
            .where(
                RateLimitEntryDB.key_identifier == key_identifier,
                RateLimitEntryDB.reset_time > ensure_utc(now),
            )
            .order_by(RateLimitEntryDB.reset_time.desc())
            .limit(1)
        )
        async with self._db_manager.get_session() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    @MonitoredRepository._monitored_operation("start_window")
    async def start_window(self, key_identifier: str, now: datetime, reset_time: datetime) -> int:
        """Open a new window with a count of one, replacing expired rows for the key."""
        async with self._db_manager.get_session() as session:
            await session.execute(
                delete(RateLimitEntryDB).where(
                    RateLimitEntryDB.key_identifier == key_identifier,
                    RateLimitEntryDB.reset_time <= ensure_utc(now),
                )
            )
            row = RateLimitEntryDB(
                key_identifier=key_identifier,
                count=1,
                reset_time=ensure_utc(reset_time),
                created_at=utcnow(),
            )
            session.add(row)
            await session.commit()
            return row.id

    @MonitoredRepository._monitored_operation("increment")
    async def increment(self, entry_id: int) -> None:
        """Add one request to an open window."""
        async with self._db_manager.get_session() as session:
            await session.execute(
                update(RateLimitEntryDB)
                .where(RateLimitEntryDB.id == entry_id)
                .values(count=RateLimitEntryDB.count + 1)
            )
            await session.commit()

    @MonitoredRepository._monitored_operation("delete_expired")
    async def delete_expired(self, now: datetime | None = None) -> int:
        """Remove windows whose reset time has passed."""
        async with self._db_manager.get_session() as session:
            result = await session.execute(
                delete(RateLimitEntryDB).where(
                    RateLimitEntryDB.reset_time <= ensure_utc(now or utcnow())
                )
            )
            await session.commit()
            return result.rowcount or 0

    @MonitoredRepository._monitored_operation("insert_log")
    async def insert_log(
        self, key_identifier: str, event_type: str, success: bool, remaining: int
    ) -> int:
        """Append one rate limit audit row."""
        row = RateLimitLogDB(
            key_identifier=key_identifier,
            event_type=event_type,
            success=success,
            remaining=remaining,
            created_at=utcnow(),
        )
        async with self._db_manager.get_session() as session:
            session.add(row)
            await session.commit()
            return row.id
