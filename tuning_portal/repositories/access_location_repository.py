"""Access Location Repository

Append-only record of where each user accessed the portal from.
"""

import logging
from typing import Any

from sqlalchemy import func, select

from tuning_portal.core.time_utils import utcnow
from tuning_portal.models.security_events import GeolocationData
from tuning_portal.models.security_events_db import UserAccessLocationDB
from tuning_portal.repositories.base import MonitoredRepository

logger = logging.getLogger(__name__)


class AccessLocationRepository(MonitoredRepository):
    """Repository for user access locations."""

    @MonitoredRepository._monitored_operation("count_matching_locations")
    async def count_matching_locations(self, user_id: int, country: str, region: str) -> int:
        """Number of stored accesses by ``user_id`` from this country and region."""
        stmt = (
            select(func.count())
            .select_from(UserAccessLocationDB)
            .where(
                UserAccessLocationDB.user_id == user_id,
                UserAccessLocationDB.country == country,
                UserAccessLocationDB.region == region,
            )
        )
        async with self._db_manager.get_session() as session:
            return (await session.execute(stmt)).scalar() or 0

    @MonitoredRepository._monitored_operation("insert_location")
    async def insert_location(
        self,
        user_id: int,
        ip_address: str,
        location: GeolocationData,
        is_first_access: bool,
        is_suspicious: bool = False,
    ) -> int:
        """Append one access row.

        Returns:
            Generated row ID
        """
        row = UserAccessLocationDB(
            user_id=user_id,
            ip_address=ip_address[:45],
            country=location.country,
            region=location.region,
            city=location.city,
            latitude=location.latitude,
            longitude=location.longitude,
            is_first_access=is_first_access,
            is_suspicious=is_suspicious,
            created_at=utcnow(),
        )
        async with self._db_manager.get_session() as session:
            session.add(row)
            await session.commit()
            return row.id

    @MonitoredRepository._monitored_operation("list_for_user")
    async def list_for_user(self, user_id: int, limit: int = 100) -> list[dict[str, Any]]:
        """Recorded accesses of one user, newest first."""
        stmt = (
            select(UserAccessLocationDB)
            .where(UserAccessLocationDB.user_id == user_id)
            .order_by(UserAccessLocationDB.created_at.desc(), UserAccessLocationDB.id.desc())
            .limit(limit)
        )
        async with self._db_manager.get_session() as session:
            result = await session.execute(stmt)
            return [row.to_dict() for row in result.scalars().all()]
