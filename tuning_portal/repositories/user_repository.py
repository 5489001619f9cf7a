"""User Repository

Lookups on the users table and maintenance of the columns the security
pipeline owns: failed login counter, lock state and last login.
"""

import logging
from datetime import datetime

from sqlalchemy import select, update

from tuning_portal.core.time_utils import ensure_utc, utcnow
from tuning_portal.models.auth import User, UserRole
from tuning_portal.repositories.base import MonitoredRepository

logger = logging.getLogger(__name__)


class UserRepository(MonitoredRepository):
    """Repository for user security state."""

    @MonitoredRepository._monitored_operation("get_by_username")
    async def get_by_username(self, username: str) -> User | None:
        """Find a user by username."""
        async with self._db_manager.get_session() as session:
            result = await session.execute(select(User).where(User.username == username))
            return result.scalar_one_or_none()

    @MonitoredRepository._monitored_operation("get_by_id")
    async def get_by_id(self, user_id: int) -> User | None:
        """Find a user by ID."""
        async with self._db_manager.get_session() as session:
            return await session.get(User, user_id)

    @MonitoredRepository._monitored_operation("create_user")
    async def create_user(
        self, username: str, email: str, role: UserRole = UserRole.USER
    ) -> User:
        """Create a user row.

        Account creation itself belongs to the account subsystem; this is used
        for provisioning and fixtures.
        """
        user = User(username=username, email=email, role=role.value, login_attempts=0)
        async with self._db_manager.get_session() as session:
            session.add(user)
            await session.commit()
            return user

    async def _update(self, user_id: int, **values) -> bool:
        async with self._db_manager.get_session() as session:
            result = await session.execute(update(User).where(User.id == user_id).values(**values))
            await session.commit()
            return (result.rowcount or 0) > 0

    @MonitoredRepository._monitored_operation("set_login_attempts")
    async def set_login_attempts(self, user_id: int, attempts: int) -> bool:
        """Persist the failed login counter."""
        return await self._update(user_id, login_attempts=attempts)

    @MonitoredRepository._monitored_operation("lock_account")
    async def lock_account(self, user_id: int, reason: str, locked_until: datetime) -> bool:
        """Lock an account until ``locked_until``."""
        return await self._update(
            user_id,
            account_locked=True,
            account_locked_reason=reason,
            account_locked_until=ensure_utc(locked_until),
        )

    @MonitoredRepository._monitored_operation("unlock_account")
    async def unlock_account(self, user_id: int) -> bool:
        """Clear the lock state and reset the failed login counter."""
        return await self._update(
            user_id,
            account_locked=False,
            account_locked_reason=None,
            account_locked_until=None,
            login_attempts=0,
        )

    @MonitoredRepository._monitored_operation("record_successful_login")
    async def record_successful_login(
        self, user_id: int, ip_address: str, login_at: datetime | None = None
    ) -> bool:
        """Store the last login IP and time and reset the failed login counter."""
        return await self._update(
            user_id,
            last_login_ip=ip_address[:45],
            last_login_date=ensure_utc(login_at) or utcnow(),
            login_attempts=0,
        )
