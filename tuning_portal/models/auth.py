"""
Authentication models for the Tuning Portal.

The users table is owned by the account subsystem; the security pipeline
reads it for lookups and maintains the lockout and last-login columns.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tuning_portal.core.time_utils import utcnow
from tuning_portal.models.database import Base


class UserRole(str, Enum):
    """User roles in the system."""

    ADMIN = "admin"
    USER = "user"


class User(Base):
    """Portal user account."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.USER.value, nullable=False)

    # Lockout tracking
    login_attempts: Mapped[int | None] = mapped_column(Integer, default=0, nullable=True)
    account_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    account_locked_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    account_locked_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Last successful login
    last_login_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    last_login_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value
