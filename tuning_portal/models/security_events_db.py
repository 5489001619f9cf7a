"""
Security Events Database Models

SQLAlchemy models for security events, alerts, user access locations and
rate limit counters. These correspond to the Pydantic models in
security_events.py; event type and severity are stored as strings and
validated against their enumerations when converted back.
"""

import json
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tuning_portal.core.time_utils import ensure_utc, utcnow
from tuning_portal.models.database import Base
from tuning_portal.models.security_events import (
    SecurityAlertRecord,
    SecurityEventRecord,
    SecurityEventType,
    SecuritySeverity,
)

logger = logging.getLogger(__name__)


def decode_details(raw: str | None) -> dict[str, Any] | None:
    """Decode a stored detail payload, tolerating legacy non-JSON text."""
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning("Stored security event details are not valid JSON")
        return {"raw": raw}
    return value if isinstance(value, dict) else {"value": value}


class SecurityEventDB(Base):
    """
    Database model for security events.

    Rows are immutable once written and only removed by the retention sweep.
    """

    __tablename__ = "security_events"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True, comment="Auto-incrementing primary key"
    )

    user_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Subject user, absent for anonymous or IP-level events",
    )

    event_type: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True, comment="Type of security event"
    )

    severity: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True, comment="Event severity level"
    )

    ip_address: Mapped[str] = mapped_column(
        String(45), nullable=False, default="unknown", index=True, comment="Source IP address"
    )

    user_agent: Mapped[str] = mapped_column(
        String(255), nullable=False, default="unknown", comment="Client user agent"
    )

    details: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Event details serialized as JSON text"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
        comment="Event timestamp",
    )

    def to_record(
        self, username: str | None = None, email: str | None = None
    ) -> SecurityEventRecord:
        """Convert to the API model, validating the stored enumerations."""
        return SecurityEventRecord(
            id=self.id,
            user_id=self.user_id,
            event_type=SecurityEventType(self.event_type),
            severity=SecuritySeverity(self.severity),
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            details=decode_details(self.details),
            created_at=ensure_utc(self.created_at),
            username=username,
            email=email,
        )


class SecurityAlertDB(Base):
    """
    Database model for security alerts.

    ``is_resolved`` is false exactly when ``resolved_by`` and ``resolved_at``
    are both null.
    """

    __tablename__ = "security_alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    event_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("security_events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Originating security event",
    )

    user_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Subject user",
    )

    alert_type: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True, comment="Alert type tag"
    )

    severity: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    message: Mapped[str] = mapped_column(Text, nullable=False, comment="Operator-facing message")

    is_resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)

    resolved_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )

    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def to_record(self) -> SecurityAlertRecord:
        """Convert to the API model."""
        return SecurityAlertRecord(
            id=self.id,
            event_id=self.event_id,
            user_id=self.user_id,
            alert_type=self.alert_type,
            severity=SecuritySeverity(self.severity),
            message=self.message,
            is_resolved=self.is_resolved,
            resolved_by=self.resolved_by,
            resolution_notes=self.resolution_notes,
            created_at=ensure_utc(self.created_at),
            resolved_at=ensure_utc(self.resolved_at),
        )


class UserAccessLocationDB(Base):
    """
    One row per observed access, append-only.

    ``is_first_access`` records whether the (user, country, region) pair had
    no earlier row when this access was stored.
    """

    __tablename__ = "user_access_locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    ip_address: Mapped[str] = mapped_column(String(45), nullable=False)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    region: Mapped[str | None] = mapped_column(String(100), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    is_first_access: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_suspicious: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert database model to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "ip_address": self.ip_address,
            "country": self.country,
            "region": self.region,
            "city": self.city,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "is_first_access": self.is_first_access,
            "is_suspicious": self.is_suspicious,
            "created_at": ensure_utc(self.created_at),
        }


class RateLimitEntryDB(Base):
    """Database-backed rate limit window for one composite key."""

    __tablename__ = "rate_limits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    key_identifier: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True, comment="Composite key '<key>:<identifier>'"
    )

    count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    reset_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True, comment="Window end"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class RateLimitLogDB(Base):
    """Audit trail of rate limit checks."""

    __tablename__ = "rate_limit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key_identifier: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
