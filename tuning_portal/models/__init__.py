"""
Models package for the Tuning Portal security backend.

Importing this package registers every table on ``Base.metadata``.
"""

from tuning_portal.models.auth import User, UserRole
from tuning_portal.models.database import Base
from tuning_portal.models.security_events import (
    AlertType,
    GeolocationData,
    RateLimitResult,
    SecurityAlertRecord,
    SecurityEventCreate,
    SecurityEventRecord,
    SecurityEventType,
    SecurityLogPage,
    SecurityLogQuery,
    SecurityLogStats,
    SecuritySeverity,
    SecurityStats,
    UnresolvedAlert,
)
from tuning_portal.models.security_events_db import (
    RateLimitEntryDB,
    RateLimitLogDB,
    SecurityAlertDB,
    SecurityEventDB,
    UserAccessLocationDB,
)

__all__ = [
    "AlertType",
    "Base",
    "GeolocationData",
    "RateLimitEntryDB",
    "RateLimitLogDB",
    "RateLimitResult",
    "SecurityAlertDB",
    "SecurityAlertRecord",
    "SecurityEventCreate",
    "SecurityEventDB",
    "SecurityEventRecord",
    "SecurityEventType",
    "SecurityLogPage",
    "SecurityLogQuery",
    "SecurityLogStats",
    "SecuritySeverity",
    "SecurityStats",
    "UnresolvedAlert",
    "User",
    "UserAccessLocationDB",
    "UserRole",
]
