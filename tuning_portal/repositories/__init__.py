"""
Repository Pattern Implementation

Repositories own every SQL statement of the security pipeline. Each call
opens its own session from the shared ``DatabaseManager`` and commits before
returning.
"""

from tuning_portal.repositories.access_location_repository import AccessLocationRepository
from tuning_portal.repositories.rate_limit_repository import RateLimitRepository
from tuning_portal.repositories.security_alert_repository import SecurityAlertRepository
from tuning_portal.repositories.security_event_repository import SecurityEventRepository
from tuning_portal.repositories.user_repository import UserRepository

__all__ = [
    "AccessLocationRepository",
    "RateLimitRepository",
    "SecurityAlertRepository",
    "SecurityEventRepository",
    "UserRepository",
]
