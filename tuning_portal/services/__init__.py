"""
Services package for the Tuning Portal security backend.

This package contains the security pipeline services: event recording,
anomaly detection, lockout monitoring, reporting and rate limiting.
"""

from tuning_portal.services.anomaly_detection_service import AnomalyDetectionService
from tuning_portal.services.auth_security_service import AuthSecurityService
from tuning_portal.services.database_manager import DatabaseManager
from tuning_portal.services.geolocation_service import GeolocationService
from tuning_portal.services.lockout_service import LockoutService
from tuning_portal.services.rate_limiter import MemoryRateLimitStore, RateLimiter, RateLimitOptions
from tuning_portal.services.retention_service import RetentionService
from tuning_portal.services.security_event_service import SecurityEventService
from tuning_portal.services.security_report_service import SecurityReportService

__all__ = [
    "AnomalyDetectionService",
    "AuthSecurityService",
    "DatabaseManager",
    "GeolocationService",
    "LockoutService",
    "MemoryRateLimitStore",
    "RateLimitOptions",
    "RateLimiter",
    "RetentionService",
    "SecurityEventService",
    "SecurityReportService",
]
