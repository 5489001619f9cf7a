"""
Security Event Models

Pydantic models for the security pipeline: the closed event type and
severity enumerations, event and alert records, report shapes and the
rate limiter result. Values are validated against the enumerations at the
storage boundary in both directions.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SecurityEventType(str, Enum):
    """Types of security events recorded by the portal."""

    # Authentication
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    LOGOUT = "logout"
    REGISTRATION = "registration"
    EMAIL_VERIFICATION = "email_verification"

    # Credential lifecycle
    PASSWORD_RESET_REQUEST = "password_reset_request"
    PASSWORD_RESET_COMPLETE = "password_reset_complete"
    PASSWORD_CHANGE = "password_change"

    # Account state
    ACCOUNT_LOCKOUT = "account_lockout"
    ACCOUNT_UNLOCK = "account_unlock"
    ACCOUNT_UPDATE = "account_update"

    # Sessions
    SESSION_CREATED = "session_created"
    SESSION_EXPIRED = "session_expired"
    SESSION_INVALIDATED = "session_invalidated"

    # Administration
    ADMIN_USER_UPDATE = "admin_user_update"
    ADMIN_PERMISSION_CHANGE = "admin_permission_change"
    ADMIN_SYSTEM_SETTING_CHANGE = "admin_system_setting_change"

    # Access and detection
    API_ACCESS = "api_access"
    SENSITIVE_DATA_ACCESS = "sensitive_data_access"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    GEOGRAPHIC_ANOMALY = "geographic_anomaly"
    MULTIPLE_FAILED_ATTEMPTS = "multiple_failed_attempts"


ADMIN_EVENT_TYPES = frozenset(
    {
        SecurityEventType.ADMIN_USER_UPDATE,
        SecurityEventType.ADMIN_PERMISSION_CHANGE,
        SecurityEventType.ADMIN_SYSTEM_SETTING_CHANGE,
    }
)


class SecuritySeverity(str, Enum):
    """Security event severity levels."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Ordering rank, higher is more severe."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    SecuritySeverity.INFO: 0,
    SecuritySeverity.WARNING: 1,
    SecuritySeverity.ERROR: 2,
    SecuritySeverity.CRITICAL: 3,
}


class AlertType:
    """Alert type tags raised by the detectors.

    Alert types are free-form strings; these are the ones the pipeline emits.
    """

    ACCOUNT_LOCKOUT = "account_lockout"
    NEW_LOCATION_ACCESS = "new_location_access"
    BRUTE_FORCE_ATTEMPT = "brute_force_attempt"


class SecurityEventCreate(BaseModel):
    """Input for the event recorder."""

    event_type: SecurityEventType
    severity: SecuritySeverity
    user_id: int | None = None
    ip_address: str = "unknown"
    user_agent: str = "unknown"
    details: dict[str, Any] | None = None
    created_at: datetime | None = Field(
        default=None, description="Explicit timestamp, defaults to now"
    )

    @field_validator("ip_address", "user_agent", mode="before")
    @classmethod
    def _default_unknown(cls, value: Any) -> Any:
        if value is None or value == "":
            return "unknown"
        return value


class SecurityEventRecord(BaseModel):
    """A persisted security event."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int | None = None
    event_type: SecurityEventType
    severity: SecuritySeverity
    ip_address: str
    user_agent: str
    details: dict[str, Any] | None = None
    created_at: datetime
    username: str | None = None
    email: str | None = None


class SecurityAlertRecord(BaseModel):
    """A persisted security alert."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    event_id: int
    user_id: int | None = None
    alert_type: str
    severity: SecuritySeverity
    message: str
    is_resolved: bool = False
    resolved_by: int | None = None
    resolution_notes: str | None = None
    created_at: datetime
    resolved_at: datetime | None = None


class UnresolvedAlert(SecurityAlertRecord):
    """Unresolved alert joined with its originating event and subject user."""

    event_type: SecurityEventType | None = None
    ip_address: str | None = None
    username: str | None = None
    email: str | None = None


class SecurityLogQuery(BaseModel):
    """Filters and pagination for the security log listing."""

    user_id: int | None = None
    event_type: SecurityEventType | None = None
    severity: SecuritySeverity | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


class SecurityLogPage(BaseModel):
    """One page of security log rows plus the total match count."""

    logs: list[SecurityEventRecord] = Field(default_factory=list)
    total: int = 0


class SecurityStats(BaseModel):
    """Overall event counts and alert triage summary."""

    total_events: int = 0
    events_by_type: dict[str, int] = Field(default_factory=dict)
    events_by_severity: dict[str, int] = Field(default_factory=dict)
    recent_alerts: list[SecurityAlertRecord] = Field(default_factory=list)
    unresolved_alerts: int = 0


class SecurityLogStats(BaseModel):
    """Event counts over a window plus trailing 24h activity counts."""

    total_events: int = 0
    events_by_type: dict[str, int] = Field(default_factory=dict)
    events_by_severity: dict[str, int] = Field(default_factory=dict)
    recent_failed_logins: int = 0
    recent_suspicious_activities: int = 0
    recent_api_access: int = 0


class GeolocationData(BaseModel):
    """Location resolved for an IP address."""

    country: str
    region: str
    city: str
    latitude: float
    longitude: float
    simulated: bool = Field(default=False, description="True when placeholder data was used")


class AccountLockStatus(BaseModel):
    """Lock state of an account at check time."""

    username: str
    exists: bool = False
    locked: bool = False
    locked_until: datetime | None = None
    reason: str | None = None
    attempts: int = 0


class RateLimitResult(BaseModel):
    """Outcome of a rate limit check."""

    success: bool
    limit: int
    remaining: int
    reset_time: int = Field(description="Window reset time in epoch milliseconds")
    ms_before_next: int

    def headers(self) -> dict[str, str]:
        """Standard rate limit response headers."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_time // 1000),
        }
        if not self.success:
            headers["Retry-After"] = str(max(1, -(-self.ms_before_next // 1000)))
        return headers
