"""
Core exceptions for the Tuning Portal backend.

This module contains custom exceptions used throughout the application
for proper error handling and API responses.
"""

from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tuning_portal.models.security_events import RateLimitResult


class ServiceNotAvailableError(Exception):
    """
    Raised when a requested service has not been initialized.

    It results in a 503 Service Unavailable response.
    """

    def __init__(self, service_name: str):
        self.service_name = service_name
        super().__init__(f"Service '{service_name}' is not available")


class SecurityStoreError(Exception):
    """
    Raised when the security event store cannot be reached or written.

    Only the primary event insert surfaces this error; derived checks
    report it through a best-effort result instead.
    """

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Security store operation '{operation}' failed: {reason}")


class AccountLockedError(Exception):
    """Raised when a locked account attempts to authenticate."""

    def __init__(
        self,
        username: str,
        lockout_until: datetime | None = None,
        attempts: int = 0,
    ):
        self.username = username
        self.lockout_until = lockout_until
        self.attempts = attempts
        message = f"Account '{username}' is locked"
        if lockout_until:
            message += f" until {lockout_until.isoformat()}"
        super().__init__(message)


class RateLimitExceededError(Exception):
    """Raised when a caller exceeds a configured rate limit."""

    def __init__(self, key: str, result: "RateLimitResult"):
        self.key = key
        self.result = result
        super().__init__(
            f"Rate limit exceeded for '{key}', retry in {result.ms_before_next}ms"
        )
