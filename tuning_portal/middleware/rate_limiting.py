"""
Rate Limiting for API Endpoints

FastAPI dependencies that apply the application's ``RateLimiter`` to routes.
Limits are keyed by client IP and a per-route identifier; an exceeded limit
raises ``RateLimitExceededError``, which the application turns into a 429
response carrying the standard rate limit headers.
"""

import logging
from collections.abc import Awaitable, Callable

from fastapi import Request

from tuning_portal.core.config import get_settings
from tuning_portal.core.exceptions import RateLimitExceededError
from tuning_portal.models.security_events import RateLimitResult
from tuning_portal.services.rate_limiter import RateLimiter, RateLimitOptions

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


def _get_client_id(request: Request) -> str:
    """
    Get client identifier for rate limiting.

    Uses the most appropriate identifier available:
    1. X-Forwarded-For header (for reverse proxy setups)
    2. X-Real-IP header (alternative proxy header)
    3. Remote address from connection

    Args:
        request: FastAPI request object

    Returns:
        str: Client identifier for rate limiting
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP if there are multiple
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def get_client_ip(request: Request) -> str:
    return _get_client_id(request)


def get_user_agent(request: Request) -> str:
    return request.headers.get("User-Agent") or UNKNOWN_CLIENT


def _get_rate_limiter(request: Request) -> RateLimiter | None:
    return getattr(request.app.state, "rate_limiter", None)


def rate_limit_dependency(
    identifier: str,
    limit: int | None = None,
    window_ms: int | None = None,
    use_database: bool = False,
) -> Callable[[Request], Awaitable[RateLimitResult | None]]:
    """
    Create a dependency enforcing a per-IP rate limit on a route.

    Limit and window default to the admin API settings.

    Args:
        identifier: Route identifier appended to the client IP
        limit: Requests allowed per window
        window_ms: Window length in milliseconds
        use_database: Count in the shared database store instead of memory

    Returns:
        A FastAPI dependency returning the rate limit outcome
    """

    async def dependency(request: Request) -> RateLimitResult | None:
        settings = get_settings()
        if not settings.security.rate_limit_enabled:
            return None

        rate_limiter = _get_rate_limiter(request)
        if rate_limiter is None:
            logger.debug(f"Rate limiter not configured, skipping limit for {identifier}")
            return None

        options = RateLimitOptions(
            limit=limit or settings.security.admin_api_rate_limit,
            window_ms=window_ms or settings.security.admin_api_rate_window_ms,
            identifier=identifier,
            use_database=use_database,
        )
        client_ip = _get_client_id(request)
        result = await rate_limiter.rate_limit(client_ip, options)
        request.state.rate_limit = result

        if not result.success:
            await rate_limiter.log_rate_limit_event(
                client_ip, identifier, success=False, remaining=result.remaining
            )
            raise RateLimitExceededError(f"{client_ip}:{identifier}", result)
        return result

    dependency.__name__ = f"rate_limit_{identifier}"
    return dependency
