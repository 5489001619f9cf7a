"""
Authentication dependencies for the admin API.

Token verification happens upstream: the JWT layer in front of this service
places the authenticated principal on ``request.state.user`` as a dict with
``user_id``, ``username``, ``email`` and ``role``. These dependencies read it
and enforce admin access. Every admin request is recorded as sensitive data
access, including the ones that get rejected.
"""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from tuning_portal.core.best_effort import log_failure
from tuning_portal.core.dependencies import get_security_event_service
from tuning_portal.middleware.rate_limiting import get_client_ip, get_user_agent
from tuning_portal.models.auth import UserRole
from tuning_portal.services.security_event_service import SecurityEventService

logger = logging.getLogger(__name__)


def get_current_user(request: Request) -> dict | None:
    """
    Get the current authenticated user from the request state.

    Args:
        request: FastAPI request object

    Returns:
        Optional[dict]: User information if authenticated, None otherwise
    """
    return getattr(request.state, "user", None)


def _principal_id(user: dict | None) -> int | None:
    if not user:
        return None
    try:
        return int(user.get("user_id"))
    except (TypeError, ValueError):
        return None


async def get_admin_user(
    request: Request,
    event_service: Annotated[SecurityEventService, Depends(get_security_event_service)],
) -> dict:
    """
    Get the authenticated admin user, raising an exception if not admin.

    The request is logged as sensitive data access before the role check so
    rejected attempts leave a trace too.

    Args:
        request: FastAPI request object
        event_service: Security event recorder

    Returns:
        dict: Admin user information

    Raises:
        HTTPException: If the request is not authenticated or not admin
    """
    user = get_current_user(request)
    user_id = _principal_id(user)

    logged = await event_service.log_api_access(
        user_id,
        get_client_ip(request),
        get_user_agent(request),
        request.method,
        request.url.path,
        is_sensitive=True,
    )
    log_failure(logged, f"Admin access logging for {request.url.path}")

    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required"
        )
    if user.get("role") != UserRole.ADMIN.value:
        logger.warning(
            f"Non-admin user {user_id} denied access to {request.url.path}",
            extra={"user_id": user_id, "path": request.url.path},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required"
        )
    return {**user, "user_id": user_id}


# Type aliases for cleaner usage with Annotated
AdminUser = Annotated[dict, Depends(get_admin_user)]
