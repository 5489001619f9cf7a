"""
Dependencies for dependency injection.

Services are constructed once in the application lifespan and stored on
``app.state``. The dependencies here hand them to route handlers through
FastAPI's dependency injection system.
"""

import logging
from typing import Annotated, Any

from fastapi import Depends, Request

from tuning_portal.core.exceptions import ServiceNotAvailableError
from tuning_portal.services.lockout_service import LockoutService
from tuning_portal.services.security_event_service import SecurityEventService
from tuning_portal.services.security_report_service import SecurityReportService

logger = logging.getLogger(__name__)


def create_service_dependency(service_name: str):
    """
    Factory function to create service dependencies.

    This creates FastAPI dependency functions that get services from the
    application state.

    Args:
        service_name: Attribute name of the service on ``app.state``

    Returns:
        A FastAPI dependency function
    """

    def dependency(request: Request) -> Any:
        service = getattr(request.app.state, service_name, None)
        if service is None:
            logger.warning(f"Service '{service_name}' requested before initialization")
            raise ServiceNotAvailableError(service_name)
        return service

    dependency.__name__ = f"get_{service_name}"
    return dependency


get_security_event_service = create_service_dependency("security_event_service")
get_security_report_service = create_service_dependency("security_report_service")
get_lockout_service = create_service_dependency("lockout_service")


# Type aliases
SecurityEventServiceDep = Annotated[SecurityEventService, Depends(get_security_event_service)]
SecurityReportServiceDep = Annotated[SecurityReportService, Depends(get_security_report_service)]
LockoutServiceDep = Annotated[LockoutService, Depends(get_lockout_service)]
