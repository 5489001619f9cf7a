#!/usr/bin/env python3
"""
Router Configuration

Router configuration that uses FastAPI dependency injection for service management.
"""

import logging

from fastapi import FastAPI

from tuning_portal.api.routers import security_admin

logger = logging.getLogger(__name__)


def configure_routers(app: FastAPI) -> None:
    """
    Configure all API routers using dependency injection.

    Route handlers obtain their services from ``app.state`` through the
    dependencies in ``tuning_portal.core.dependencies``.

    Args:
        app: FastAPI application instance
    """
    logger.info("Configuring API routers with dependency injection")

    app.include_router(security_admin.router)

    logger.info(f"Configured {len(app.routes)} routes")
