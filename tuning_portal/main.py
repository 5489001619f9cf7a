#!/usr/bin/env python3
"""
Main application entry point for the Tuning Portal security backend.

This module wires the security pipeline (event recorder, anomaly detector,
lockout monitor, reporter and rate limiter) into a FastAPI application with
an explicit startup and shutdown order.
"""

import argparse
import logging
import signal
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from tuning_portal import __version__
from tuning_portal.api.router_config import configure_routers
from tuning_portal.core.background_tasks import BackgroundTaskManager
from tuning_portal.core.config import Settings, get_settings
from tuning_portal.core.exceptions import (
    AccountLockedError,
    RateLimitExceededError,
    SecurityStoreError,
    ServiceNotAvailableError,
)
from tuning_portal.core.logging_config import configure_logging
from tuning_portal.core.performance import PerformanceMonitor
from tuning_portal.middleware.http import prometheus_http_middleware, request_id_middleware
from tuning_portal.repositories.access_location_repository import AccessLocationRepository
from tuning_portal.repositories.rate_limit_repository import RateLimitRepository
from tuning_portal.repositories.security_alert_repository import SecurityAlertRepository
from tuning_portal.repositories.security_event_repository import SecurityEventRepository
from tuning_portal.repositories.user_repository import UserRepository
from tuning_portal.services.anomaly_detection_service import AnomalyDetectionService
from tuning_portal.services.auth_security_service import AuthSecurityService
from tuning_portal.services.database_manager import DatabaseManager
from tuning_portal.services.geolocation_service import GeolocationService
from tuning_portal.services.lockout_service import LockoutService
from tuning_portal.services.rate_limiter import MemoryRateLimitStore, RateLimiter
from tuning_portal.services.retention_service import RetentionService
from tuning_portal.services.security_event_service import SecurityEventService
from tuning_portal.services.security_report_service import SecurityReportService

logger = logging.getLogger(__name__)

# Store startup time for health checks
SERVER_START_TIME = time.time()


def init_security_services(
    app: FastAPI,
    database_manager: DatabaseManager,
    geolocation_service: GeolocationService,
    performance_monitor: PerformanceMonitor | None = None,
) -> None:
    """
    Construct the security pipeline and attach it to ``app.state``.

    Args:
        app: Application whose state receives the services
        database_manager: Initialized database manager
        geolocation_service: IP geolocation lookup
        performance_monitor: Optional performance monitoring instance
    """
    settings = get_settings()

    event_repository = SecurityEventRepository(database_manager, performance_monitor)
    alert_repository = SecurityAlertRepository(database_manager, performance_monitor)
    location_repository = AccessLocationRepository(database_manager, performance_monitor)
    user_repository = UserRepository(database_manager, performance_monitor)
    rate_limit_repository = RateLimitRepository(database_manager, performance_monitor)

    event_service = SecurityEventService(event_repository, alert_repository)
    anomaly_service = AnomalyDetectionService(
        event_service, location_repository, geolocation_service
    )
    lockout_service = LockoutService(
        event_service, event_repository, user_repository, performance_monitor
    )

    app.state.database_manager = database_manager
    app.state.geolocation_service = geolocation_service
    app.state.performance_monitor = performance_monitor
    app.state.security_event_service = event_service
    app.state.anomaly_detection_service = anomaly_service
    app.state.lockout_service = lockout_service
    app.state.auth_security_service = AuthSecurityService(
        event_service,
        anomaly_service,
        lockout_service,
        user_repository,
        location_repository,
        geolocation_service,
        performance_monitor,
    )
    app.state.security_report_service = SecurityReportService(event_repository, alert_repository)
    app.state.rate_limiter = RateLimiter(MemoryRateLimitStore(), rate_limit_repository)
    app.state.retention_service = RetentionService(
        event_repository,
        alert_repository,
        event_retention_days=settings.security.event_retention_days,
        resolved_alert_retention_days=settings.security.resolved_alert_retention_days,
    )
    logger.info("Security services initialized")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Startup order: database, geolocation client, security services,
    background sweeps. Shutdown runs in reverse.
    """
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} ({settings.environment})")

    database_manager = DatabaseManager(settings.database)
    geolocation_service = GeolocationService.from_settings(settings)
    background_tasks = BackgroundTaskManager()
    app.state.background_tasks = background_tasks

    try:
        if not await database_manager.initialize():
            msg = "Database initialization failed"
            raise RuntimeError(msg)

        init_security_services(app, database_manager, geolocation_service, PerformanceMonitor())

        background_tasks.schedule_periodic(
            app.state.rate_limiter.sweep,
            settings.security.rate_limit_sweep_interval_seconds,
            name="rate_limit_sweep",
        )
        background_tasks.schedule_periodic(
            app.state.retention_service.run_sweep,
            settings.security.retention_sweep_interval_seconds,
            name="security_retention_sweep",
        )

        logger.info("Application startup complete")
        yield

    except Exception as e:
        logger.error("Error during application startup: %s", e)
        raise
    finally:
        logger.info(f"Shutting down {settings.app_name}")
        await background_tasks.shutdown()
        await geolocation_service.close()
        await database_manager.shutdown()
        logger.info("Backend services stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Security event monitoring API for the Tuning Portal",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.middleware("http")(prometheus_http_middleware)
    app.middleware("http")(request_id_middleware)

    @app.exception_handler(AccountLockedError)
    async def account_locked_exception_handler(request: Request, exc: AccountLockedError):
        logger.warning("Account locked: %s", exc)

        return JSONResponse(
            status_code=423,  # HTTP_423_LOCKED
            content={
                "error": "account_locked",
                "message": str(exc),
                "lockout_until": (exc.lockout_until.isoformat() if exc.lockout_until else None),
                "failed_attempts": exc.attempts,
            },
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError):
        logger.warning("Rate limit exceeded: %s", exc.key)

        return JSONResponse(
            status_code=429,
            content={
                "error": "rate_limit_exceeded",
                "message": "Too many requests, please try again later",
                "retry_after_ms": exc.result.ms_before_next,
            },
            headers=exc.result.headers(),
        )

    @app.exception_handler(ServiceNotAvailableError)
    async def service_not_available_handler(request: Request, exc: ServiceNotAvailableError):
        logger.warning("Service not available: %s", exc.service_name)

        return JSONResponse(
            status_code=503,
            content={
                "detail": str(exc),
                "service": exc.service_name,
                "message": "This service is not initialized",
            },
        )

    @app.exception_handler(SecurityStoreError)
    async def security_store_error_handler(request: Request, exc: SecurityStoreError):
        logger.error("Security store unavailable: %s", exc)

        return JSONResponse(
            status_code=503,
            content={"detail": "Security event store unavailable", "operation": exc.operation},
        )

    @app.get("/health")
    async def health_check(request: Request) -> JSONResponse:
        """Database connectivity check with uptime."""
        database_manager = getattr(request.app.state, "database_manager", None)
        healthy = database_manager is not None and await database_manager.health_check()
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "healthy" if healthy else "unhealthy",
                "database": database_manager.backend if database_manager else None,
                "version": __version__,
                "uptime_seconds": round(time.time() - SERVER_START_TIME),
            },
        )

    @app.get(
        "/metrics",
        summary="Prometheus metrics",
        description="Returns Prometheus-format metrics for monitoring.",
    )
    def metrics() -> Response:
        """Prometheus metrics endpoint."""
        data = generate_latest()
        logger.debug(f"Prometheus metrics generated - {len(data)} bytes")
        return Response(content=data, media_type=CONTENT_TYPE_LATEST)

    configure_routers(app)

    return app


def main():
    """
    Main entry point for running the backend as a script.

    This function is used by the ``tuning-portal`` console script.
    """

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, signal_handler)

    settings = get_settings()

    parser = argparse.ArgumentParser(description="Start the Tuning Portal security server.")
    parser.add_argument(
        "--host",
        type=str,
        default=settings.server.host,
        help=f"Host to bind the server (default: {settings.server.host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.server.port,
        help=f"Port to bind the server (default: {settings.server.port})",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        default=settings.server.reload,
        help="Enable auto-reload (development only)",
    )
    args = parser.parse_args()

    log_config = configure_logging(settings.logging)
    logger.info("Starting Tuning Portal security server in standalone mode")

    uvicorn.run(
        "tuning_portal.main:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        proxy_headers=settings.server.proxy_headers,
        log_level=settings.logging.level.lower(),
        log_config=log_config,
    )


if __name__ == "__main__":
    main()
