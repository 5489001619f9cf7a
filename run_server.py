#!/usr/bin/env python3
"""
Entry point to run the Tuning Portal security server.

Command line options override the environment based configuration.
"""

import argparse
import logging
import sys

import uvicorn
from dotenv import load_dotenv

# Load environment variables from .env if present
load_dotenv()

from tuning_portal.core.config import get_settings  # noqa: E402
from tuning_portal.core.logging_config import configure_logging  # noqa: E402


def create_argument_parser():
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(description="Run the Tuning Portal security server.")

    parser.add_argument(
        "--host",
        type=str,
        help="Host to bind (overrides configuration)",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Port to bind (overrides configuration)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload (overrides configuration)",
    )
    parser.add_argument(
        "--no-reload",
        action="store_true",
        help="Disable auto-reload (overrides configuration)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Number of worker processes (overrides configuration)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["critical", "error", "warning", "info", "debug"],
        help="Log level (overrides configuration)",
    )
    parser.add_argument(
        "--config",
        action="store_true",
        help="Show current configuration and exit",
    )

    return parser


def override_settings_from_args(settings, args):
    """Override settings with command line arguments if provided."""
    server_config = settings.server.model_copy()

    if args.host is not None:
        server_config.host = args.host
    if args.port is not None:
        server_config.port = args.port
    if args.reload:
        server_config.reload = True
    if args.no_reload:
        server_config.reload = False
    if args.workers is not None:
        server_config.workers = args.workers

    settings.server = server_config

    if args.log_level is not None:
        logging_config = settings.logging.model_copy()
        logging_config.level = args.log_level.upper()
        settings.logging = logging_config

    return settings


def show_configuration(settings):
    """Display current configuration."""
    print("Current Tuning Portal Configuration:")
    print("=" * 50)
    print(f"App Name: {settings.app_name}")
    print(f"Environment: {settings.environment}")
    print()

    print("Server Configuration:")
    print(f"  Host: {settings.server.host}")
    print(f"  Port: {settings.server.port}")
    print(f"  Workers: {settings.server.workers}")
    print(f"  Reload: {settings.server.reload}")
    print(f"  Proxy Headers: {settings.server.proxy_headers}")
    print()

    print("Database Configuration:")
    print(f"  URL: {settings.database.url}")
    print()

    print("Geolocation Configuration:")
    print(f"  API Key: {'configured' if settings.get_geolocation_api_key() else 'simulated'}")
    print(f"  Base URL: {settings.geolocation.base_url}")
    print()

    print("Security Configuration:")
    print(f"  Rate Limiting: {settings.security.rate_limit_enabled}")
    print(
        f"  Admin API Limit: {settings.security.admin_api_rate_limit}"
        f"/{settings.security.admin_api_rate_window_ms}ms"
    )
    print(f"  Event Retention: {settings.security.event_retention_days} days")
    print()

    print("Logging Configuration:")
    print(f"  Level: {settings.logging.level}")
    print()


if __name__ == "__main__":
    parser = create_argument_parser()
    args = parser.parse_args()

    try:
        settings = get_settings()

        if args.config:
            show_configuration(settings)
            sys.exit(0)

        settings = override_settings_from_args(settings, args)

        log_config = configure_logging(settings.logging)

        logger = logging.getLogger(__name__)
        logger.info("Starting Tuning Portal security server")

        if settings.is_development():
            logger.info("Running in development mode")
        else:
            logger.info("Running in production mode")

        if settings.server.proxy_headers:
            logger.info("Proxy headers enabled - server configured for reverse proxy deployment")

        logger.info(f"Server starting on {settings.server.host}:{settings.server.port}")

        uvicorn.run(
            "tuning_portal.main:create_app",
            factory=True,
            host=settings.server.host,
            port=settings.server.port,
            reload=settings.server.reload,
            workers=settings.server.workers if not settings.server.reload else None,
            proxy_headers=settings.server.proxy_headers,
            log_level=settings.logging.level.lower(),
            log_config=log_config,
        )

    except Exception as e:
        logger = logging.getLogger(__name__)
        logger.exception(f"Failed to start server: {e}")
        sys.exit(1)
