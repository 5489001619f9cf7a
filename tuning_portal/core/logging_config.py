"""
Logging configuration.

Configures standard library logging for the application and for uvicorn so
that both share one console handler and format.
"""

import logging
import logging.config
from typing import Any

from tuning_portal.core.config import LoggingSettings, get_settings


def build_logging_config(settings: LoggingSettings) -> dict[str, Any]:
    """Build a ``dictConfig`` mapping from logging settings."""
    level = settings.level.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": settings.format},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            "tuning_portal": {"level": level, "handlers": ["console"], "propagate": False},
            "uvicorn": {"level": level, "handlers": ["console"], "propagate": False},
            "uvicorn.access": {"level": level, "handlers": ["console"], "propagate": False},
        },
        "root": {"level": level, "handlers": ["console"]},
    }


def configure_logging(settings: LoggingSettings | None = None) -> dict[str, Any]:
    """
    Apply the logging configuration.

    Args:
        settings: Logging settings, defaults to the application settings

    Returns:
        The applied ``dictConfig`` mapping (also usable as uvicorn ``log_config``)
    """
    config = build_logging_config(settings or get_settings().logging)
    logging.config.dictConfig(config)
    logging.getLogger(__name__).debug("Logging configured at level %s", config["root"]["level"])
    return config
