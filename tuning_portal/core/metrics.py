"""
Prometheus metrics for the security pipeline.

All metrics are created through ``_safe_create_metric`` so that re-importing a
module (tests, reloads) reuses the registered collector instead of failing on
a duplicate name.
"""

import logging
from typing import Any

from prometheus_client import REGISTRY, Counter, Histogram

logger = logging.getLogger(__name__)


def _safe_create_metric(metric_cls: type, name: str, documentation: str, **kwargs: Any) -> Any:
    """
    Create a Prometheus metric, returning the existing collector if already registered.

    Args:
        metric_cls: Metric class (Counter, Gauge, Histogram)
        name: Metric name
        documentation: Help text
        **kwargs: Extra metric arguments such as ``labelnames``

    Returns:
        The metric instance, or None if it could not be created
    """
    try:
        return metric_cls(name, documentation, **kwargs)
    except ValueError:
        # Counters register under both "<name>" and "<name>_total"
        for candidate in (name, name.removesuffix("_total")):
            existing = REGISTRY._names_to_collectors.get(candidate)
            if existing is not None:
                return existing
        logger.warning(f"Metric {name} already registered and could not be reused")
        return None


SECURITY_EVENTS_RECORDED = _safe_create_metric(
    Counter,
    "tuning_portal_security_events_recorded_total",
    "Security events persisted by the event recorder",
    labelnames=["event_type", "severity"],
)

SECURITY_ALERTS_CREATED = _safe_create_metric(
    Counter,
    "tuning_portal_security_alerts_created_total",
    "Security alerts raised for operator triage",
    labelnames=["alert_type", "severity"],
)

RATE_LIMIT_REJECTIONS = _safe_create_metric(
    Counter,
    "tuning_portal_rate_limit_rejections_total",
    "Requests rejected by the rate limiter",
    labelnames=["identifier", "backend"],
)

GEOLOCATION_LOOKUPS = _safe_create_metric(
    Counter,
    "tuning_portal_geolocation_lookups_total",
    "IP geolocation lookups by data source",
    labelnames=["source"],
)

RETENTION_DELETIONS = _safe_create_metric(
    Counter,
    "tuning_portal_retention_deleted_rows_total",
    "Rows purged by the retention sweep",
    labelnames=["table"],
)

HTTP_REQUEST_LATENCY = _safe_create_metric(
    Histogram,
    "tuning_portal_http_request_latency_seconds",
    "HTTP request latency",
    labelnames=["method", "endpoint"],
)


def get_http_latency() -> Any:
    """Get the HTTP latency histogram."""
    return HTTP_REQUEST_LATENCY


HTTP_REQUESTS = _safe_create_metric(
    Counter,
    "tuning_portal_http_requests_total",
    "HTTP requests handled",
    labelnames=["method", "endpoint", "status_code"],
)


def get_http_requests() -> Any:
    """Get the HTTP request counter."""
    return HTTP_REQUESTS
