"""Performance monitoring for services and repositories.

Provides decorators that time async operations, export the latency to
Prometheus and flag slow calls with the current request ID for tracing.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from functools import wraps
from typing import Any

from prometheus_client import Counter, Histogram

from tuning_portal.core.context import get_request_id
from tuning_portal.core.metrics import _safe_create_metric

logger = logging.getLogger(__name__)


SERVICE_METHOD_LATENCY = _safe_create_metric(
    Histogram,
    "tuning_portal_service_method_latency_seconds",
    "Service method execution latency",
    labelnames=["service", "method"],
)

REPOSITORY_OPERATION_LATENCY = _safe_create_metric(
    Histogram,
    "tuning_portal_repository_operation_latency_seconds",
    "Repository operation execution latency",
    labelnames=["repository", "operation"],
)

OPERATION_ERRORS = _safe_create_metric(
    Counter,
    "tuning_portal_operation_errors_total",
    "Errors raised by monitored operations",
    labelnames=["component", "operation", "error_type"],
)

SLOW_OPERATIONS = _safe_create_metric(
    Counter,
    "tuning_portal_slow_operations_total",
    "Monitored operations slower than their threshold",
    labelnames=["component", "operation"],
)


class MetricsCollector:
    """Records slow operations and errors of monitored calls."""

    def record_slow_operation(
        self, component: str, operation: str, latency_ms: float, request_id: str | None = None
    ) -> None:
        if SLOW_OPERATIONS:
            SLOW_OPERATIONS.labels(component=component, operation=operation).inc()
        logger.warning(
            f"Slow operation detected: {component}.{operation} "
            f"took {latency_ms:.2f}ms (request_id: {request_id})"
        )

    def record_error(
        self, component: str, operation: str, error: Exception, request_id: str | None = None
    ) -> None:
        if OPERATION_ERRORS:
            OPERATION_ERRORS.labels(
                component=component, operation=operation, error_type=type(error).__name__
            ).inc()
        logger.error(f"Error in {component}.{operation}: {error} (request_id: {request_id})")


class PerformanceMonitor:
    """Central performance monitoring system."""

    def __init__(self, metrics_collector: MetricsCollector | None = None):
        self._metrics = metrics_collector or MetricsCollector()

    def _timed(
        self,
        histogram: Any,
        component: str,
        operation: str,
        alert_threshold_ms: float,
        labels: dict[str, str],
    ) -> Callable:
        def decorator(func: Callable) -> Callable:
            if not asyncio.iscoroutinefunction(func):
                logger.warning(f"{component}.{operation} is sync and will not be monitored")
                return func

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                start = time.perf_counter()
                request_id = get_request_id()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    self._metrics.record_error(component, operation, e, request_id=request_id)
                    raise

                latency_ms = (time.perf_counter() - start) * 1000
                if histogram:
                    histogram.labels(**labels).observe(latency_ms / 1000.0)
                if latency_ms > alert_threshold_ms:
                    self._metrics.record_slow_operation(
                        component, operation, latency_ms, request_id=request_id
                    )
                return result

            return async_wrapper

        return decorator

    def monitor_service_method(
        self, service_name: str, method_name: str, alert_threshold_ms: float = 250
    ) -> Callable:
        """Decorator for monitoring async service methods.

        Args:
            service_name: Name of the service
            method_name: Name of the method being monitored
            alert_threshold_ms: Threshold in milliseconds for slow operation alerts

        Returns:
            Decorated function with performance monitoring
        """
        return self._timed(
            SERVICE_METHOD_LATENCY,
            service_name,
            method_name,
            alert_threshold_ms,
            {"service": service_name, "method": method_name},
        )

    def monitor_repository_operation(
        self, repository_name: str, operation_name: str, alert_threshold_ms: float = 100
    ) -> Callable:
        """Decorator for monitoring repository operations.

        Args:
            repository_name: Name of the repository
            operation_name: Name of the operation being monitored
            alert_threshold_ms: Threshold in milliseconds for slow operation alerts

        Returns:
            Decorated function
        """
        return self._timed(
            REPOSITORY_OPERATION_LATENCY,
            repository_name,
            operation_name,
            alert_threshold_ms,
            {"repository": repository_name, "operation": operation_name},
        )
