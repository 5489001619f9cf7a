"""Tests for service and repository performance monitoring."""

import asyncio
from unittest.mock import MagicMock

import pytest

from tuning_portal.core.performance import MetricsCollector, PerformanceMonitor


@pytest.fixture
def collector():
    return MagicMock(spec=MetricsCollector)


@pytest.fixture
def monitor(collector):
    return PerformanceMonitor(collector)


async def test_fast_call_passes_through(monitor, collector):
    @monitor.monitor_service_method("LockoutService", "register_failed_attempt")
    async def register(value):
        return value + 1

    assert await register(4) == 5
    assert register.__name__ == "register"
    collector.record_slow_operation.assert_not_called()
    collector.record_error.assert_not_called()


async def test_slow_call_is_recorded(monitor, collector):
    @monitor.monitor_repository_operation(
        "SecurityEventRepository", "query_logs", alert_threshold_ms=0
    )
    async def query_logs():
        await asyncio.sleep(0.001)
        return []

    assert await query_logs() == []

    collector.record_slow_operation.assert_called_once()
    component, operation, latency_ms = collector.record_slow_operation.call_args.args
    assert (component, operation) == ("SecurityEventRepository", "query_logs")
    assert latency_ms > 0


async def test_error_is_recorded_and_raised(monitor, collector):
    @monitor.monitor_service_method("SecurityReportService", "get_security_stats")
    async def get_security_stats():
        raise RuntimeError("store down")

    with pytest.raises(RuntimeError, match="store down"):
        await get_security_stats()

    collector.record_error.assert_called_once()
    assert collector.record_error.call_args.args[:2] == (
        "SecurityReportService",
        "get_security_stats",
    )


def test_sync_functions_are_left_alone(monitor):
    def build_key(ip):
        return f"{ip}:login"

    assert monitor.monitor_service_method("RateLimiter", "build_key")(build_key) is build_key
