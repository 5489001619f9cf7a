"""Best-effort execution for secondary security checks.

Monitoring side effects (anomaly detection, lockout bookkeeping, alert
creation) must never fail the primary user-facing action. Operations that
run in that mode return a :class:`BestEffortResult` instead of raising, so
the contract is visible in their signature and callers can still inspect
the failure.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any, Generic, ParamSpec, TypeVar

from prometheus_client import Counter

from tuning_portal.core.metrics import _safe_create_metric

logger = logging.getLogger(__name__)

T = TypeVar("T")
P = ParamSpec("P")

BEST_EFFORT_FAILURES = _safe_create_metric(
    Counter,
    "tuning_portal_best_effort_failures_total",
    "Secondary security operations that failed and were swallowed",
    labelnames=["operation"],
)


@dataclass(frozen=True)
class BestEffortResult(Generic[T]):
    """Outcome of a best-effort operation."""

    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> "BestEffortResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException) -> "BestEffortResult[T]":
        return cls(error=error)

    def unwrap(self) -> T | None:
        """Return the value, re-raising the captured error if there is one."""
        if self.error is not None:
            raise self.error
        return self.value


def best_effort(
    operation: str,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[BestEffortResult[T]]]]:
    """Wrap an async operation so failures are logged and returned, never raised.

    Args:
        operation: Name used in log records and metrics

    Returns:
        Decorator producing a coroutine function that returns ``BestEffortResult``
    """

    def decorator(
        func: Callable[P, Awaitable[T]],
    ) -> Callable[P, Awaitable[BestEffortResult[T]]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> BestEffortResult[T]:
            try:
                return BestEffortResult.success(await func(*args, **kwargs))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(
                    f"Best-effort operation {operation} failed: {e}",
                    extra={"operation": operation},
                )
                if BEST_EFFORT_FAILURES:
                    BEST_EFFORT_FAILURES.labels(operation=operation).inc()
                return BestEffortResult.failure(e)

        return wrapper

    return decorator


def log_failure(result: BestEffortResult[Any], context: str) -> None:
    """Log a failed best-effort result at warning level for the caller's channel."""
    if not result.ok:
        logger.warning(f"{context} did not complete: {result.error}")
