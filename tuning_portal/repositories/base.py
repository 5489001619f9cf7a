"""Base Repository Pattern

Provides the base class for the security repositories: access to the shared
database manager plus optional performance monitoring of every operation.
"""

import logging
from collections.abc import Callable
from functools import wraps
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from tuning_portal.core.performance import PerformanceMonitor
    from tuning_portal.services.database_manager import DatabaseManager

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MonitoredRepository:
    """Base repository class with performance monitoring integration."""

    def __init__(
        self,
        database_manager: "DatabaseManager",
        performance_monitor: "PerformanceMonitor | None" = None,
    ):
        """Initialize the base repository.

        Args:
            database_manager: Database manager for persistence
            performance_monitor: Performance monitoring instance
        """
        self._db_manager = database_manager
        self._monitor = performance_monitor
        self._repository_name = self.__class__.__name__

    @staticmethod
    def _monitored_operation(operation_name: str) -> Callable:
        """Decorator for monitoring async repository operations.

        Args:
            operation_name: Name of the operation to monitor

        Returns:
            Decorator function
        """

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            @wraps(func)
            async def wrapper(self: "MonitoredRepository", *args: Any, **kwargs: Any) -> Any:
                if self._monitor:
                    monitored = self._monitor.monitor_repository_operation(
                        self._repository_name, operation_name
                    )(func)
                    return await monitored(self, *args, **kwargs)
                return await func(self, *args, **kwargs)

            return wrapper

        return decorator
