"""Background task management for periodic security maintenance.

The manager is created by the application lifespan and owns every sweep the
security pipeline needs (in-memory rate limit cleanup, retention purge), so
nothing runs as a free-standing process-wide timer.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundTaskManager:
    """Manages background tasks with proper lifecycle and error handling."""

    def __init__(self):
        """Initialize the background task manager."""
        self._tasks: list[asyncio.Task] = []
        self._running = True

    def schedule(self, coro: Coroutine, name: str | None = None) -> asyncio.Task:
        """Schedule a coroutine to run as a background task.

        Args:
            coro: Coroutine to run
            name: Optional name for the task

        Returns:
            The created task
        """
        task = asyncio.create_task(coro, name=name)
        self._tasks.append(task)
        task.add_done_callback(self._handle_task_completion)
        logger.info(f"Scheduled background task: {task.get_name()}")
        return task

    def schedule_periodic(
        self,
        func: Callable[[], Awaitable[Any] | Any],
        interval_seconds: float,
        name: str,
    ) -> asyncio.Task:
        """Run ``func`` every ``interval_seconds`` until shutdown.

        A failing iteration is logged and the loop keeps going.

        Args:
            func: Sync or async callable invoked once per interval
            interval_seconds: Delay between invocations
            name: Task name used in logs

        Returns:
            The created task
        """
        return self.schedule(self._periodic(func, interval_seconds, name), name=name)

    async def _periodic(
        self, func: Callable[[], Awaitable[Any] | Any], interval_seconds: float, name: str
    ) -> None:
        while self._running:
            await asyncio.sleep(interval_seconds)
            try:
                result = func()
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception(f"Periodic task {name} iteration failed")

    def _handle_task_completion(self, task: asyncio.Task) -> None:
        """Log exceptions from completed tasks."""
        try:
            task.result()
            logger.info(f"Background task {task.get_name()} finished successfully.")
        except asyncio.CancelledError:
            logger.info(f"Background task {task.get_name()} was cancelled.")
        except Exception:
            logger.exception(f"Background task {task.get_name()} failed with an exception.")

        if task in self._tasks:
            self._tasks.remove(task)

    async def shutdown(self) -> None:
        """Cancel all running background tasks during application shutdown."""
        self._running = False

        if not self._tasks:
            logger.info("No background tasks to shut down.")
            return

        tasks = list(self._tasks)
        logger.info(f"Shutting down {len(tasks)} background tasks...")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._tasks.clear()
        logger.info("Background tasks shut down complete.")

    @property
    def is_running(self) -> bool:
        """Check if the manager is still running."""
        return self._running

    @property
    def active_tasks(self) -> int:
        """Get count of active tasks."""
        return len(self._tasks)

    def get_task_status(self) -> list[dict[str, Any]]:
        """Get status of all managed tasks."""
        return [
            {"name": task.get_name(), "done": task.done(), "cancelled": task.cancelled()}
            for task in self._tasks
        ]
