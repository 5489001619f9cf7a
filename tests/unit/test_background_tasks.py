"""Tests for the background task manager used by the maintenance sweeps."""

import asyncio

from tuning_portal.core.background_tasks import BackgroundTaskManager


async def test_periodic_task_runs_until_shutdown():
    manager = BackgroundTaskManager()
    calls = []

    async def sweep():
        calls.append(1)

    manager.schedule_periodic(sweep, 0.01, name="sweep")
    await asyncio.sleep(0.05)
    await manager.shutdown()

    assert calls
    assert not manager.is_running
    assert manager.active_tasks == 0


async def test_failing_iteration_keeps_loop_alive():
    manager = BackgroundTaskManager()
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first run fails")

    manager.schedule_periodic(flaky, 0.01, name="flaky")
    await asyncio.sleep(0.06)

    assert len(calls) >= 2
    assert manager.get_task_status() == [{"name": "flaky", "done": False, "cancelled": False}]
    await manager.shutdown()


async def test_shutdown_without_tasks():
    manager = BackgroundTaskManager()
    await manager.shutdown()
    assert manager.active_tasks == 0
