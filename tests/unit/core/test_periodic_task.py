"""Unit tests for PeriodicTask."""

import asyncio

import pytest

from clipflow.core.periodic import UNHEALTHY_THRESHOLD, PeriodicTask


class CountingTask(PeriodicTask):
    name = "Counting task"

    def __init__(self, fail: bool = False, **kwargs) -> None:
        super().__init__(**kwargs)
        self.fail = fail
        self.runs = 0

    async def run_once(self) -> None:
        self.runs += 1
        if self.fail:
            raise RuntimeError("boom")


class TestPeriodicTask:
    """Tests for the periodic run loop."""

    @pytest.mark.asyncio
    async def test_runs_until_stopped(self):
        task = CountingTask(interval_seconds=0.01)
        runner = asyncio.create_task(task.run())

        for _ in range(100):
            if task.runs >= 3:
                break
            await asyncio.sleep(0.01)
        task.stop()
        await asyncio.wait_for(runner, timeout=1)

        assert task.runs >= 3
        assert task.last_run is not None
        assert task.is_running is False

    @pytest.mark.asyncio
    async def test_stop_during_startup_delay_skips_run(self):
        task = CountingTask(interval_seconds=1, startup_delay_seconds=10)
        runner = asyncio.create_task(task.run())
        await asyncio.sleep(0)

        task.stop()
        await asyncio.wait_for(runner, timeout=1)

        assert task.runs == 0

    @pytest.mark.asyncio
    async def test_repeated_failures_mark_unhealthy(self):
        task = CountingTask(fail=True, interval_seconds=1)

        for _ in range(UNHEALTHY_THRESHOLD):
            await task._run_guarded()

        assert task.is_healthy is False
        assert task.last_run is None

    @pytest.mark.asyncio
    async def test_success_restores_health(self):
        task = CountingTask(fail=True, interval_seconds=1)
        for _ in range(UNHEALTHY_THRESHOLD):
            await task._run_guarded()

        task.fail = False
        await task._run_guarded()

        assert task.is_healthy is True
        assert task.last_run is not None
