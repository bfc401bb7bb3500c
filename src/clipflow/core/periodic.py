"""Base class for the daemon's periodic background tasks."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from clipflow.core.datetime_utils import utc_now

logger = logging.getLogger(__name__)

# Number of consecutive failures before marking unhealthy
UNHEALTHY_THRESHOLD = 3


class PeriodicTask:
    """Runs ``run_once`` every ``interval_seconds`` until stopped.

    Subclasses implement ``run_once``; failures are logged and counted,
    and the task is reported unhealthy after repeated failures.

    Usage:
        task = SomeTask(interval_seconds=60)
        asyncio.create_task(task.run())
        # ... later ...
        task.stop()
    """

    name = "periodic task"

    def __init__(
        self,
        *,
        interval_seconds: float,
        startup_delay_seconds: float = 0.0,
    ) -> None:
        self.interval_seconds = interval_seconds
        self.startup_delay_seconds = startup_delay_seconds
        self._stop_event = asyncio.Event()
        self._state_lock = asyncio.Lock()
        self._running = False
        self._last_run: datetime | None = None
        self._consecutive_failures = 0
        self._is_healthy = True

    async def run_once(self) -> None:
        raise NotImplementedError

    async def _wait(self, timeout: float) -> bool:
        """Wait for stop or timeout. Returns True if stop was requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def run(self) -> None:
        """Run the loop. Intended to be wrapped in an asyncio task."""
        async with self._state_lock:
            if self._running:
                logger.warning("%s already running", self.name)
                return
            self._running = True

        logger.info(
            "%s started (first run in %.0f seconds, interval %.0f seconds)",
            self.name,
            self.startup_delay_seconds,
            self.interval_seconds,
        )
        try:
            if self.startup_delay_seconds > 0 and await self._wait(
                self.startup_delay_seconds
            ):
                return
            while not self._stop_event.is_set():
                await self._run_guarded()
                if await self._wait(self.interval_seconds):
                    break
        except asyncio.CancelledError:
            pass
        finally:
            async with self._state_lock:
                self._running = False
            logger.info("%s stopped", self.name)

    async def _run_guarded(self) -> None:
        start_time = utc_now()
        try:
            await self.run_once()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._consecutive_failures += 1
            if self._consecutive_failures >= UNHEALTHY_THRESHOLD and self._is_healthy:
                self._is_healthy = False
                logger.error(
                    "%s marked unhealthy after %d consecutive failures",
                    self.name,
                    self._consecutive_failures,
                )
            logger.exception("%s run failed: %s", self.name, e)
            return

        self._last_run = start_time
        self._consecutive_failures = 0
        if not self._is_healthy:
            self._is_healthy = True
            logger.info("%s recovered, marking healthy", self.name)

    def stop(self) -> None:
        """Signal the task to stop."""
        self._stop_event.set()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_run(self) -> datetime | None:
        return self._last_run

    @property
    def is_healthy(self) -> bool:
        return self._is_healthy
