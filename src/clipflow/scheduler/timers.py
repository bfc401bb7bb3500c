"""Clock and timer abstractions used by the upload scheduler.

The scheduler never reads the wall clock or touches the event loop
directly; both are injected so that tests can drive time by hand.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Protocol, runtime_checkable

from clipflow.core.datetime_utils import utc_now

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], None]


@runtime_checkable
class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:
        """Return the current time as an aware datetime."""
        ...


class SystemClock:
    """Clock backed by the system's UTC time."""

    def now(self) -> datetime:
        return utc_now()


@runtime_checkable
class TimerService(Protocol):
    """Arms one-shot callbacks keyed by an identifier.

    At most one timer exists per key; arming a key again replaces the
    previous timer.
    """

    def arm(self, key: str, when: datetime, callback: TimerCallback) -> None: ...

    def disarm(self, key: str) -> bool: ...

    def disarm_all(self) -> int: ...

    def armed(self) -> list[str]: ...


class NullTimerService:
    """Timer service that never fires.

    Used by short-lived processes (the CLI) that only persist schedules;
    a running daemon picks due records up with its periodic rescan.
    """

    def arm(self, key: str, when: datetime, callback: TimerCallback) -> None:
        pass

    def disarm(self, key: str) -> bool:
        return False

    def disarm_all(self) -> int:
        return 0

    def armed(self) -> list[str]:
        return []


class AsyncioTimerService:
    """Timer service driven by ``loop.call_later``.

    Callbacks run in a worker thread (they perform blocking database
    work) and must not raise; anything they do raise is logged. Timers may
    be armed and disarmed from any thread.

    Args:
        clock: Clock used to turn the target time into a delay.
        loop: Event loop to schedule on; defaults to the running loop.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.clock = clock or SystemClock()
        self.loop = loop or asyncio.get_running_loop()
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._running: set[asyncio.Task[None]] = set()

    def _on_loop(self, func: Callable[..., object], *args: object) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self.loop:
            func(*args)
        else:
            self.loop.call_soon_threadsafe(func, *args)

    def arm(self, key: str, when: datetime, callback: TimerCallback) -> None:
        self._on_loop(self._arm, key, when, callback)

    def _arm(self, key: str, when: datetime, callback: TimerCallback) -> None:
        old = self._handles.pop(key, None)
        if old is not None:
            old.cancel()
        delay = max(0.0, (when - self.clock.now()).total_seconds())
        self._handles[key] = self.loop.call_later(delay, self._fire, key, callback)
        logger.debug("Armed timer %s in %.1fs", key, delay)

    def _fire(self, key: str, callback: TimerCallback) -> None:
        self._handles.pop(key, None)
        task = self.loop.create_task(self._run(key, callback), name=f"timer-{key[:8]}")
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self, key: str, callback: TimerCallback) -> None:
        try:
            await asyncio.to_thread(callback)
        except Exception:
            logger.exception("Timer callback for %s failed", key)

    def disarm(self, key: str) -> bool:
        armed = key in self._handles
        self._on_loop(self._disarm, key)
        return armed

    def _disarm(self, key: str) -> None:
        handle = self._handles.pop(key, None)
        if handle is not None:
            handle.cancel()

    def disarm_all(self) -> int:
        count = len(self._handles)
        self._on_loop(self._disarm_all)
        return count

    def _disarm_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def armed(self) -> list[str]:
        return list(self._handles)

    async def wait_running(self) -> None:
        """Wait for callbacks that have already fired to finish."""
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)
