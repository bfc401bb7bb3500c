"""Progress reporting for running jobs.

Adapters report stage-local progress (0-100) through a plain callback.
``StageProgress`` maps that into the job's overall percent using fixed
stage windows, keeps the value non-decreasing for the run, and hands each
change to its sinks: the in-process ``ProgressBroadcaster`` and the
database row (``DatabaseProgressSink``).
"""

from __future__ import annotations

import asyncio
import logging
import math
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from clipflow.adapters.interfaces import ProgressCallback
from clipflow.core.datetime_utils import utc_now
from clipflow.jobs.queue import update_progress

if TYPE_CHECKING:
    from clipflow.db.connection import ConnectionPool

logger = logging.getLogger(__name__)

# Stage names carried on progress events
STAGE_DOWNLOADING = "downloading"
STAGE_PROCESSING = "processing"
STAGE_GENERATING = "generating-content"
STAGE_UPLOADING = "uploading"
STAGE_COMPLETED = "completed"
STAGE_ERROR = "error"

# Overall percent when content generation starts
CONTENT_GENERATION_PERCENT = 70

DEFAULT_SUBSCRIBER_QUEUE_SIZE = 100


@dataclass(frozen=True)
class ProgressEvent:
    """A single progress notification for one job."""

    job_id: str
    stage: str
    percent: int
    detail: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "stage": self.stage,
            "percent": self.percent,
            "detail": self.detail,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class StageWindow:
    """The slice of overall progress owned by one stage.

    Attributes:
        name: Stage name reported on events.
        base: Overall percent at stage start.
        weight: Width of the window; the stage ends at ``base + weight``.
    """

    name: str
    base: int
    weight: int

    def map(self, local_percent: float) -> int:
        """Map stage-local percent into the overall range.

        Input is clamped to 0-100; NaN and infinities count as 0.
        """
        local = float(local_percent)
        if not math.isfinite(local):
            local = 0.0
        local = min(max(local, 0.0), 100.0)
        return int(self.base + local * self.weight / 100)


DOWNLOAD_WINDOW = StageWindow(STAGE_DOWNLOADING, 10, 20)
PROCESSING_WINDOW = StageWindow(STAGE_PROCESSING, 30, 40)
UPLOAD_WINDOW = StageWindow(STAGE_UPLOADING, 0, 100)


class StageProgress:
    """Monotonic progress tracker for one run of one job.

    Every emitted event has a percent greater than or equal to the previous
    one. Reports that would move progress backwards are raised to the last
    value; reports that change neither percent nor stage are dropped.
    """

    def __init__(
        self,
        job_id: str,
        sinks: list[Callable[[ProgressEvent], None]],
    ) -> None:
        self.job_id = job_id
        self.sinks = sinks
        self.percent = 0
        self.stage: str | None = None
        self._lock = threading.Lock()

    def report(
        self,
        percent: int,
        stage: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        """Report overall progress for the current stage."""
        percent = min(max(int(percent), 0), 100)
        with self._lock:
            percent = max(percent, self.percent)
            if percent == self.percent and stage == self.stage:
                return
            self.percent = percent
            self.stage = stage
        event = ProgressEvent(self.job_id, stage, percent, detail)
        for sink in self.sinks:
            try:
                sink(event)
            except Exception:
                logger.exception("Progress sink failed for job %s", self.job_id)

    def callback(self, window: StageWindow) -> ProgressCallback:
        """Build the callback handed to a stage adapter."""

        def on_progress(local_percent: float, detail: dict[str, Any] | None = None):
            self.report(window.map(local_percent), window.name, detail)

        return on_progress


class DatabaseProgressSink:
    """Writes progress events to the job row.

    On the event loop thread the write is handed to a worker thread, so an
    adapter callback never waits on the database. Events that arrive while
    a write is in flight are coalesced: only the latest one is written.
    Call ``flush`` before recording the job's outcome.

    Progress updates are non-critical: database errors are logged at debug
    level and otherwise ignored.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self.pool = pool
        self._pending: ProgressEvent | None = None
        self._lock = threading.Lock()
        self._writer: asyncio.Task[None] | None = None

    def __call__(self, event: ProgressEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Adapter reporting from its own thread
            self._write(event)
            return
        with self._lock:
            self._pending = event
        if self._writer is None or self._writer.done():
            self._writer = loop.create_task(self._drain())

    async def _drain(self) -> None:
        while True:
            with self._lock:
                event, self._pending = self._pending, None
            if event is None:
                return
            await asyncio.to_thread(self._write, event)

    async def flush(self) -> None:
        """Wait until every reported event has been written."""
        if self._writer is not None:
            await self._writer

    def _write(self, event: ProgressEvent) -> None:
        try:
            with self.pool.connection() as conn:
                update_progress(
                    conn,
                    event.job_id,
                    event.percent,
                    stage=event.stage,
                    detail=event.detail,
                )
        except sqlite3.Error as e:
            logger.debug("Could not record progress for job %s: %s", event.job_id, e)
        except RuntimeError as e:
            # Pool closed during shutdown
            logger.debug("Progress update skipped for job %s: %s", event.job_id, e)


_CLOSED = object()


class Subscription:
    """Async iterator over progress events for one subscriber.

    Backed by a bounded queue. When the subscriber falls behind, new events
    are dropped and counted in ``dropped``; the publisher never waits.

    Example:
        with broadcaster.subscribe(job_id) as events:
            async for event in events:
                print(event.percent)
    """

    def __init__(
        self,
        broadcaster: ProgressBroadcaster,
        job_id: str | None,
        maxsize: int,
    ) -> None:
        self.job_id = job_id
        self.dropped = 0
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self._loop = asyncio.get_running_loop()
        self._closed = False

    def matches(self, event: ProgressEvent) -> bool:
        return self.job_id is None or self.job_id == event.job_id

    def offer(self, event: ProgressEvent) -> None:
        """Hand an event to this subscriber without blocking.

        Safe to call from any thread.
        """
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._put(event)
        else:
            self._loop.call_soon_threadsafe(self._put, event)

    def _put(self, item: Any) -> None:
        if self._closed and item is not _CLOSED:
            return
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            self.dropped += 1

    def close(self) -> None:
        """Stop receiving events and end iteration."""
        if self._closed:
            return
        self._closed = True
        self._broadcaster._remove_subscription(self)
        # Make room for the end marker
        while self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ProgressEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ProgressBroadcaster:
    """Fans progress events out to subscribers and listeners.

    Events are not persisted; a subscriber only sees events published while
    it is subscribed.
    """

    def __init__(self, default_maxsize: int = DEFAULT_SUBSCRIBER_QUEUE_SIZE) -> None:
        self.default_maxsize = default_maxsize
        self._subscriptions: list[Subscription] = []
        self._listeners: list[tuple[Callable[[ProgressEvent], None], str | None]] = []
        self._lock = threading.Lock()

    def subscribe(
        self, job_id: str | None = None, maxsize: int | None = None
    ) -> Subscription:
        """Subscribe to events for one job, or all jobs when job_id is None.

        Must be called from within a running event loop.
        """
        subscription = Subscription(
            self, job_id, maxsize if maxsize is not None else self.default_maxsize
        )
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def _remove_subscription(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def add_listener(
        self,
        callback: Callable[[ProgressEvent], None],
        job_id: str | None = None,
    ) -> None:
        """Register a synchronous callback for events."""
        with self._lock:
            self._listeners.append((callback, job_id))

    def remove_listener(self, callback: Callable[[ProgressEvent], None]) -> None:
        """Unregister every registration of ``callback``."""
        with self._lock:
            self._listeners = [
                (cb, job_id) for cb, job_id in self._listeners if cb is not callback
            ]

    @contextmanager
    def listening(
        self,
        callback: Callable[[ProgressEvent], None],
        job_id: str | None = None,
    ) -> Iterator[None]:
        """Register ``callback`` for the duration of a block."""
        self.add_listener(callback, job_id)
        try:
            yield
        finally:
            self.remove_listener(callback)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions) + len(self._listeners)

    def publish(self, event: ProgressEvent) -> None:
        """Deliver an event to every matching subscriber and listener.

        Never blocks and never raises.
        """
        with self._lock:
            subscriptions = [s for s in self._subscriptions if s.matches(event)]
            listeners = [
                cb
                for cb, job_id in self._listeners
                if job_id is None or job_id == event.job_id
            ]

        for subscription in subscriptions:
            try:
                subscription.offer(event)
            except RuntimeError as e:
                # Subscriber's loop is closed
                logger.debug("Dropping event for closed subscriber: %s", e)
                self._remove_subscription(subscription)

        for callback in listeners:
            try:
                callback(event)
            except Exception:
                logger.exception("Progress listener failed for job %s", event.job_id)
