"""Long-running clipflow service.

Wires the job worker, the upload scheduler and the periodic maintenance
tasks together on one event loop, and stops them gracefully on SIGTERM
(from systemd) or SIGINT (from Ctrl+C).
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal

from clipflow.adapters import StageAdapters, load_adapters
from clipflow.config.models import ClipflowConfig
from clipflow.db.connection import ConnectionPool
from clipflow.db.schema import initialize_database
from clipflow.exceptions import AdapterLoadError
from clipflow.jobs.maintenance import MaintenanceTask
from clipflow.jobs.orchestrator import JobOrchestrator
from clipflow.jobs.pipeline import JobPipeline
from clipflow.jobs.progress import ProgressBroadcaster
from clipflow.jobs.worker import JobWorker
from clipflow.scheduler import (
    AsyncioTimerService,
    Clock,
    DueScheduleScanTask,
    SqliteScheduleStore,
    SystemClock,
    UploadScheduler,
)

logger = logging.getLogger(__name__)

_SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def setup_signal_handlers(
    loop: asyncio.AbstractEventLoop, shutdown_event: asyncio.Event
) -> None:
    """Set ``shutdown_event`` on SIGTERM or SIGINT."""

    def handle_shutdown_signal(sig: signal.Signals) -> None:
        logger.info("Received %s, initiating graceful shutdown", sig.name)
        shutdown_event.set()

    for sig in _SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, handle_shutdown_signal, sig)
        except (ValueError, RuntimeError, NotImplementedError) as e:
            # ValueError: not in main thread
            logger.warning("Failed to register handler for %s: %s", sig.name, e)


def remove_signal_handlers(loop: asyncio.AbstractEventLoop) -> None:
    for sig in _SHUTDOWN_SIGNALS:
        try:
            loop.remove_signal_handler(sig)
        except (ValueError, RuntimeError, NotImplementedError):
            pass  # Handler may not have been registered


class Daemon:
    """The job worker and scheduler of one clipflow process.

    Args:
        config: Complete configuration.
        pool: Connection pool on an initialized database.
        adapters: Stage adapters for the job pipeline.
        clock: Time source for the scheduler.
        worker_id: Identifier recorded on claimed jobs.
    """

    def __init__(
        self,
        config: ClipflowConfig,
        pool: ConnectionPool,
        adapters: StageAdapters,
        *,
        clock: Clock | None = None,
        worker_id: str | None = None,
    ) -> None:
        self.config = config
        self.pool = pool
        self.clock = clock or SystemClock()
        self.broadcaster = ProgressBroadcaster()
        self.orchestrator = JobOrchestrator(pool, config.jobs, config.processing)
        self.worker = JobWorker(
            pool,
            JobPipeline(adapters, pool),
            self.broadcaster,
            config.jobs,
            worker_id=worker_id,
        )
        self.maintenance = MaintenanceTask(pool, config.jobs)
        self.store = SqliteScheduleStore(pool)
        self.scheduler: UploadScheduler | None = None
        self.shutdown_event = asyncio.Event()

    def stop(self) -> None:
        self.shutdown_event.set()

    async def run(self) -> None:
        """Run until ``stop`` is called or the worker gives up."""
        timers = AsyncioTimerService(self.clock)
        self.scheduler = UploadScheduler(
            self.store,
            self.orchestrator,
            self.clock,
            timers,
            default_timezone=self.config.scheduler.default_timezone,
            missed_policy=self.config.scheduler.missed_policy,
        )
        rescan = DueScheduleScanTask(
            self.scheduler,
            interval_seconds=self.config.scheduler.rescan_interval_seconds,
            cleanup_days=self.config.scheduler.cleanup_days,
        )

        await asyncio.to_thread(self.scheduler.start)

        worker_task = asyncio.create_task(self.worker.run(), name="job-worker")
        background = [
            asyncio.create_task(rescan.run(), name="schedule-rescan"),
            asyncio.create_task(self.maintenance.run(), name="job-maintenance"),
        ]
        stop_task = asyncio.create_task(self.shutdown_event.wait(), name="shutdown")

        logger.info("clipflow daemon running (PID %d)", os.getpid())
        try:
            await asyncio.wait(
                {worker_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            logger.info("Shutting down")
            self.scheduler.shutdown()
            rescan.stop()
            self.maintenance.stop()
            self.worker.stop()
            stop_task.cancel()
            await asyncio.gather(
                worker_task, *background, stop_task, return_exceptions=True
            )
            await timers.wait_running()
        logger.info("clipflow daemon stopped")


async def run_daemon(config: ClipflowConfig) -> int:
    """Open the database, load adapters and run the daemon until signalled.

    Returns:
        Exit code (0 for clean shutdown, non-zero for errors).
    """
    if not config.adapters:
        logger.error(
            "No stage adapters configured; set CLIPFLOW_ADAPTERS or pass --adapters"
        )
        return 1
    try:
        adapters = load_adapters(config.adapters)
    except AdapterLoadError as e:
        logger.error("%s", e)
        return 1

    pool = ConnectionPool(config.database_path)
    try:
        with pool.connection() as conn:
            initialize_database(conn)

        daemon = Daemon(config, pool, adapters)
        loop = asyncio.get_running_loop()
        setup_signal_handlers(loop, daemon.shutdown_event)
        try:
            await daemon.run()
        finally:
            remove_signal_handlers(loop)
    finally:
        pool.close()
    return 0
