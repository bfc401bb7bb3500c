"""Job worker for processing queued jobs.

This module provides the asyncio worker that consumes the queue:
- One claim loop per job type, bounded by the type's concurrency cap
- Heartbeat updates to prevent stale job recovery
- Retry with backoff or terminal failure when a stage raises
- Graceful shutdown that hands unfinished jobs back to the queue
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import uuid
from typing import TYPE_CHECKING

from clipflow.db.types import Job, JobState, JobType
from clipflow.exceptions import JobCancelledError, TerminalFailure
from clipflow.jobs.progress import (
    STAGE_COMPLETED,
    STAGE_ERROR,
    DatabaseProgressSink,
    ProgressBroadcaster,
    ProgressEvent,
    StageProgress,
)
from clipflow.jobs.queue import (
    claim_next_job,
    complete_job,
    fail_or_retry_job,
    recover_stale_jobs,
    release_claim,
    update_heartbeat,
)
from clipflow.logging.context import job_context

if TYPE_CHECKING:
    from clipflow.config.models import JobsConfig
    from clipflow.db.connection import ConnectionPool
    from clipflow.jobs.pipeline import JobPipeline

logger = logging.getLogger(__name__)

# Stop the worker after this many consecutive heartbeat failures
MAX_HEARTBEAT_FAILURES = 3
DEFAULT_SHUTDOWN_TIMEOUT = 30.0


def default_worker_id() -> str:
    """Identifier unique to this process: host, PID and a short suffix."""
    return f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:6]}"


class JobWorker:
    """Asyncio consumer of the durable job queue."""

    def __init__(
        self,
        pool: ConnectionPool,
        pipeline: JobPipeline,
        broadcaster: ProgressBroadcaster,
        config: JobsConfig,
        worker_id: str | None = None,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    ) -> None:
        """Initialize the job worker.

        Args:
            pool: Database connection pool.
            pipeline: Stage runner for claimed jobs.
            broadcaster: Receives progress events of every run.
            config: Retry, concurrency and timing settings.
            worker_id: Identifier recorded on claimed jobs.
            shutdown_timeout: Seconds to let running jobs finish on stop.
        """
        self.pool = pool
        self.pipeline = pipeline
        self.broadcaster = broadcaster
        self.config = config
        self.worker_id = worker_id or default_worker_id()
        self.shutdown_timeout = shutdown_timeout

        self.caps = {
            JobType.PROCESS_VIDEO: config.process_concurrency,
            JobType.UPLOAD_VIDEO: config.upload_concurrency,
        }

        self._tasks: dict[str, asyncio.Task[JobState | None]] = {}
        self._task_types: dict[str, JobType] = {}
        self._stop_event = asyncio.Event()
        self._consecutive_heartbeat_failures = 0
        self.jobs_processed = 0

    @property
    def running_job_ids(self) -> list[str]:
        return list(self._tasks)

    def running_count(self, job_type: JobType) -> int:
        return sum(1 for t in self._task_types.values() if t == job_type)

    def stop(self) -> None:
        """Request shutdown; ``run`` returns once running jobs are handled."""
        self._stop_event.set()

    # ------------------------------------------------------------------
    # Database helpers (run in threads)
    # ------------------------------------------------------------------

    def _claim(self, job_type: JobType) -> Job | None:
        with self.pool.connection() as conn:
            return claim_next_job(conn, job_type, self.caps[job_type], self.worker_id)

    def _complete(self, job_id: str, result: dict) -> bool:
        with self.pool.connection() as conn:
            return complete_job(conn, job_id, result)

    def _fail_or_retry(self, job_id: str, reason: str) -> JobState | None:
        with self.pool.connection() as conn:
            return fail_or_retry_job(
                conn, job_id, reason, self.config.backoff_base_seconds
            )

    def _release(self, job_id: str) -> bool:
        with self.pool.connection() as conn:
            return release_claim(conn, job_id, self.worker_id)

    def _heartbeat(self, job_ids: list[str]) -> int:
        with self.pool.connection() as conn:
            return update_heartbeat(conn, job_ids, self.worker_id)

    def _recover_stale(self) -> int:
        with self.pool.connection() as conn:
            return recover_stale_jobs(conn, self.config.stale_timeout_seconds)

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    async def process_job(self, job: Job) -> JobState | None:
        """Run one claimed job and record its outcome.

        Returns:
            COMPLETED, DELAYED (will retry) or FAILED; None if the job was
            removed while running.
        """
        db_sink = DatabaseProgressSink(self.pool)
        progress = StageProgress(job.id, [self.broadcaster.publish, db_sink])

        with job_context(job_id=job.id, worker_id=self.worker_id):
            logger.info(
                "Starting %s job (attempt %d/%d)",
                job.job_type.value,
                job.attempts,
                job.max_attempts,
            )
            try:
                result = await self.pipeline.run(job, progress)
            except JobCancelledError:
                await db_sink.flush()
                logger.info("Job was cancelled, stopping")
                return None
            except asyncio.CancelledError:
                released = await asyncio.to_thread(self._release, job.id)
                logger.info(
                    "Job interrupted by shutdown%s",
                    ", returned to queue" if released else "",
                )
                raise
            except Exception as e:
                await db_sink.flush()
                return await self._handle_failure(job, progress, e)

            await db_sink.flush()
            completed = await asyncio.to_thread(self._complete, job.id, result)
            if not completed:
                logger.info("Job was removed before it could complete")
                return None

            progress.report(100, STAGE_COMPLETED)
            await db_sink.flush()
            logger.info("Job completed")
            return JobState.COMPLETED

    async def _handle_failure(
        self, job: Job, progress: StageProgress, error: Exception
    ) -> JobState | None:
        reason = str(error) or type(error).__name__
        logger.warning("Job attempt %d failed: %s", job.attempts, reason)

        state = await asyncio.to_thread(self._fail_or_retry, job.id, reason)
        if state is None:
            logger.info("Job was removed while failing")
            return None

        self.broadcaster.publish(
            ProgressEvent(
                job.id,
                STAGE_ERROR,
                progress.percent,
                {
                    "error": reason,
                    "attempt": job.attempts,
                    "will_retry": state == JobState.DELAYED,
                },
            )
        )
        if state == JobState.FAILED:
            logger.error("%s", TerminalFailure(job.id, job.attempts, reason))
        return state

    async def _run_tracked(self, job: Job) -> JobState | None:
        try:
            return await self.process_job(job)
        finally:
            self._tasks.pop(job.id, None)
            self._task_types.pop(job.id, None)
            self.jobs_processed += 1

    def _start(self, job: Job) -> None:
        task = asyncio.create_task(
            self._run_tracked(job), name=f"job-{job.id[:8]}"
        )
        self._tasks[job.id] = task
        self._task_types[job.id] = job.job_type

    async def claim_available(self) -> int:
        """Claim jobs into free slots until none are available.

        Returns:
            Number of jobs claimed.
        """
        claimed = 0
        for job_type, cap in self.caps.items():
            while self.running_count(job_type) < cap:
                job = await asyncio.to_thread(self._claim, job_type)
                if job is None:
                    break
                self._start(job)
                claimed += 1
        return claimed

    async def run_until_idle(self) -> int:
        """Process jobs until nothing is running and nothing is claimable.

        Delayed jobs whose backoff has not elapsed are left in the queue.

        Returns:
            Number of job runs finished.
        """
        start = self.jobs_processed
        while True:
            # Jobs can finish and requeue themselves during the claim awaits,
            # so only a claim pass that started idle and found nothing ends it
            idle = not self._tasks
            claimed = await self.claim_available()
            if self._tasks:
                await asyncio.wait(
                    set(self._tasks.values()), return_when=asyncio.FIRST_COMPLETED
                )
            elif idle and claimed == 0:
                break
        return self.jobs_processed - start

    # ------------------------------------------------------------------
    # Long-running mode
    # ------------------------------------------------------------------

    async def _heartbeat_loop(self) -> None:
        interval = self.config.heartbeat_interval_seconds
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                return
            except asyncio.TimeoutError:
                pass

            job_ids = self.running_job_ids
            if not job_ids:
                continue
            try:
                await asyncio.to_thread(self._heartbeat, job_ids)
                self._consecutive_heartbeat_failures = 0
            except Exception as e:
                self._consecutive_heartbeat_failures += 1
                logger.error(
                    "Heartbeat failed (%d/%d): %s",
                    self._consecutive_heartbeat_failures,
                    MAX_HEARTBEAT_FAILURES,
                    e,
                )
                if self._consecutive_heartbeat_failures >= MAX_HEARTBEAT_FAILURES:
                    logger.critical("Max heartbeat failures reached, stopping worker")
                    self.stop()

    async def run(self) -> int:
        """Consume the queue until ``stop`` is called.

        Returns:
            Number of job runs finished.
        """
        self._stop_event.clear()
        start = self.jobs_processed
        logger.info(
            "Starting job worker %s: process_concurrency=%d, upload_concurrency=%d",
            self.worker_id,
            self.caps[JobType.PROCESS_VIDEO],
            self.caps[JobType.UPLOAD_VIDEO],
        )

        await asyncio.to_thread(self._recover_stale)
        heartbeat = asyncio.create_task(self._heartbeat_loop(), name="heartbeat")
        try:
            while not self._stop_event.is_set():
                try:
                    await self.claim_available()
                except Exception:
                    logger.exception("Error claiming jobs")
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(),
                        timeout=self.config.poll_interval_seconds,
                    )
                except asyncio.TimeoutError:
                    pass
        finally:
            self._stop_event.set()
            await self._drain()
            heartbeat.cancel()
            try:
                await heartbeat
            except asyncio.CancelledError:
                pass

        processed = self.jobs_processed - start
        logger.info("Worker %s stopped after %d job run(s)", self.worker_id, processed)
        return processed

    async def _drain(self) -> None:
        """Let running jobs finish, cancelling any still running at the timeout."""
        if not self._tasks:
            return
        logger.info(
            "Waiting up to %.0fs for %d running job(s)",
            self.shutdown_timeout,
            len(self._tasks),
        )
        tasks = set(self._tasks.values())
        _, pending = await asyncio.wait(tasks, timeout=self.shutdown_timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
