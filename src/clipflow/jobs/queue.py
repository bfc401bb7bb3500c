"""Job queue operations for clipflow.

This module provides queue transitions on top of the SQLite jobs table:
- Atomic claiming with BEGIN IMMEDIATE, bounded by a per-type slot cap
- Monotonic progress updates
- Retry with exponential backoff or terminal failure
- Stale job recovery for orphaned workers
"""

import json
import logging
import sqlite3
from datetime import datetime, timedelta
from typing import Any

from clipflow.core.datetime_utils import to_utc_iso, utc_now
from clipflow.db.connection import immediate_transaction
from clipflow.db.queries import get_job
from clipflow.db.types import Job, JobState, JobType

logger = logging.getLogger(__name__)

# Jobs without heartbeat for this long are considered stale and recovered
DEFAULT_HEARTBEAT_TIMEOUT = 300  # 5 minutes

STALE_FAILURE_REASON = "Worker stopped responding"


def compute_backoff_delay(attempts: int, base_seconds: float) -> float:
    """Return the delay before the next attempt.

    ``base * 2 ** (attempts - 1)``: with a 5s base the waits are 5s, 10s,
    20s, ...
    """
    return base_seconds * (2 ** max(attempts - 1, 0))


def claim_next_job(
    conn: sqlite3.Connection,
    job_type: JobType,
    concurrency: int,
    worker_id: str,
    now: datetime | None = None,
) -> Job | None:
    """Atomically claim the next available job of one type.

    The active count and the claim happen in the same BEGIN IMMEDIATE
    transaction, so the cap holds across every worker sharing the database.

    Args:
        conn: Database connection.
        job_type: Type of job to claim.
        concurrency: Maximum number of active jobs of this type.
        worker_id: Identifier recorded on the claimed job.
        now: Current time (defaults to the wall clock).

    Returns:
        The claimed Job, or None if no slot or no job is available.
    """
    now_iso = to_utc_iso(now or utc_now())

    try:
        with immediate_transaction(conn):
            active = conn.execute(
                "SELECT COUNT(*) FROM jobs WHERE job_type = ? AND state = 'active'",
                (job_type.value,),
            ).fetchone()[0]
            if active >= concurrency:
                return None

            row = conn.execute(
                """
                SELECT id FROM jobs
                WHERE job_type = ?
                    AND state IN ('waiting', 'delayed')
                    AND available_at <= ?
                ORDER BY available_at ASC, created_at ASC
                LIMIT 1
                """,
                (job_type.value, now_iso),
            ).fetchone()
            if row is None:
                return None

            job_id = row[0]
            conn.execute(
                """
                UPDATE jobs
                SET state = 'active',
                    attempts = attempts + 1,
                    progress = 0,
                    progress_stage = NULL,
                    progress_json = NULL,
                    started_at = ?,
                    updated_at = ?,
                    worker_id = ?,
                    worker_heartbeat = ?
                WHERE id = ? AND state IN ('waiting', 'delayed')
                """,
                (now_iso, now_iso, worker_id, now_iso, job_id),
            )
    except sqlite3.OperationalError as e:
        error_msg = str(e).casefold()
        if "locked" in error_msg or "busy" in error_msg:
            logger.warning("Lock contention while claiming %s job: %s", job_type.value, e)
            return None  # Caller retries on the next poll
        logger.error("Database operational error while claiming job: %s", e)
        raise

    return get_job(conn, job_id)


def update_progress(
    conn: sqlite3.Connection,
    job_id: str,
    percent: int,
    stage: str | None = None,
    detail: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> bool:
    """Record progress for an active job.

    The update only applies when it does not lower the stored value, so
    readers never observe progress going backwards within a run.

    Returns:
        True if the record was updated.
    """
    percent = max(0, min(100, int(percent)))
    now_iso = to_utc_iso(now or utc_now())

    cursor = conn.execute(
        """
        UPDATE jobs
        SET progress = ?,
            progress_stage = COALESCE(?, progress_stage),
            progress_json = ?,
            updated_at = ?
        WHERE id = ? AND state = 'active' AND progress <= ?
        """,
        (
            percent,
            stage,
            json.dumps(detail, default=str) if detail is not None else None,
            now_iso,
            job_id,
            percent,
        ),
    )
    conn.commit()
    return cursor.rowcount > 0


def complete_job(
    conn: sqlite3.Connection,
    job_id: str,
    result: dict[str, Any],
    now: datetime | None = None,
) -> bool:
    """Mark an active job completed with its result.

    Returns:
        True if the job was completed, False if it no longer exists
        or is not active.
    """
    now_iso = to_utc_iso(now or utc_now())

    cursor = conn.execute(
        """
        UPDATE jobs
        SET state = 'completed',
            progress = 100,
            progress_stage = 'completed',
            result_json = ?,
            failure_reason = NULL,
            finished_at = ?,
            updated_at = ?,
            worker_id = NULL,
            worker_heartbeat = NULL
        WHERE id = ? AND state = 'active'
        """,
        (json.dumps(result, default=str), now_iso, now_iso, job_id),
    )
    conn.commit()
    return cursor.rowcount > 0


def fail_or_retry_job(
    conn: sqlite3.Connection,
    job_id: str,
    reason: str,
    backoff_base_seconds: float,
    now: datetime | None = None,
) -> JobState | None:
    """Handle a failed attempt.

    With attempts left the job goes to DELAYED, available after the
    backoff delay; otherwise it becomes FAILED with ``reason`` recorded.

    Returns:
        The job's new state, or None if the job no longer exists
        (cancelled while running).
    """
    now = now or utc_now()
    now_iso = to_utc_iso(now)

    with immediate_transaction(conn):
        job = get_job(conn, job_id)
        if job is None or job.state != JobState.ACTIVE:
            return None

        if job.attempts < job.max_attempts:
            delay = compute_backoff_delay(job.attempts, backoff_base_seconds)
            available_at = to_utc_iso(now + timedelta(seconds=delay))
            conn.execute(
                """
                UPDATE jobs
                SET state = 'delayed',
                    progress = 0,
                    progress_stage = NULL,
                    progress_json = NULL,
                    available_at = ?,
                    updated_at = ?,
                    worker_id = NULL,
                    worker_heartbeat = NULL
                WHERE id = ?
                """,
                (available_at, now_iso, job_id),
            )
            logger.info(
                "Job %s attempt %d/%d failed, retrying in %.1fs: %s",
                job_id,
                job.attempts,
                job.max_attempts,
                delay,
                reason,
            )
            return JobState.DELAYED

        conn.execute(
            """
            UPDATE jobs
            SET state = 'failed',
                failure_reason = ?,
                finished_at = ?,
                updated_at = ?,
                worker_id = NULL,
                worker_heartbeat = NULL
            WHERE id = ?
            """,
            (reason, now_iso, now_iso, job_id),
        )
    return JobState.FAILED


def update_heartbeat(
    conn: sqlite3.Connection,
    job_ids: list[str],
    worker_id: str,
    now: datetime | None = None,
) -> int:
    """Refresh the heartbeat of jobs owned by a worker.

    Returns:
        Number of jobs updated.
    """
    if not job_ids:
        return 0
    now_iso = to_utc_iso(now or utc_now())
    placeholders = ", ".join("?" for _ in job_ids)

    cursor = conn.execute(
        f"""
        UPDATE jobs
        SET worker_heartbeat = ?
        WHERE worker_id = ? AND state = 'active' AND id IN ({placeholders})
        """,  # nosec B608 - placeholders only
        (now_iso, worker_id, *job_ids),
    )
    conn.commit()
    return cursor.rowcount


def recover_stale_jobs(
    conn: sqlite3.Connection,
    timeout_seconds: int = DEFAULT_HEARTBEAT_TIMEOUT,
    now: datetime | None = None,
) -> int:
    """Recover active jobs whose worker stopped sending heartbeats.

    Jobs with attempts left go back to WAITING with progress reset; jobs
    that already used their whole budget become FAILED.

    Returns:
        Number of jobs recovered.
    """
    now = now or utc_now()
    now_iso = to_utc_iso(now)
    cutoff = to_utc_iso(now - timedelta(seconds=timeout_seconds))

    with immediate_transaction(conn):
        requeued = conn.execute(
            """
            UPDATE jobs
            SET state = 'waiting',
                progress = 0,
                progress_stage = NULL,
                progress_json = NULL,
                available_at = ?,
                updated_at = ?,
                started_at = NULL,
                worker_id = NULL,
                worker_heartbeat = NULL
            WHERE state = 'active'
                AND worker_heartbeat < ?
                AND attempts < max_attempts
            """,
            (now_iso, now_iso, cutoff),
        ).rowcount
        failed = conn.execute(
            """
            UPDATE jobs
            SET state = 'failed',
                failure_reason = ?,
                finished_at = ?,
                updated_at = ?,
                worker_id = NULL,
                worker_heartbeat = NULL
            WHERE state = 'active'
                AND worker_heartbeat < ?
            """,
            (STALE_FAILURE_REASON, now_iso, now_iso, cutoff),
        ).rowcount

    count = requeued + failed
    if count > 0:
        logger.info(
            "Recovered %d stale job(s): %d requeued, %d failed",
            count,
            requeued,
            failed,
        )
    return count


def release_claim(
    conn: sqlite3.Connection,
    job_id: str,
    worker_id: str,
    now: datetime | None = None,
) -> bool:
    """Give back a job this worker claimed but did not finish.

    Used on shutdown: the interrupted attempt is not counted and the job
    returns to WAITING.

    Returns:
        True if the job was released.
    """
    now_iso = to_utc_iso(now or utc_now())

    cursor = conn.execute(
        """
        UPDATE jobs
        SET state = 'waiting',
            attempts = MAX(attempts - 1, 0),
            progress = 0,
            progress_stage = NULL,
            progress_json = NULL,
            available_at = ?,
            started_at = NULL,
            updated_at = ?,
            worker_id = NULL,
            worker_heartbeat = NULL
        WHERE id = ? AND state = 'active' AND worker_id = ?
        """,
        (now_iso, now_iso, job_id, worker_id),
    )
    conn.commit()
    return cursor.rowcount > 0
