"""Job CRUD operations for the clipflow database.

Queue transitions (claim, release, retry, heartbeat) live in
``clipflow.jobs.queue``; this module holds the plain record operations.
"""

import sqlite3
from collections.abc import Iterable

from clipflow.db.types import Job, JobState, JobType

from .helpers import _dump_json, _row_to_job

JOB_COLUMNS = """
    id, job_type, state, payload_json, progress, progress_stage,
    progress_json, attempts, max_attempts, result_json, failure_reason,
    available_at, created_at, started_at, finished_at, updated_at,
    worker_id, worker_heartbeat
"""


def insert_job(conn: sqlite3.Connection, job: Job) -> str:
    """Insert a new job record.

    Returns:
        The ID of the inserted job.

    Note:
        This function does NOT commit. Caller must manage transactions.
    """
    conn.execute(
        f"""
        INSERT INTO jobs ({JOB_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,  # nosec B608 - column list is a module constant
        (
            job.id,
            job.job_type.value,
            job.state.value,
            _dump_json(job.payload),
            job.progress,
            job.progress_stage,
            _dump_json(job.progress_detail),
            job.attempts,
            job.max_attempts,
            _dump_json(job.result),
            job.failure_reason,
            job.available_at,
            job.created_at,
            job.started_at,
            job.finished_at,
            job.updated_at,
            job.worker_id,
            job.worker_heartbeat,
        ),
    )
    return job.id


def get_job(conn: sqlite3.Connection, job_id: str) -> Job | None:
    """Get a job by ID.

    Returns:
        Job if found, None otherwise.
    """
    cursor = conn.execute(
        f"SELECT {JOB_COLUMNS} FROM jobs WHERE id = ?",  # nosec B608
        (job_id,),
    )
    row = cursor.fetchone()
    if row is None:
        return None
    return _row_to_job(row)


def get_jobs(
    conn: sqlite3.Connection,
    states: Iterable[JobState] | None = None,
    job_type: JobType | None = None,
    limit: int | None = None,
) -> list[Job]:
    """List jobs, newest first.

    Args:
        conn: Database connection.
        states: Only return jobs in one of these states.
        job_type: Only return jobs of this type.
        limit: Maximum number of jobs to return.
    """
    conditions: list[str] = []
    params: list[object] = []

    if states is not None:
        state_values = [s.value for s in states]
        if not state_values:
            return []
        placeholders = ", ".join("?" for _ in state_values)
        conditions.append(f"state IN ({placeholders})")
        params.extend(state_values)

    if job_type is not None:
        conditions.append("job_type = ?")
        params.append(job_type.value)

    query = f"SELECT {JOB_COLUMNS} FROM jobs"  # nosec B608
    if conditions:
        query += " WHERE " + " AND ".join(conditions)
    query += " ORDER BY created_at DESC, rowid DESC"
    if limit is not None:
        query += " LIMIT ?"
        params.append(limit)

    cursor = conn.execute(query, params)
    return [_row_to_job(row) for row in cursor.fetchall()]


def delete_job(conn: sqlite3.Connection, job_id: str) -> bool:
    """Delete a job record.

    Returns:
        True if a record was deleted.

    Note:
        This function does NOT commit. Caller must manage transactions.
    """
    cursor = conn.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
    return cursor.rowcount > 0


def reset_failed_job(conn: sqlite3.Connection, job_id: str, now: str) -> bool:
    """Return a failed job to the waiting state with a fresh retry budget.

    Returns:
        True if the job was failed and has been reset.

    Note:
        This function does NOT commit. Caller must manage transactions.
    """
    cursor = conn.execute(
        """
        UPDATE jobs
        SET state = 'waiting',
            attempts = 0,
            progress = 0,
            progress_stage = NULL,
            progress_json = NULL,
            result_json = NULL,
            failure_reason = NULL,
            available_at = ?,
            started_at = NULL,
            finished_at = NULL,
            updated_at = ?,
            worker_id = NULL,
            worker_heartbeat = NULL
        WHERE id = ? AND state = 'failed'
        """,
        (now, now, job_id),
    )
    return cursor.rowcount > 0


def count_jobs_by_state(conn: sqlite3.Connection) -> dict[str, int]:
    """Count jobs per state, including zero counts and a total."""
    cursor = conn.execute("SELECT state, COUNT(*) FROM jobs GROUP BY state")

    stats = {state.value: 0 for state in JobState}
    stats["total"] = 0
    for state, count in cursor.fetchall():
        stats[state] = count
        stats["total"] += count
    return stats


def delete_old_jobs(conn: sqlite3.Connection, cutoff: str) -> int:
    """Delete terminal jobs that finished before ``cutoff``.

    Args:
        conn: Database connection.
        cutoff: ISO-8601 UTC timestamp.

    Returns:
        Number of jobs deleted.

    Note:
        This function does NOT commit. Caller must manage transactions.
    """
    cursor = conn.execute(
        """
        DELETE FROM jobs
        WHERE state IN ('completed', 'failed')
            AND COALESCE(finished_at, updated_at) < ?
        """,
        (cutoff,),
    )
    return cursor.rowcount
