"""Row conversion helpers shared by the query modules."""

import json
import sqlite3
from typing import Any

from clipflow.db.types import Job, JobState, JobType, Schedule, ScheduleStatus


def _dump_json(value: dict[str, Any] | None) -> str | None:
    """Serialize a JSON column value, keeping NULL as NULL."""
    if value is None:
        return None
    return json.dumps(value, sort_keys=True, default=str)


def _load_json(value: str | None) -> dict[str, Any] | None:
    if value is None:
        return None
    return json.loads(value)


def _row_to_job(row: sqlite3.Row) -> Job:
    """Convert a database row to a Job object.

    Args:
        row: sqlite3.Row from a SELECT query on the jobs table.

    Returns:
        Job instance populated from the row.
    """
    return Job(
        id=row["id"],
        job_type=JobType(row["job_type"]),
        state=JobState(row["state"]),
        payload=json.loads(row["payload_json"]),
        progress=row["progress"],
        progress_stage=row["progress_stage"],
        progress_detail=_load_json(row["progress_json"]),
        attempts=row["attempts"],
        max_attempts=row["max_attempts"],
        result=_load_json(row["result_json"]),
        failure_reason=row["failure_reason"],
        available_at=row["available_at"],
        created_at=row["created_at"],
        started_at=row["started_at"],
        finished_at=row["finished_at"],
        updated_at=row["updated_at"],
        worker_id=row["worker_id"],
        worker_heartbeat=row["worker_heartbeat"],
    )


def _row_to_schedule(row: sqlite3.Row) -> Schedule:
    """Convert a database row to a Schedule object."""
    return Schedule(
        id=row["id"],
        upload_payload=json.loads(row["upload_payload_json"]),
        scheduled_time=row["scheduled_time"],
        timezone=row["timezone"],
        status=ScheduleStatus(row["status"]),
        job_id=row["job_id"],
        error=row["error"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        completed_at=row["completed_at"],
        failed_at=row["failed_at"],
        cancelled_at=row["cancelled_at"],
    )
