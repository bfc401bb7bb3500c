"""Data type definitions for the clipflow database.

Enums and dataclasses for the two durable tables, ``jobs`` and
``schedules``. JSON columns are decoded into plain dicts by the row
helpers in ``clipflow.db.queries.helpers``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class JobType(Enum):
    """Type of job in the queue."""

    PROCESS_VIDEO = "process-video"
    UPLOAD_VIDEO = "upload-video"


class JobState(Enum):
    """State of a job in the queue."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    DELAYED = "delayed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class ScheduleStatus(Enum):
    """Lifecycle status of a scheduled upload.

    State transitions:
        scheduled → executing  (timer fired, compare-and-set)
        executing → completed  (upload job submitted)
        executing → failed     (submission raised)
        scheduled → cancelled  (cancel)
        failed    → cancelled  (cancel)
        failed    → scheduled  (reschedule)
    """

    SCHEDULED = "scheduled"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class Job:
    """Database record for jobs table."""

    id: str  # UUID v4
    job_type: JobType
    state: JobState
    payload: dict[str, Any]

    # Progress tracking
    progress: int = 0  # 0 - 100
    progress_stage: str | None = None
    progress_detail: dict[str, Any] | None = None

    # Retry budget
    attempts: int = 0
    max_attempts: int = 3

    # Outcome, set once on reaching a terminal state
    result: dict[str, Any] | None = None
    failure_reason: str | None = None

    # Timing (all ISO-8601 UTC)
    available_at: str = ""
    created_at: str = ""
    started_at: str | None = None
    finished_at: str | None = None
    updated_at: str = ""

    # Worker tracking
    worker_id: str | None = None
    worker_heartbeat: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "id": self.id,
            "job_type": self.job_type.value,
            "state": self.state.value,
            "payload": self.payload,
            "progress": self.progress,
            "progress_stage": self.progress_stage,
            "progress_detail": self.progress_detail,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "result": self.result,
            "failure_reason": self.failure_reason,
            "available_at": self.available_at,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "updated_at": self.updated_at,
            "worker_id": self.worker_id,
        }


@dataclass
class Schedule:
    """Database record for schedules table."""

    id: str  # UUID v4
    upload_payload: dict[str, Any]
    scheduled_time: str  # ISO-8601 UTC
    timezone: str  # IANA zone the caller used
    status: ScheduleStatus = ScheduleStatus.SCHEDULED
    job_id: str | None = None
    error: str | None = None
    created_at: str = ""
    updated_at: str = ""
    completed_at: str | None = None
    failed_at: str | None = None
    cancelled_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "id": self.id,
            "upload_payload": self.upload_payload,
            "scheduled_time": self.scheduled_time,
            "timezone": self.timezone,
            "status": self.status.value,
            "job_id": self.job_id,
            "error": self.error,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
            "failed_at": self.failed_at,
            "cancelled_at": self.cancelled_at,
        }
