"""Activity summary derived from finished job records.

Nothing is tracked separately: the totals are recomputed from the
``jobs`` table each time, so they cover whatever the retention sweep
has not yet purged.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from typing import Any

from clipflow.core.datetime_utils import calculate_duration_seconds
from clipflow.db.types import Job, JobState, JobType

DEFAULT_HISTORY_LIMIT = 10


@dataclass
class ActivitySummary:
    """Totals over completed and failed jobs."""

    videos_processed: int = 0
    clips_created: int = 0
    uploads_succeeded: int = 0
    uploads_failed: int = 0
    average_processing_seconds: float | None = None
    recent: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total_uploads(self) -> int:
        return self.uploads_succeeded + self.uploads_failed

    @property
    def upload_success_rate(self) -> float | None:
        """Percentage of finished uploads that succeeded, None before any."""
        if not self.total_uploads:
            return None
        return round(self.uploads_succeeded * 100 / self.total_uploads, 2)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["total_uploads"] = self.total_uploads
        data["upload_success_rate"] = self.upload_success_rate
        return data


def _history_entry(job: Job) -> dict[str, Any]:
    result = job.result or {}
    entry: dict[str, Any] = {
        "job_id": job.id,
        "type": job.job_type.value,
        "state": job.state.value,
        "finished_at": job.finished_at,
    }
    if job.job_type == JobType.PROCESS_VIDEO:
        entry["title"] = (result.get("video") or {}).get("title")
        entry["clips"] = len(result.get("clips") or [])
    else:
        entry["title"] = (job.payload.get("metadata") or {}).get("title")
    if job.state == JobState.FAILED:
        entry["failure_reason"] = job.failure_reason
    return entry


def summarize_jobs(
    jobs: Iterable[Job], history_limit: int = DEFAULT_HISTORY_LIMIT
) -> ActivitySummary:
    """Build an ActivitySummary from job records.

    Args:
        jobs: Job records, newest first. Non-terminal jobs are ignored.
        history_limit: Number of finished jobs to list in ``recent``.
    """
    summary = ActivitySummary()
    durations: list[int] = []

    for job in jobs:
        if job.state not in (JobState.COMPLETED, JobState.FAILED):
            continue
        if len(summary.recent) < history_limit:
            summary.recent.append(_history_entry(job))

        if job.job_type == JobType.UPLOAD_VIDEO:
            if job.state == JobState.COMPLETED:
                summary.uploads_succeeded += 1
            else:
                summary.uploads_failed += 1
            continue

        if job.state != JobState.COMPLETED:
            continue
        summary.videos_processed += 1
        summary.clips_created += len((job.result or {}).get("clips") or [])
        if job.started_at and job.finished_at:
            seconds = calculate_duration_seconds(job.started_at, job.finished_at)
            if seconds is not None:
                durations.append(seconds)

    if durations:
        summary.average_processing_seconds = round(sum(durations) / len(durations), 2)
    return summary
