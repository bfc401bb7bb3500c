"""Job orchestrator: the synchronous API over the durable job queue.

Callers submit work, query status and manage jobs here; workers
(``clipflow.jobs.worker``) pick the jobs up from the same database.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Protocol

from pydantic import BaseModel

from clipflow.config.models import JobsConfig, ProcessingConfig
from clipflow.core.datetime_utils import to_aware, to_utc_iso, utc_now
from clipflow.db.connection import ConnectionPool
from clipflow.db.queries import (
    count_jobs_by_state,
    delete_job,
    get_job,
    get_jobs,
    insert_job,
    reset_failed_job,
)
from clipflow.db.types import Job, JobState, JobType
from clipflow.exceptions import JobNotFoundError, JobStateError, ValidationError
from clipflow.jobs.analytics import (
    DEFAULT_HISTORY_LIMIT,
    ActivitySummary,
    summarize_jobs,
)
from clipflow.jobs.maintenance import purge_old_jobs
from clipflow.jobs.payloads import ProcessRequest, UploadRequest, parse_payload

logger = logging.getLogger(__name__)


class JobSubmitter(Protocol):
    """The capability the scheduler needs to hand over due uploads."""

    def submit_upload(
        self,
        payload: Mapping[str, Any],
        scheduled_time: datetime | None = None,
    ) -> str: ...


def _coerce_states(
    states: Iterable[JobState | str] | JobState | str,
) -> list[JobState]:
    if isinstance(states, (JobState, str)):
        states = [states]
    try:
        return [s if isinstance(s, JobState) else JobState(s) for s in states]
    except ValueError as e:
        raise ValidationError(str(e)) from e


class JobOrchestrator:
    """Submits and manages jobs in the durable queue.

    All operations are short database transactions and safe to call from
    any thread.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        jobs_config: JobsConfig | None = None,
        processing_config: ProcessingConfig | None = None,
    ) -> None:
        self.pool = pool
        self.jobs_config = jobs_config or JobsConfig()
        self.processing_config = processing_config or ProcessingConfig()

    def _new_job(
        self,
        job_type: JobType,
        payload: dict[str, Any],
        available_at: datetime | None = None,
    ) -> Job:
        now = utc_now()
        if available_at is not None:
            available_at = to_aware(available_at)
        state = JobState.WAITING
        if available_at is not None and available_at > now:
            state = JobState.DELAYED
        else:
            available_at = now
        now_iso = to_utc_iso(now)
        return Job(
            id=str(uuid.uuid4()),
            job_type=job_type,
            state=state,
            payload=payload,
            max_attempts=self.jobs_config.max_attempts,
            available_at=to_utc_iso(available_at),
            created_at=now_iso,
            updated_at=now_iso,
        )

    def _insert(self, job: Job) -> str:
        with self.pool.transaction() as conn:
            insert_job(conn, job)
        logger.info(
            "Submitted %s job %s (%s)", job.job_type.value, job.id, job.state.value
        )
        return job.id

    def submit_processing(self, payload: Mapping[str, Any] | BaseModel) -> str:
        """Queue a process-video job.

        Options missing from the payload take the configured processing
        defaults.

        Returns:
            The new job's ID.

        Raises:
            ValidationError: If the payload is invalid.
        """
        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        data = dict(payload)
        defaults = {
            "clip_duration": self.processing_config.default_clip_duration,
            "quality": self.processing_config.default_quality,
            "audio_quality": self.processing_config.default_audio_quality,
        }
        options = data.get("options") or {}
        if isinstance(options, Mapping):
            data["options"] = {**defaults, **options}

        request = parse_payload(ProcessRequest, data)
        if request.options.clip_duration > self.processing_config.max_clip_duration:
            raise ValidationError(
                f"Invalid ProcessRequest: options.clip_duration "
                f"{request.options.clip_duration} exceeds the maximum of "
                f"{self.processing_config.max_clip_duration} seconds"
            )

        job = self._new_job(JobType.PROCESS_VIDEO, request.model_dump())
        return self._insert(job)

    def submit_upload(
        self,
        payload: Mapping[str, Any] | BaseModel,
        scheduled_time: datetime | None = None,
    ) -> str:
        """Queue an upload-video job.

        Args:
            payload: Upload request (video_path and metadata).
            scheduled_time: If in the future, the job is DELAYED until then.

        Returns:
            The new job's ID.

        Raises:
            ValidationError: If the payload is invalid.
        """
        request = parse_payload(UploadRequest, payload)
        job = self._new_job(
            JobType.UPLOAD_VIDEO, request.model_dump(mode="json"), scheduled_time
        )
        return self._insert(job)

    def get_status(self, job_id: str) -> Job:
        """Return the job record.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        with self.pool.connection() as conn:
            job = get_job(conn, job_id)
        if job is None:
            raise JobNotFoundError(job_id, "get")
        return job

    def list_jobs(
        self,
        states: Iterable[JobState | str] | JobState | str | None = None,
        job_type: JobType | str | None = None,
        limit: int | None = None,
    ) -> list[Job]:
        """List jobs, newest first, optionally filtered."""
        state_filter = _coerce_states(states) if states is not None else None
        if isinstance(job_type, str):
            try:
                job_type = JobType(job_type)
            except ValueError as e:
                raise ValidationError(str(e)) from e
        with self.pool.connection() as conn:
            return get_jobs(conn, states=state_filter, job_type=job_type, limit=limit)

    def cancel(self, job_id: str) -> None:
        """Remove a job.

        A stage already running for the job is not interrupted; its worker
        notices the removal at the next stage boundary and stops.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        with self.pool.transaction() as conn:
            deleted = delete_job(conn, job_id)
        if not deleted:
            raise JobNotFoundError(job_id, "cancel")
        logger.info("Cancelled job %s", job_id)

    def retry(self, job_id: str) -> Job:
        """Requeue a failed job with a fresh attempt budget.

        Raises:
            JobNotFoundError: If the job does not exist.
            JobStateError: If the job is not failed.
        """
        with self.pool.transaction() as conn:
            job = get_job(conn, job_id)
            if job is None:
                raise JobNotFoundError(job_id, "retry")
            if job.state != JobState.FAILED:
                raise JobStateError(job_id, job.state.value, "retry")
            reset_failed_job(conn, job_id, to_utc_iso(utc_now()))
            requeued = get_job(conn, job_id)
        logger.info("Requeued failed job %s", job_id)
        if requeued is None:
            raise JobNotFoundError(job_id, "retry")
        return requeued

    def purge(self, retention_days: int | None = None) -> int:
        """Delete completed and failed jobs older than the retention window.

        Returns:
            Number of jobs deleted.
        """
        days = (
            retention_days
            if retention_days is not None
            else self.jobs_config.retention_days
        )
        with self.pool.connection() as conn:
            return purge_old_jobs(conn, days)

    def stats(self) -> dict[str, int]:
        """Per-state job counts plus a total."""
        with self.pool.connection() as conn:
            return count_jobs_by_state(conn)

    def analytics(self, history_limit: int = DEFAULT_HISTORY_LIMIT) -> ActivitySummary:
        """Processing and upload totals over the finished jobs still on record."""
        with self.pool.connection() as conn:
            jobs = get_jobs(conn, states=(JobState.COMPLETED, JobState.FAILED))
        return summarize_jobs(jobs, history_limit)
