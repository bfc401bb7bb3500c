"""Job pipeline: durable queue, stage runner, worker and progress.

This module provides:
- JobOrchestrator: submission and management API
- JobWorker: asyncio consumer running claimed jobs through JobPipeline
- ProgressBroadcaster: fan-out of live progress events
- Queue primitives and maintenance (purge, stale recovery)
"""

from clipflow.jobs.maintenance import MaintenanceTask, purge_old_jobs
from clipflow.jobs.orchestrator import JobOrchestrator, JobSubmitter
from clipflow.jobs.pipeline import JobPipeline
from clipflow.jobs.progress import (
    ProgressBroadcaster,
    ProgressEvent,
    StageProgress,
    Subscription,
)
from clipflow.jobs.queue import (
    claim_next_job,
    complete_job,
    compute_backoff_delay,
    fail_or_retry_job,
    recover_stale_jobs,
    release_claim,
    update_heartbeat,
    update_progress,
)
from clipflow.jobs.worker import JobWorker

__all__ = [
    "JobOrchestrator",
    "JobPipeline",
    "JobSubmitter",
    "JobWorker",
    "MaintenanceTask",
    "ProgressBroadcaster",
    "ProgressEvent",
    "StageProgress",
    "Subscription",
    "claim_next_job",
    "complete_job",
    "compute_backoff_delay",
    "fail_or_retry_job",
    "purge_old_jobs",
    "recover_stale_jobs",
    "release_claim",
    "update_heartbeat",
    "update_progress",
]
