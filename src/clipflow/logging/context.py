"""Job context for structured logging.

Carries the current job, schedule and worker identifiers in contextvars so
every log record emitted while handling a job can be tagged with them,
including records from tasks spawned inside the context.
"""

from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Generator

_worker_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "worker_id", default=None
)
_job_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "job_id", default=None
)
_schedule_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "schedule_id", default=None
)

# Record attributes set by JobContextFilter
CONTEXT_FIELDS = ("job_id", "worker_id", "schedule_id")


@contextmanager
def job_context(
    job_id: str | None = None,
    worker_id: str | None = None,
    schedule_id: str | None = None,
) -> Generator[None, None, None]:
    """Context manager that tags log records with job identifiers.

    Values left as None keep whatever the enclosing context set.

    Example:
        with job_context(job_id=job.id, worker_id="w1"):
            logger.info("Downloading")  # record carries job_id and worker_id
    """
    tokens = []
    for var, value in (
        (_job_id, job_id),
        (_worker_id, worker_id),
        (_schedule_id, schedule_id),
    ):
        if value is not None:
            tokens.append((var, var.set(value)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def get_job_context() -> tuple[str | None, str | None, str | None]:
    """Get current context.

    Returns:
        Tuple of (job_id, worker_id, schedule_id), any may be None.
    """
    return _job_id.get(), _worker_id.get(), _schedule_id.get()


class JobContextFilter(logging.Filter):
    """Logging filter that injects job context into log records.

    Adds job_id, worker_id and schedule_id attributes for the JSON format
    and a compact ``context_tag`` such as ``[w1:3f2a9c1e] `` for text.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        job_id, worker_id, schedule_id = get_job_context()

        record.job_id = job_id
        record.worker_id = worker_id
        record.schedule_id = schedule_id

        parts = []
        if worker_id:
            parts.append(worker_id)
        if job_id:
            parts.append(job_id[:8])
        elif schedule_id:
            parts.append(f"s:{schedule_id[:8]}")
        record.context_tag = f"[{':'.join(parts)}] " if parts else ""

        return True  # Never filter out records
