"""Query functions for the clipflow database."""

from .jobs import (
    count_jobs_by_state,
    delete_job,
    delete_old_jobs,
    get_job,
    get_jobs,
    insert_job,
    reset_failed_job,
)
from .schedules import (
    delete_old_schedules,
    delete_schedule,
    get_schedule,
    get_schedules,
    insert_schedule,
    transition_schedule,
)

__all__ = [
    "count_jobs_by_state",
    "delete_job",
    "delete_old_jobs",
    "delete_old_schedules",
    "delete_schedule",
    "get_job",
    "get_jobs",
    "get_schedule",
    "get_schedules",
    "insert_job",
    "insert_schedule",
    "reset_failed_job",
    "transition_schedule",
]
