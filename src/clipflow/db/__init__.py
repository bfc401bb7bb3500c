"""Database layer for clipflow.

SQLite storage for the job queue and the upload schedules.
"""

from clipflow.db.connection import ConnectionPool, open_connection
from clipflow.db.schema import SCHEMA_VERSION, initialize_database
from clipflow.db.types import Job, JobState, JobType, Schedule, ScheduleStatus

__all__ = [
    "ConnectionPool",
    "Job",
    "JobState",
    "JobType",
    "SCHEMA_VERSION",
    "Schedule",
    "ScheduleStatus",
    "initialize_database",
    "open_connection",
]
