"""Deferred upload scheduling.

This module provides:
- UploadScheduler: schedules, cancels and fires deferred uploads
- DistributionPattern / compute_times: bulk campaign time computation
- ScheduleStore / SqliteScheduleStore: schedule persistence
- Clock / TimerService: injectable time sources and timers
- DueScheduleScanTask: periodic rescan for overdue schedules
"""

from clipflow.scheduler.patterns import (
    PATTERN_TYPES,
    DistributionPattern,
    compute_times,
    parse_pattern,
)
from clipflow.scheduler.rescan import DueScheduleScanTask
from clipflow.scheduler.service import (
    MISSED_ERROR,
    MISSED_POLICY_FAIL,
    MISSED_POLICY_RUN,
    UploadScheduler,
)
from clipflow.scheduler.store import ScheduleStore, SqliteScheduleStore
from clipflow.scheduler.timers import (
    AsyncioTimerService,
    Clock,
    NullTimerService,
    SystemClock,
    TimerService,
)

__all__ = [
    "AsyncioTimerService",
    "Clock",
    "DistributionPattern",
    "DueScheduleScanTask",
    "MISSED_ERROR",
    "MISSED_POLICY_FAIL",
    "MISSED_POLICY_RUN",
    "NullTimerService",
    "PATTERN_TYPES",
    "ScheduleStore",
    "SqliteScheduleStore",
    "SystemClock",
    "TimerService",
    "UploadScheduler",
    "compute_times",
    "parse_pattern",
]
