"""Periodic rescan for due schedules.

Timers only live as long as the process that armed them. The rescan
fires anything that came due without a timer (schedules added by another
process, timers lost to a crash) and sweeps out old finished schedules.
"""

from __future__ import annotations

import asyncio
import logging

from clipflow.core.periodic import PeriodicTask
from clipflow.scheduler.service import DEFAULT_CLEANUP_DAYS, UploadScheduler

logger = logging.getLogger(__name__)


class DueScheduleScanTask(PeriodicTask):
    """Fires overdue schedules and removes expired ones on an interval."""

    name = "Schedule rescan"

    def __init__(
        self,
        scheduler: UploadScheduler,
        *,
        interval_seconds: float,
        cleanup_days: int = DEFAULT_CLEANUP_DAYS,
    ) -> None:
        super().__init__(
            interval_seconds=interval_seconds,
            startup_delay_seconds=interval_seconds,
        )
        self.scheduler = scheduler
        self.cleanup_days = cleanup_days
        self.fired = 0

    def _scan(self) -> tuple[int, int]:
        fired = self.scheduler.fire_due()
        removed = self.scheduler.cleanup(self.cleanup_days)
        return fired, removed

    async def run_once(self) -> None:
        fired, _ = await asyncio.to_thread(self._scan)
        if fired:
            logger.info("Rescan fired %d overdue schedule(s)", fired)
        self.fired += fired
