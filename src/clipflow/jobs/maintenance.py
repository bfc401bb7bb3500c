"""Job maintenance operations (purge, stale recovery).

``purge_old_jobs`` is the single implementation of the retention sweep;
``MaintenanceTask`` runs it, together with stale job recovery, on an
interval inside the daemon.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import timedelta
from typing import TYPE_CHECKING

from clipflow.core.datetime_utils import to_utc_iso, utc_now
from clipflow.core.periodic import PeriodicTask
from clipflow.db.queries import delete_old_jobs
from clipflow.jobs.queue import recover_stale_jobs

if TYPE_CHECKING:
    from clipflow.config.models import JobsConfig
    from clipflow.db.connection import ConnectionPool

logger = logging.getLogger(__name__)

# Retention sweeps need not run often
DEFAULT_MAINTENANCE_INTERVAL = 3600


def purge_old_jobs(
    conn: sqlite3.Connection,
    retention_days: int,
    *,
    auto_purge: bool = True,
) -> int:
    """Purge completed and failed jobs older than the retention window.

    Args:
        conn: Database connection.
        retention_days: Days to retain terminal jobs.
        auto_purge: If False, returns 0 without purging.

    Returns:
        Number of jobs deleted.
    """
    if not auto_purge:
        return 0

    cutoff = to_utc_iso(utc_now() - timedelta(days=retention_days))

    count = delete_old_jobs(conn, cutoff)
    conn.commit()
    if count > 0:
        logger.info("Purged %d job(s) older than %d day(s)", count, retention_days)
    return count


class MaintenanceTask(PeriodicTask):
    """Background retention sweep and stale job recovery."""

    name = "Job maintenance"

    def __init__(
        self,
        pool: ConnectionPool,
        config: JobsConfig,
        *,
        interval_seconds: float = DEFAULT_MAINTENANCE_INTERVAL,
    ) -> None:
        super().__init__(interval_seconds=interval_seconds)
        self.pool = pool
        self.config = config
        self.purged = 0
        self.recovered = 0

    def _maintain(self) -> tuple[int, int]:
        with self.pool.connection() as conn:
            recovered = recover_stale_jobs(conn, self.config.stale_timeout_seconds)
            purged = purge_old_jobs(
                conn, self.config.retention_days, auto_purge=self.config.auto_purge
            )
        return purged, recovered

    async def run_once(self) -> None:
        purged, recovered = await asyncio.to_thread(self._maintain)
        self.purged += purged
        self.recovered += recovered
