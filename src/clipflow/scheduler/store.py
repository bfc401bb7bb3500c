"""Persistence for schedule records.

``ScheduleStore`` is the interface the scheduler depends on;
``SqliteScheduleStore`` implements it over the shared clipflow database,
so several processes can operate on the same schedules safely.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol

from clipflow.db.connection import ConnectionPool
from clipflow.db.queries import (
    delete_old_schedules,
    delete_schedule,
    get_schedule,
    get_schedules,
    insert_schedule,
    transition_schedule,
)
from clipflow.db.types import Schedule, ScheduleStatus


class ScheduleStore(Protocol):
    """Concurrency-safe storage of Schedule records."""

    def get(self, schedule_id: str) -> Schedule | None: ...

    def put(self, schedule: Schedule) -> None: ...

    def put_many(self, schedules: Iterable[Schedule]) -> None:
        """Insert all records or none of them."""
        ...

    def delete(self, schedule_id: str) -> bool: ...

    def list(
        self,
        status: ScheduleStatus | None = None,
        after: str | None = None,
        before: str | None = None,
        limit: int | None = None,
    ) -> list[Schedule]: ...

    def transition(
        self,
        schedule_id: str,
        from_statuses: Iterable[ScheduleStatus],
        to_status: ScheduleStatus,
        now: str,
        *,
        due_by: str | None = None,
        **fields: Any,
    ) -> bool:
        """Compare-and-set the status; True if this call made the change.

        With ``due_by``, the record must also be scheduled at or before it.
        """
        ...

    def delete_older_than(self, cutoff: str) -> int: ...


class SqliteScheduleStore:
    """ScheduleStore backed by the ``schedules`` table."""

    def __init__(self, pool: ConnectionPool) -> None:
        self.pool = pool

    def get(self, schedule_id: str) -> Schedule | None:
        with self.pool.connection() as conn:
            return get_schedule(conn, schedule_id)

    def put(self, schedule: Schedule) -> None:
        with self.pool.transaction() as conn:
            insert_schedule(conn, schedule)

    def put_many(self, schedules: Iterable[Schedule]) -> None:
        with self.pool.transaction() as conn:
            for schedule in schedules:
                insert_schedule(conn, schedule)

    def delete(self, schedule_id: str) -> bool:
        with self.pool.transaction() as conn:
            return delete_schedule(conn, schedule_id)

    def list(
        self,
        status: ScheduleStatus | None = None,
        after: str | None = None,
        before: str | None = None,
        limit: int | None = None,
    ) -> list[Schedule]:
        with self.pool.connection() as conn:
            return get_schedules(
                conn, status=status, after=after, before=before, limit=limit
            )

    def transition(
        self,
        schedule_id: str,
        from_statuses: Iterable[ScheduleStatus],
        to_status: ScheduleStatus,
        now: str,
        *,
        due_by: str | None = None,
        **fields: Any,
    ) -> bool:
        with self.pool.transaction() as conn:
            return transition_schedule(
                conn,
                schedule_id,
                from_statuses,
                to_status,
                now,
                due_by=due_by,
                **fields,
            )

    def delete_older_than(self, cutoff: str) -> int:
        with self.pool.transaction() as conn:
            return delete_old_schedules(conn, cutoff)
