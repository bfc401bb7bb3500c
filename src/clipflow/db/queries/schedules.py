"""Schedule CRUD operations for the clipflow database.

Status changes go through ``transition_schedule``, a compare-and-set on the
current status, so two timers or workers racing on the same schedule can
never both win.
"""

import sqlite3
from collections.abc import Iterable
from typing import Any

from clipflow.db.types import Schedule, ScheduleStatus

from .helpers import _dump_json, _row_to_schedule

SCHEDULE_COLUMNS = """
    id, upload_payload_json, scheduled_time, timezone, status, job_id, error,
    created_at, updated_at, completed_at, failed_at, cancelled_at
"""

# Columns a transition may set besides status/updated_at
_TRANSITION_FIELDS = frozenset(
    {
        "scheduled_time",
        "timezone",
        "job_id",
        "error",
        "completed_at",
        "failed_at",
        "cancelled_at",
    }
)


def insert_schedule(conn: sqlite3.Connection, schedule: Schedule) -> str:
    """Insert a new schedule record.

    Note:
        This function does NOT commit. Caller must manage transactions.
    """
    conn.execute(
        f"""
        INSERT INTO schedules ({SCHEDULE_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,  # nosec B608 - column list is a module constant
        (
            schedule.id,
            _dump_json(schedule.upload_payload),
            schedule.scheduled_time,
            schedule.timezone,
            schedule.status.value,
            schedule.job_id,
            schedule.error,
            schedule.created_at,
            schedule.updated_at,
            schedule.completed_at,
            schedule.failed_at,
            schedule.cancelled_at,
        ),
    )
    return schedule.id


def get_schedule(conn: sqlite3.Connection, schedule_id: str) -> Schedule | None:
    """Get a schedule by ID, or None if it does not exist."""
    cursor = conn.execute(
        f"SELECT {SCHEDULE_COLUMNS} FROM schedules WHERE id = ?",  # nosec B608
        (schedule_id,),
    )
    row = cursor.fetchone()
    if row is None:
        return None
    return _row_to_schedule(row)


def get_schedules(
    conn: sqlite3.Connection,
    status: ScheduleStatus | None = None,
    after: str | None = None,
    before: str | None = None,
    limit: int | None = None,
) -> list[Schedule]:
    """List schedules ordered by scheduled time, soonest first.

    Args:
        conn: Database connection.
        status: Only return schedules with this status.
        after: Only return schedules strictly later than this ISO time.
        before: Only return schedules at or before this ISO time.
        limit: Maximum number of schedules to return.
    """
    conditions: list[str] = []
    params: list[Any] = []

    if status is not None:
        conditions.append("status = ?")
        params.append(status.value)
    if after is not None:
        conditions.append("scheduled_time > ?")
        params.append(after)
    if before is not None:
        conditions.append("scheduled_time <= ?")
        params.append(before)

    query = f"SELECT {SCHEDULE_COLUMNS} FROM schedules"  # nosec B608
    if conditions:
        query += " WHERE " + " AND ".join(conditions)
    query += " ORDER BY scheduled_time ASC, created_at ASC"
    if limit is not None:
        query += " LIMIT ?"
        params.append(limit)

    cursor = conn.execute(query, params)
    return [_row_to_schedule(row) for row in cursor.fetchall()]


def transition_schedule(
    conn: sqlite3.Connection,
    schedule_id: str,
    from_statuses: Iterable[ScheduleStatus],
    to_status: ScheduleStatus,
    now: str,
    *,
    due_by: str | None = None,
    **fields: Any,
) -> bool:
    """Move a schedule to ``to_status`` if it is currently in ``from_statuses``.

    Args:
        conn: Database connection.
        schedule_id: Schedule UUID.
        from_statuses: Statuses the transition is allowed from.
        to_status: New status.
        now: ISO-8601 UTC timestamp for updated_at.
        due_by: If given, the transition also requires
            ``scheduled_time <= due_by``.
        **fields: Extra columns to set (see _TRANSITION_FIELDS).

    Returns:
        True if this call performed the transition.

    Note:
        This function does NOT commit. Caller must manage transactions.
    """
    unknown = set(fields) - _TRANSITION_FIELDS
    if unknown:
        raise ValueError(f"Unknown schedule fields: {sorted(unknown)}")

    expected = [s.value for s in from_statuses]
    assignments = ["status = ?", "updated_at = ?"]
    params: list[Any] = [to_status.value, now]
    for name, value in fields.items():
        assignments.append(f"{name} = ?")
        params.append(value)

    placeholders = ", ".join("?" for _ in expected)
    params.append(schedule_id)
    params.extend(expected)
    where = f"id = ? AND status IN ({placeholders})"
    if due_by is not None:
        where += " AND scheduled_time <= ?"
        params.append(due_by)

    cursor = conn.execute(
        f"""
        UPDATE schedules
        SET {", ".join(assignments)}
        WHERE {where}
        """,  # nosec B608 - names checked against _TRANSITION_FIELDS
        params,
    )
    return cursor.rowcount > 0


def delete_old_schedules(conn: sqlite3.Connection, cutoff: str) -> int:
    """Delete non-pending schedules created before ``cutoff``.

    Returns:
        Number of schedules deleted.

    Note:
        This function does NOT commit. Caller must manage transactions.
    """
    cursor = conn.execute(
        """
        DELETE FROM schedules
        WHERE status != 'scheduled' AND created_at < ?
        """,
        (cutoff,),
    )
    return cursor.rowcount


def delete_schedule(conn: sqlite3.Connection, schedule_id: str) -> bool:
    """Delete a schedule record.

    Returns:
        True if a record was deleted.

    Note:
        This function does NOT commit. Caller must manage transactions.
    """
    cursor = conn.execute("DELETE FROM schedules WHERE id = ?", (schedule_id,))
    return cursor.rowcount > 0
