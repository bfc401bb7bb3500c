"""Database schema for clipflow.

Two tables back the whole system: ``jobs`` (the durable work queue) and
``schedules`` (deferred uploads). The ``schedules`` columns are the at-rest
contract for scheduled uploads and must stay compatible across versions.
"""

import sqlite3

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS _meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    job_type TEXT NOT NULL,
    state TEXT NOT NULL DEFAULT 'waiting',
    payload_json TEXT NOT NULL,
    progress INTEGER NOT NULL DEFAULT 0,
    progress_stage TEXT,
    progress_json TEXT,
    attempts INTEGER NOT NULL DEFAULT 0,
    max_attempts INTEGER NOT NULL DEFAULT 3,
    result_json TEXT,
    failure_reason TEXT,
    available_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    started_at TEXT,
    finished_at TEXT,
    updated_at TEXT NOT NULL,
    worker_id TEXT,
    worker_heartbeat TEXT,
    CONSTRAINT valid_job_type CHECK (
        job_type IN ('process-video', 'upload-video')
    ),
    CONSTRAINT valid_state CHECK (
        state IN ('waiting', 'active', 'completed', 'failed', 'delayed')
    ),
    CONSTRAINT valid_progress CHECK (progress >= 0 AND progress <= 100)
);

CREATE INDEX IF NOT EXISTS idx_jobs_claim
    ON jobs(job_type, state, available_at);
CREATE INDEX IF NOT EXISTS idx_jobs_state ON jobs(state);
CREATE INDEX IF NOT EXISTS idx_jobs_created_at ON jobs(created_at);

CREATE TABLE IF NOT EXISTS schedules (
    id TEXT PRIMARY KEY,
    upload_payload_json TEXT NOT NULL,
    scheduled_time TEXT NOT NULL,
    timezone TEXT NOT NULL DEFAULT 'UTC',
    status TEXT NOT NULL DEFAULT 'scheduled',
    job_id TEXT,
    error TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    completed_at TEXT,
    failed_at TEXT,
    cancelled_at TEXT,
    CONSTRAINT valid_status CHECK (
        status IN ('scheduled', 'executing', 'completed', 'failed', 'cancelled')
    )
);

CREATE INDEX IF NOT EXISTS idx_schedules_status_time
    ON schedules(status, scheduled_time);
CREATE INDEX IF NOT EXISTS idx_schedules_created_at ON schedules(created_at);
"""


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all database tables and indexes.

    Args:
        conn: An open database connection.
    """
    conn.executescript(SCHEMA_SQL)
    conn.execute(
        "INSERT OR REPLACE INTO _meta (key, value) VALUES ('schema_version', ?)",
        (str(SCHEMA_VERSION),),
    )
    conn.commit()


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    """Get the current schema version, or None if the schema is missing."""
    try:
        cursor = conn.execute("SELECT value FROM _meta WHERE key = 'schema_version'")
    except sqlite3.OperationalError:
        return None
    row = cursor.fetchone()
    return int(row[0]) if row else None


def initialize_database(conn: sqlite3.Connection) -> None:
    """Initialize the database with schema, creating tables if needed.

    Raises:
        RuntimeError: If the database was written by a newer clipflow.
    """
    current_version = get_schema_version(conn)

    if current_version is None:
        create_schema(conn)
    elif current_version > SCHEMA_VERSION:
        raise RuntimeError(
            f"Database schema version {current_version} is newer than "
            f"supported version {SCHEMA_VERSION}"
        )
