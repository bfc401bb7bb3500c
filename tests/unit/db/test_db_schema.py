"""Unit tests for schema creation and the connection pool."""

import sqlite3

import pytest

from clipflow.db.connection import ConnectionPool, open_connection
from clipflow.db.schema import (
    SCHEMA_VERSION,
    get_schema_version,
    initialize_database,
)


class TestInitializeDatabase:
    """Tests for initialize_database."""

    def test_creates_tables(self, db_conn):
        """Both tables exist after initialization."""
        tables = {
            row[0]
            for row in db_conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table'"
            )
        }
        assert {"jobs", "schedules", "_meta"} <= tables

    def test_records_schema_version(self, db_conn):
        """The current schema version is stored."""
        assert get_schema_version(db_conn) == SCHEMA_VERSION

    def test_is_idempotent(self, db_conn):
        """Initializing twice leaves the schema intact."""
        initialize_database(db_conn)
        assert get_schema_version(db_conn) == SCHEMA_VERSION

    def test_missing_schema_has_no_version(self):
        """A fresh database reports no version."""
        conn = open_connection(":memory:")
        try:
            assert get_schema_version(conn) is None
        finally:
            conn.close()

    def test_rejects_newer_schema(self, db_conn):
        """A database written by a newer release is refused."""
        db_conn.execute(
            "UPDATE _meta SET value = ? WHERE key = 'schema_version'",
            (str(SCHEMA_VERSION + 1),),
        )
        db_conn.commit()

        with pytest.raises(RuntimeError, match="newer"):
            initialize_database(db_conn)

    def test_rejects_invalid_job_state(self, db_conn):
        """CHECK constraints guard the state column."""
        with pytest.raises(sqlite3.IntegrityError):
            db_conn.execute(
                """
                INSERT INTO jobs (id, job_type, state, payload_json,
                    available_at, created_at, updated_at)
                VALUES ('x', 'process-video', 'bogus', '{}', 'a', 'a', 'a')
                """
            )


class TestConnectionPool:
    """Tests for ConnectionPool."""

    def test_transaction_commits(self, pool):
        """Statements in a transaction are visible afterwards."""
        with pool.transaction() as conn:
            conn.execute(
                "INSERT INTO _meta (key, value) VALUES ('probe', '1')"
            )

        with pool.connection() as conn:
            row = conn.execute("SELECT value FROM _meta WHERE key = 'probe'").fetchone()
        assert row[0] == "1"

    def test_transaction_rolls_back_on_error(self, pool):
        """An exception inside the block discards its writes."""
        with pytest.raises(ValueError):
            with pool.transaction() as conn:
                conn.execute(
                    "INSERT INTO _meta (key, value) VALUES ('probe', '1')"
                )
                raise ValueError("boom")

        with pool.connection() as conn:
            row = conn.execute("SELECT value FROM _meta WHERE key = 'probe'").fetchone()
        assert row is None

    def test_closed_pool_raises(self, tmp_path):
        """Using a closed pool is an error."""
        pool = ConnectionPool(tmp_path / "closed.db")
        pool.close()

        assert pool.is_closed
        with pytest.raises(RuntimeError, match="closed"):
            with pool.connection():
                pass
