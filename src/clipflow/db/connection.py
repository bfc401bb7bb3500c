"""Database connection management for clipflow."""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


def ensure_db_directory(db_path: Path) -> None:
    """Ensure the database directory exists, creating it if necessary."""
    db_path.parent.mkdir(parents=True, exist_ok=True)


def open_connection(
    db_path: Path | str, timeout: float = 30.0, check_same_thread: bool = True
) -> sqlite3.Connection:
    """Open a connection with the standard PRAGMAs applied.

    ``":memory:"`` is accepted for tests.
    """
    if str(db_path) != ":memory:":
        ensure_db_directory(Path(db_path))

    conn = sqlite3.connect(
        str(db_path), timeout=timeout, check_same_thread=check_same_thread
    )

    conn.execute("PRAGMA foreign_keys = ON")

    # Multiple readers, single writer across worker processes
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA busy_timeout = 10000")
    conn.execute("PRAGMA temp_store = MEMORY")

    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def immediate_transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block inside ``BEGIN IMMEDIATE`` on an existing connection.

    Commits on success, rolls back on any exception. Any implicit
    transaction left open by the caller is committed first.
    """
    if conn.in_transaction:
        conn.commit()
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
        conn.execute("COMMIT")
    except BaseException:
        try:
            conn.execute("ROLLBACK")
        except sqlite3.Error as rollback_error:
            logger.error("Rollback failed: %s", rollback_error)
        raise


class ConnectionPool:
    """Thread-safe shared connection for the daemon.

    A single connection is shared between the event loop and the
    ``asyncio.to_thread`` workers; every use holds a lock, so statements
    from different threads never interleave. Other processes sharing the
    database file coordinate through SQLite's own locking.
    """

    def __init__(self, db_path: Path | str, timeout: float = 30.0) -> None:
        """Initialize the pool.

        Args:
            db_path: Path to SQLite database file.
            timeout: Connection timeout in seconds.
        """
        self.db_path = db_path
        self.timeout = timeout
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._closed = False

    def _get_or_create_connection(self) -> sqlite3.Connection:
        """Return the shared connection. Must be called with _lock held."""
        if self._closed:
            raise RuntimeError("Connection pool is closed")
        if self._conn is None:
            self._conn = open_connection(
                self.db_path, timeout=self.timeout, check_same_thread=False
            )
        return self._conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Hold the shared connection for a sequence of statements.

        No transaction is opened; query functions that need atomicity
        open their own ``BEGIN IMMEDIATE``.

        Raises:
            RuntimeError: If the pool has been closed.
        """
        with self._lock:
            yield self._get_or_create_connection()

    @contextmanager
    def transaction(self, timeout: float | None = None) -> Iterator[sqlite3.Connection]:
        """Context manager for atomic database transactions.

        Automatically commits on success, rolls back on exception.
        Uses BEGIN IMMEDIATE for write-intent transactions and logs a
        warning for transactions that take more than 80% of the timeout.

        Example:
            with pool.transaction() as conn:
                conn.execute("INSERT INTO ...", (...))
                conn.execute("UPDATE ...", (...))
        """
        effective_timeout = timeout if timeout is not None else self.timeout
        start_time = time.monotonic()

        with self._lock:
            conn = self._get_or_create_connection()
            with immediate_transaction(conn):
                yield conn

        elapsed = time.monotonic() - start_time
        if elapsed > effective_timeout * 0.8:
            logger.warning(
                "Slow transaction: %.2fs (threshold %.2fs)",
                elapsed,
                effective_timeout * 0.8,
            )

    def close(self) -> None:
        """Close the shared connection. Further use raises RuntimeError."""
        with self._lock:
            self._closed = True
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @property
    def is_closed(self) -> bool:
        return self._closed
