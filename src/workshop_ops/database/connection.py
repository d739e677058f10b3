"""SQLite connection management with context managers and atomic transactions."""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path

from workshop_ops.config import Config
from workshop_ops.errors import TransactionConflictError

logger = logging.getLogger(__name__)

_CONFLICT_MARKERS = ("database is locked", "database is busy", "database table is locked")


def is_conflict(error: sqlite3.OperationalError) -> bool:
    """True when the error means another writer holds the lock."""
    message = str(error).lower()
    return any(marker in message for marker in _CONFLICT_MARKERS)


class DatabaseConnection:
    """Manages SQLite connections with foreign key enforcement."""

    def __init__(self, db_path: str | Path, busy_timeout: float | None = None):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.busy_timeout = busy_timeout

    @property
    def timeout(self) -> float:
        if self.busy_timeout is not None:
            return self.busy_timeout
        return Config.TRANSACTION_BUSY_TIMEOUT

    def _connect(self, **kwargs) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout, **kwargs)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def get_connection(self):
        """Yield a connection that auto-commits or rolls back."""
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def reuse_or_connect(self, conn: sqlite3.Connection | None = None):
        """Yield the caller's connection, or open a committing one."""
        if conn is not None:
            yield conn
            return
        with self.get_connection() as own:
            yield own

    @contextmanager
    def transaction(self):
        """Yield a connection holding the write lock for the whole block.

        ``BEGIN IMMEDIATE`` takes the reserved lock up front, so every read
        inside the block sees the state the writes are based on.
        """
        conn = self._connect(isolation_level=None)
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def run_transaction(self, fn, retries: int | None = None):
        """Run ``fn(conn)`` atomically, re-running it from fresh reads on conflict.

        Returns whatever ``fn`` returns. After ``retries`` re-runs (default
        ``Config.TRANSACTION_MAX_RETRIES``) a ``TransactionConflictError`` is
        raised and nothing has been written.
        """
        if retries is None:
            retries = Config.TRANSACTION_MAX_RETRIES
        attempts = max(0, retries) + 1
        last_error = None
        for attempt in range(1, attempts + 1):
            try:
                with self.transaction() as conn:
                    return fn(conn)
            except sqlite3.OperationalError as e:
                if not is_conflict(e):
                    raise
                last_error = e
                logger.warning(
                    f"Transaction conflict on attempt {attempt}/{attempts}: {e}"
                )
        logger.error(f"Transaction abandoned after {attempts} attempts")
        raise TransactionConflictError(attempts, last_error)

    def execute(self, sql: str, params: tuple = ()):
        """Run a single statement and return the cursor."""
        with self.get_connection() as conn:
            cursor = conn.execute(sql, params)
            return cursor.fetchall()

    def execute_script(self, sql_script: str):
        """Run a multi-statement SQL script."""
        with self.get_connection() as conn:
            conn.executescript(sql_script)
