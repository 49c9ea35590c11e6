"""
SQLite database integration and simple migration system.

The ``Database`` class is the single store handle of the process: it is
constructed once at startup (see ``main.create_app``) and passed into
every store component.  It hands out short‑lived connections, wraps
units of work in transactions (``Database.transaction``) and applies
migrations (``Database.init_db``).

SQLite's write lock is the only serialization point of the directory.
Write transactions start with ``BEGIN IMMEDIATE`` so that two writers
touching the same row never interleave between a read and the write
that depends on it.

The migration mechanism stores applied migration versions in the
``migrations`` table and executes new migrations in order, each one in
its own transaction.
"""

import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from .config import Settings
from .errors import DeadlineExceededError, StorageError

logger = logging.getLogger(__name__)

# Number of SQLite virtual machine instructions between deadline checks.
_PROGRESS_STEPS = 100

MIGRATIONS: list[tuple[int, str]] = [
    # Migration 1: Initial schema
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS services (
            service_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            owner_info TEXT NOT NULL DEFAULT '',
            industry_category TEXT NOT NULL DEFAULT '',
            client_rating REAL NOT NULL DEFAULT 0,
            transaction_count INTEGER NOT NULL DEFAULT 0,
            average_response_time REAL NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS service_instances (
            instance_id TEXT PRIMARY KEY,
            service_id TEXT NOT NULL,
            version TEXT NOT NULL DEFAULT '',
            host TEXT NOT NULL,
            port INTEGER NOT NULL,
            url TEXT,
            api_spec TEXT,
            latitude REAL,
            longitude REAL,
            health_status TEXT NOT NULL DEFAULT 'starting'
                CHECK (health_status IN ('starting', 'up', 'down', 'unknown')),
            created_at TEXT NOT NULL,
            last_checked TEXT NOT NULL,
            FOREIGN KEY(service_id) REFERENCES services(service_id)
        );

        -- One row per retired instance.  The UNIQUE constraint on
        -- instance_id rejects a second archive of the same instance even
        -- from a writer that bypasses InstanceStore.retire.
        CREATE TABLE IF NOT EXISTS service_instance_history (
            history_id TEXT PRIMARY KEY,
            service_id TEXT NOT NULL,
            instance_id TEXT NOT NULL UNIQUE,
            version TEXT,
            url TEXT,
            metrics TEXT NOT NULL,
            started_at TEXT NOT NULL,
            stopped_at TEXT NOT NULL,
            FOREIGN KEY(service_id) REFERENCES services(service_id)
        );
        """,
    ),
    # Migration 2: usage counters on instances and lookup indices
    (
        2,
        """
        ALTER TABLE service_instances ADD COLUMN transaction_count INTEGER NOT NULL DEFAULT 0;
        ALTER TABLE service_instances ADD COLUMN average_response_time REAL NOT NULL DEFAULT 0;
        CREATE INDEX IF NOT EXISTS idx_service_instances_service_id ON service_instances(service_id);
        CREATE INDEX IF NOT EXISTS idx_history_service_id ON service_instance_history(service_id);
        """,
    ),
]


def utcnow() -> datetime:
    """Current time as a timezone‑aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_db_time(value: datetime) -> str:
    """Serialise a datetime for storage.

    All timestamps are stored as UTC ISO‑8601 strings with microseconds
    so that string comparison in SQL matches chronological order.
    """
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def resolve_database_path(database_url: str) -> str:
    """Resolve ``database_url`` to an absolute filesystem path."""
    return str(Path(database_url).expanduser().resolve())


class Database:
    """Explicitly constructed handle to the SQLite store."""

    def __init__(self, path: str, busy_timeout: float = 5.0) -> None:
        self.path = resolve_database_path(path)
        self.busy_timeout = busy_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(settings.database_url, busy_timeout=settings.database_busy_timeout)

    def connect(self) -> sqlite3.Connection:
        """Create and return a new SQLite connection.

        The connection runs in autocommit mode (transactions are opened
        explicitly by ``transaction``), returns ``sqlite3.Row`` rows and
        enforces foreign keys.
        """
        conn = sqlite3.connect(self.path, timeout=self.busy_timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def transaction(
        self,
        operation: str,
        timeout: Optional[float] = None,
        write: bool = True,
    ) -> Iterator[sqlite3.Cursor]:
        """Run the body as one transaction and yield its cursor.

        Commits when the body finishes, rolls back when it raises.  With
        ``timeout`` (seconds) the transaction is interrupted once the
        deadline passes and a commit past the deadline is refused, both
        reported as ``DeadlineExceededError``.  Any other ``sqlite3.Error``
        is re‑raised as ``StorageError`` naming ``operation``.
        """
        deadline = time.monotonic() + timeout if timeout is not None else None
        try:
            conn = self.connect()
        except sqlite3.Error as exc:
            raise StorageError(operation, exc) from exc
        try:
            if deadline is not None:
                conn.set_progress_handler(lambda: int(time.monotonic() > deadline), _PROGRESS_STEPS)
            conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            yield conn.cursor()
            if deadline is not None and time.monotonic() > deadline:
                raise DeadlineExceededError(operation)
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            _rollback(conn, operation)
            if deadline is not None and time.monotonic() > deadline:
                raise DeadlineExceededError(operation) from exc
            raise StorageError(operation, exc) from exc
        except BaseException:
            _rollback(conn, operation)
            raise
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create the database file if needed and apply pending migrations.

        If you add a migration, append it to ``MIGRATIONS`` with an
        incremented version number.
        """
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        conn = self.connect()
        try:
            conn.execute("CREATE TABLE IF NOT EXISTS migrations (version INTEGER PRIMARY KEY)")
            row = conn.execute("SELECT MAX(version) AS version FROM migrations").fetchone()
            current_version = row["version"] if row and row["version"] is not None else 0
            for version, sql in MIGRATIONS:
                if version <= current_version:
                    continue
                conn.executescript(
                    f"BEGIN;\n{sql}\nINSERT INTO migrations (version) VALUES ({version});\nCOMMIT;"
                )
                logger.info("Applied migration %s to %s", version, self.path)
                current_version = version
        except sqlite3.Error as exc:
            _rollback(conn, "init_db")
            raise StorageError("init_db", exc) from exc
        finally:
            conn.close()


def _rollback(conn: sqlite3.Connection, operation: str) -> None:
    # Drop the deadline handler first or it would interrupt the rollback too.
    conn.set_progress_handler(None, 0)
    if not conn.in_transaction:
        return
    try:
        conn.execute("ROLLBACK")
    except sqlite3.Error:
        # Closing the connection discards the open transaction anyway.
        logger.exception("Rollback failed during %s", operation)
