"""
Append‑only archive of retired instances.

``HistoryArchive`` owns the ``service_instance_history`` table.  Records
are inserted once and never updated or deleted.  At most one record
exists per instance: the table carries a UNIQUE constraint on
``instance_id`` and ``insert`` checks for an existing record first, so a
retirement can never be archived twice.

Writes are usually made by ``InstanceStore.retire`` through ``insert``,
inside the same transaction that deletes the live row.  ``append``
writes a record in a transaction of its own for importers and tooling;
it refuses instances that are still live, so it cannot leave an
instance both live and archived.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import List, Optional

from directory_service.app.core.db import Database, to_db_time
from directory_service.app.core.errors import ConflictError
from directory_service.app.schemas.history import HistoryRecord

logger = logging.getLogger(__name__)


class HistoryArchive:
    """Read and append access to ``HistoryRecord``s."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def insert(self, cursor: sqlite3.Cursor, record: HistoryRecord) -> HistoryRecord:
        """Write ``record`` inside the caller's transaction.

        Raises ``ConflictError`` if the instance is already archived.
        """
        existing = self.find_for_instance(cursor, record.instance_id)
        if existing is not None:
            raise ConflictError(
                f"instance {record.instance_id} is already archived as {existing.history_id}"
            )
        try:
            cursor.execute(
                """
                INSERT INTO service_instance_history (
                    history_id, service_id, instance_id, version, url, metrics, started_at, stopped_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.history_id,
                    record.service_id,
                    record.instance_id,
                    record.version,
                    record.url,
                    json.dumps(record.metrics),
                    to_db_time(record.started_at),
                    to_db_time(record.stopped_at),
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"cannot archive instance {record.instance_id}: {exc}") from exc
        return record

    def find_for_instance(self, cursor: sqlite3.Cursor, instance_id: str) -> Optional[HistoryRecord]:
        """Return the record of ``instance_id`` visible to ``cursor``, if any."""
        row = cursor.execute(
            "SELECT * FROM service_instance_history WHERE instance_id = ?",
            (instance_id,),
        ).fetchone()
        return _row_to_record(row) if row is not None else None

    def records_for_service(self, cursor: sqlite3.Cursor, service_id: str) -> List[HistoryRecord]:
        rows = cursor.execute(
            "SELECT * FROM service_instance_history WHERE service_id = ? ORDER BY stopped_at ASC",
            (service_id,),
        ).fetchall()
        return [_row_to_record(row) for row in rows]

    async def append(self, record: HistoryRecord, timeout: Optional[float] = None) -> HistoryRecord:
        """Archive ``record`` for an instance that is no longer live.

        Raises ``ConflictError`` while the instance is still in the live
        table; live instances are archived by ``InstanceStore.retire``.
        """
        with self.db.transaction("append history", timeout) as cursor:
            live = cursor.execute(
                "SELECT 1 FROM service_instances WHERE instance_id = ?",
                (record.instance_id,),
            ).fetchone()
            if live is not None:
                raise ConflictError(f"instance {record.instance_id} is live; retire it instead")
            self.insert(cursor, record)
        logger.info("Archived instance %s as %s", record.instance_id, record.history_id)
        return record

    async def list_for_instance(self, instance_id: str, timeout: Optional[float] = None) -> List[HistoryRecord]:
        """Return the records of one instance (empty, or exactly one)."""
        with self.db.transaction("list instance history", timeout, write=False) as cursor:
            record = self.find_for_instance(cursor, instance_id)
        return [record] if record is not None else []

    async def list_for_service(
        self,
        service_id: str,
        limit: int = 100,
        offset: int = 0,
        timeout: Optional[float] = None,
    ) -> List[HistoryRecord]:
        """Return archived instances of a service, most recently retired first."""
        with self.db.transaction("list service history", timeout, write=False) as cursor:
            rows = cursor.execute(
                """
                SELECT * FROM service_instance_history
                WHERE service_id = ?
                ORDER BY stopped_at DESC
                LIMIT ? OFFSET ?
                """,
                (service_id, limit, offset),
            ).fetchall()
        return [_row_to_record(row) for row in rows]


def _row_to_record(row: sqlite3.Row) -> HistoryRecord:
    data = dict(row)
    data["metrics"] = json.loads(data["metrics"]) if data["metrics"] else {}
    return HistoryRecord.model_validate(data)
