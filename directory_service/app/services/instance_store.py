"""
Service layer for live service instances.

``InstanceStore`` exclusively owns the ``service_instances`` table:
instances are created under an existing service, looked up, updated
with health and usage data, and finally retired.

Retirement hands the instance over to ``HistoryArchive``.  The history
record is written first and the live row is deleted second, both inside
one ``BEGIN IMMEDIATE`` transaction, so an instance is always either
live or archived:

* if anything fails before the commit, neither write survives and the
  instance stays live and unchanged; retrying is safe;
* a concurrent retire of the same instance waits for the write lock and
  then finds no live row (``NotFoundError``);
* a history record written for a live instance outside this store (an
  orphan: archived but still live, e.g. left by a direct database
  import) is reused instead of archived again.  If the
  delete cannot be completed in that situation the caller gets
  ``OrphanPendingError`` and a retry finishes the job.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from typing import List, Optional

from directory_service.app.core.db import Database, to_db_time, utcnow
from directory_service.app.core.errors import (
    NotFoundError,
    OrphanPendingError,
    StorageError,
    ValidationError,
)
from directory_service.app.schemas.history import HistoryRecord
from directory_service.app.schemas.instance import (
    HealthStatus,
    InstanceCreate,
    InstanceRead,
    UsageReport,
)
from directory_service.app.services.history_archive import HistoryArchive
from directory_service.app.services.statistics_service import combine_means

logger = logging.getLogger(__name__)


class InstanceStore:
    """Creation, lookup and retirement of ``ServiceInstance`` records."""

    def __init__(self, db: Database, archive: HistoryArchive) -> None:
        self.db = db
        self.archive = archive

    async def create(self, data: InstanceCreate, timeout: Optional[float] = None) -> InstanceRead:
        """Create an instance in the ``starting`` state and return it.

        Raises ``NotFoundError`` if the referenced service does not exist.
        """
        service_id = str(data.service_id)
        instance_id = str(uuid.uuid4())
        now = to_db_time(utcnow())
        with self.db.transaction("create instance", timeout) as cursor:
            service = cursor.execute(
                "SELECT 1 FROM services WHERE service_id = ?",
                (service_id,),
            ).fetchone()
            if service is None:
                raise NotFoundError("service", service_id)
            cursor.execute(
                """
                INSERT INTO service_instances (
                    instance_id, service_id, version, host, port, url, api_spec,
                    latitude, longitude, health_status, created_at, last_checked
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    instance_id,
                    service_id,
                    data.version,
                    data.host,
                    data.port,
                    data.url,
                    data.api_spec,
                    data.latitude,
                    data.longitude,
                    HealthStatus.STARTING.value,
                    now,
                    now,
                ),
            )
            row = _fetch(cursor, instance_id)
        logger.info("Created instance %s of service %s at %s:%s", instance_id, service_id, data.host, data.port)
        return _row_to_instance(row)

    async def get(self, instance_id: str, timeout: Optional[float] = None) -> InstanceRead:
        """Retrieve a live instance; retired or unknown IDs raise ``NotFoundError``."""
        with self.db.transaction("get instance", timeout, write=False) as cursor:
            row = _fetch(cursor, instance_id)
        if row is None:
            raise NotFoundError("instance", instance_id)
        return _row_to_instance(row)

    async def list_for_service(self, service_id: str, timeout: Optional[float] = None) -> List[InstanceRead]:
        """Return the live instances of a service, oldest first."""
        with self.db.transaction("list instances", timeout, write=False) as cursor:
            service = cursor.execute(
                "SELECT 1 FROM services WHERE service_id = ?",
                (service_id,),
            ).fetchone()
            if service is None:
                raise NotFoundError("service", service_id)
            return self.instances_for_service(cursor, service_id)

    def instances_for_service(self, cursor: sqlite3.Cursor, service_id: str) -> List[InstanceRead]:
        rows = cursor.execute(
            "SELECT * FROM service_instances WHERE service_id = ? ORDER BY created_at ASC",
            (service_id,),
        ).fetchall()
        return [_row_to_instance(row) for row in rows]

    async def set_health(
        self,
        instance_id: str,
        status: HealthStatus,
        timeout: Optional[float] = None,
    ) -> InstanceRead:
        """Store a new health status and ``last_checked`` timestamp.

        Writes are ordered by ``last_checked``: a write carrying an older
        timestamp than the stored one is dropped, so the latest check wins.
        """
        if status is HealthStatus.STARTING:
            raise ValidationError("an instance cannot return to the 'starting' state")
        checked_at = to_db_time(utcnow())
        with self.db.transaction("update instance health", timeout) as cursor:
            current = _fetch(cursor, instance_id)
            if current is None:
                raise NotFoundError("instance", instance_id)
            cursor.execute(
                """
                UPDATE service_instances
                SET health_status = ?, last_checked = ?
                WHERE instance_id = ? AND last_checked <= ?
                """,
                (status.value, checked_at, instance_id, checked_at),
            )
            if cursor.rowcount == 0:
                logger.debug("Dropped stale health update for instance %s", instance_id)
            row = _fetch(cursor, instance_id)
        if current["health_status"] != row["health_status"]:
            logger.info(
                "Instance %s health %s -> %s",
                instance_id,
                current["health_status"],
                row["health_status"],
            )
        return _row_to_instance(row)

    async def record_usage(
        self,
        instance_id: str,
        report: UsageReport,
        timeout: Optional[float] = None,
    ) -> InstanceRead:
        """Add a batch of served transactions to an instance.

        The instance's and its service's counters and mean response
        times are updated together.
        """
        with self.db.transaction("record usage", timeout) as cursor:
            row = _fetch(cursor, instance_id)
            if row is None:
                raise NotFoundError("instance", instance_id)
            count, mean = _fold(row, report)
            cursor.execute(
                """
                UPDATE service_instances
                SET transaction_count = ?, average_response_time = ?
                WHERE instance_id = ?
                """,
                (count, mean, instance_id),
            )
            service = cursor.execute(
                "SELECT transaction_count, average_response_time FROM services WHERE service_id = ?",
                (row["service_id"],),
            ).fetchone()
            service_count, service_mean = _fold(service, report)
            cursor.execute(
                """
                UPDATE services
                SET transaction_count = ?, average_response_time = ?
                WHERE service_id = ?
                """,
                (service_count, service_mean, row["service_id"]),
            )
            row = _fetch(cursor, instance_id)
        return _row_to_instance(row)

    async def retire(self, instance_id: str, timeout: Optional[float] = None) -> HistoryRecord:
        """Archive an instance and remove it from the live table.

        Returns the history record.  Raises ``NotFoundError`` when the
        instance is not live (including a second retire of the same ID),
        ``StorageError`` when nothing could be committed, and
        ``OrphanPendingError`` when the instance is already archived but
        its live row could not be removed.
        """
        orphan: Optional[HistoryRecord] = None
        try:
            with self.db.transaction("retire instance", timeout) as cursor:
                row = _fetch(cursor, instance_id)
                if row is None:
                    raise NotFoundError("instance", instance_id)
                instance = _row_to_instance(row)
                orphan = self.archive.find_for_instance(cursor, instance_id)
                if orphan is not None:
                    logger.warning(
                        "Instance %s already archived as %s; completing removal",
                        instance_id,
                        orphan.history_id,
                    )
                    record = orphan
                else:
                    record = self.archive.insert(cursor, compose_history(instance))
                # The archive write above must precede this delete.
                cursor.execute("DELETE FROM service_instances WHERE instance_id = ?", (instance_id,))
                if cursor.rowcount != 1:
                    raise NotFoundError("instance", instance_id)
        except StorageError as exc:
            if orphan is not None:
                raise OrphanPendingError(instance_id, orphan.history_id, exc) from exc
            raise
        logger.info(
            "Retired instance %s of service %s (history %s, last health %s)",
            instance_id,
            record.service_id,
            record.history_id,
            record.metrics.get("health_status"),
        )
        return record


def compose_history(instance: InstanceRead) -> HistoryRecord:
    """Snapshot a live instance as its terminal history record."""
    # stopped_at never precedes started_at, even if the clock stepped back.
    stopped_at = max(utcnow(), instance.created_at)
    return HistoryRecord(
        history_id=str(uuid.uuid4()),
        service_id=instance.service_id,
        instance_id=instance.instance_id,
        version=instance.version,
        url=instance.url,
        metrics={
            "health_status": instance.health_status.value,
            "transaction_count": instance.transaction_count,
            "average_response_time": instance.average_response_time,
        },
        started_at=instance.created_at,
        stopped_at=stopped_at,
    )


def _fold(row: sqlite3.Row, report: UsageReport) -> tuple[int, float]:
    count = row["transaction_count"] + report.transactions
    mean = combine_means(
        [
            (row["transaction_count"], row["average_response_time"]),
            (report.transactions, report.average_response_time),
        ]
    )
    return count, mean


def _fetch(cursor: sqlite3.Cursor, instance_id: str) -> Optional[sqlite3.Row]:
    return cursor.execute(
        "SELECT * FROM service_instances WHERE instance_id = ?",
        (instance_id,),
    ).fetchone()


def _row_to_instance(row: sqlite3.Row) -> InstanceRead:
    return InstanceRead.model_validate(dict(row))
