"""
Service layer for usage statistics.

``StatisticsAggregator`` derives per‑service statistics from live
instances and from the metrics captured in history records when
instances were retired.  It never writes.

Transaction counts are summed.  Mean response times are combined as a
transaction‑weighted mean: each instance contributes its own mean
weighted by the number of transactions it served, so instances that
served nothing do not pull the mean towards zero.  Both tables are read
inside one read transaction so the result is a consistent snapshot.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional, Tuple

from directory_service.app.core.db import Database
from directory_service.app.core.errors import NotFoundError
from directory_service.app.schemas.instance import HealthStatus
from directory_service.app.schemas.statistics import ServiceStatistics

if TYPE_CHECKING:
    from directory_service.app.services.history_archive import HistoryArchive
    from directory_service.app.services.instance_store import InstanceStore


def combine_means(samples: Iterable[Tuple[int, float]]) -> float:
    """Weighted mean of ``(count, mean)`` pairs; ``0.0`` when no count is positive."""
    total = 0
    weighted = 0.0
    for count, mean in samples:
        if count <= 0:
            continue
        total += count
        weighted += count * mean
    return weighted / total if total else 0.0


class StatisticsAggregator:
    """Read‑only statistics over instances and their history."""

    def __init__(self, db: Database, instances: "InstanceStore", archive: "HistoryArchive") -> None:
        self.db = db
        self.instances = instances
        self.archive = archive

    async def retrieve_statistics(self, service_id: str, timeout: Optional[float] = None) -> ServiceStatistics:
        """Return the usage statistics of one service.

        Raises ``NotFoundError`` if the service does not exist.  A service
        without instances yields zero‑valued statistics.
        """
        with self.db.transaction("retrieve statistics", timeout, write=False) as cursor:
            service = cursor.execute(
                "SELECT 1 FROM services WHERE service_id = ?",
                (service_id,),
            ).fetchone()
            if service is None:
                raise NotFoundError("service", service_id)
            live = self.instances.instances_for_service(cursor, service_id)
            archived = self.archive.records_for_service(cursor, service_id)

        samples = [(instance.transaction_count, instance.average_response_time) for instance in live]
        samples.extend(
            (
                int(record.metrics.get("transaction_count", 0)),
                float(record.metrics.get("average_response_time", 0.0)),
            )
            for record in archived
        )
        details: Dict[str, Any] = {
            "live_instances": len(live),
            "retired_instances": len(archived),
        }
        for status in HealthStatus:
            details[f"instances_{status.value}"] = sum(
                1 for instance in live if instance.health_status is status
            )
        return ServiceStatistics(
            service_id=service_id,
            transaction_count=sum(count for count, _ in samples),
            average_response_time=combine_means(samples),
            details=details,
        )
