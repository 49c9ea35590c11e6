"""
Service layer of the directory.

Each component encapsulates the logic for one entity and receives the
``Database`` handle it works on explicitly.  ``Directory`` wires the
components together once per process; API handlers reach it through
``request.app.state.directory``.
"""

from dataclasses import dataclass
from typing import Optional

from directory_service.app.core.config import Settings
from directory_service.app.core.db import Database
from directory_service.app.services.health_monitor import HealthMonitor, HealthProbe
from directory_service.app.services.history_archive import HistoryArchive
from directory_service.app.services.instance_store import InstanceStore
from directory_service.app.services.service_store import ServiceStore
from directory_service.app.services.statistics_service import StatisticsAggregator


@dataclass
class Directory:
    """All directory components sharing one store handle."""

    db: Database
    services: ServiceStore
    instances: InstanceStore
    archive: HistoryArchive
    health: HealthMonitor
    statistics: StatisticsAggregator

    @classmethod
    def build(cls, db: Database, probe: Optional[HealthProbe] = None) -> "Directory":
        archive = HistoryArchive(db)
        instances = InstanceStore(db, archive)
        return cls(
            db=db,
            services=ServiceStore(db),
            instances=instances,
            archive=archive,
            health=HealthMonitor(instances, probe or HealthProbe()),
            statistics=StatisticsAggregator(db, instances, archive),
        )

    @classmethod
    def from_settings(cls, settings: Settings, db: Optional[Database] = None) -> "Directory":
        probe = HealthProbe(timeout=settings.health_check_timeout, health_path=settings.health_check_path)
        return cls.build(db or Database.from_settings(settings), probe)
