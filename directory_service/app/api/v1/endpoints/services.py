"""
Service endpoints for API v1.

These routes register, update, list and delete services, and expose
the service‑level parts of the client contract: aggregated health,
health checks across all live instances, usage statistics and the
history of retired instances.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from directory_service.app.api.deps import get_directory, get_timeout
from directory_service.app.schemas.history import HistoryRecord
from directory_service.app.schemas.instance import HealthReport, HealthUpdate, InstanceRead
from directory_service.app.schemas.service import ServiceCreate, ServiceRead, ServiceUpdate
from directory_service.app.schemas.statistics import ServiceStatistics
from directory_service.app.services import Directory

router = APIRouter()


@router.post("/", response_model=ServiceRead, status_code=status.HTTP_201_CREATED)
async def register_service(
    service: ServiceCreate,
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> ServiceRead:
    """Register a new service.

    ``service_id`` is generated when omitted.  Returns HTTP 409 if the
    given ``service_id`` is already registered.
    """
    return await directory.services.register(service, timeout=timeout)


@router.get("/", response_model=List[ServiceRead])
async def list_services(
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> List[ServiceRead]:
    return await directory.services.list(timeout=timeout)


@router.get("/{service_id}", response_model=ServiceRead)
async def get_service(
    service_id: UUID,
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> ServiceRead:
    """Retrieve a single service by its ID.  Raises 404 if not found."""
    return await directory.services.get(str(service_id), timeout=timeout)


@router.put("/{service_id}", response_model=ServiceRead)
async def update_service(
    service_id: UUID,
    service: ServiceUpdate,
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> ServiceRead:
    """Replace the descriptive fields of a service."""
    return await directory.services.update(str(service_id), service, timeout=timeout)


@router.delete("/{service_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_service(
    service_id: UUID,
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> None:
    """Deregister a service.

    Returns HTTP 409 while live instances or history records still
    reference it; instances are not retired automatically.
    """
    await directory.services.delete(str(service_id), timeout=timeout)
    return None


@router.get("/{service_id}/instances", response_model=List[InstanceRead])
async def list_service_instances(
    service_id: UUID,
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> List[InstanceRead]:
    return await directory.instances.list_for_service(str(service_id), timeout=timeout)


@router.get("/{service_id}/history", response_model=List[HistoryRecord])
async def list_service_history(
    service_id: UUID,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> List[HistoryRecord]:
    """Return retired instances of a service, most recent first."""
    await directory.services.get(str(service_id), timeout=timeout)
    return await directory.archive.list_for_service(str(service_id), limit=limit, offset=offset, timeout=timeout)


@router.get("/{service_id}/statistics", response_model=ServiceStatistics)
async def retrieve_statistics(
    service_id: UUID,
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> ServiceStatistics:
    """Usage statistics across live and retired instances of a service."""
    return await directory.statistics.retrieve_statistics(str(service_id), timeout=timeout)


@router.put("/{service_id}/health", response_model=HealthReport)
async def update_service_health(
    service_id: UUID,
    update: HealthUpdate,
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> HealthReport:
    """Apply one health status to every live instance of a service."""
    return await directory.health.update_service_health(str(service_id), update.status, timeout=timeout)


@router.post("/{service_id}/health-check", response_model=HealthReport)
async def perform_service_health_check(
    service_id: UUID,
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> HealthReport:
    """Probe every live instance and report the combined service health."""
    return await directory.health.check_service(str(service_id), timeout=timeout)
