"""
Service instance endpoints for API v1.

Instances are created under a registered service, report health and
usage, and are retired with ``DELETE``.  Retiring archives the instance
before removing it; afterwards the instance is only visible through its
history record.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status

from directory_service.app.api.deps import get_directory, get_timeout
from directory_service.app.schemas.history import HistoryRecord
from directory_service.app.schemas.instance import (
    HealthReport,
    HealthUpdate,
    InstanceCreate,
    InstanceRead,
    UsageReport,
)
from directory_service.app.services import Directory

router = APIRouter()


@router.post("/", response_model=InstanceRead, status_code=status.HTTP_201_CREATED)
async def create_service_instance(
    instance: InstanceCreate,
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> InstanceRead:
    """Create an instance of an existing service.

    The instance starts in the ``starting`` health state.  Returns HTTP
    404 if ``service_id`` is not registered.
    """
    return await directory.instances.create(instance, timeout=timeout)


@router.get("/{instance_id}", response_model=InstanceRead)
async def get_service_instance(
    instance_id: UUID,
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> InstanceRead:
    """Retrieve a live instance.  Retired instances return 404."""
    return await directory.instances.get(str(instance_id), timeout=timeout)


@router.delete("/{instance_id}", status_code=status.HTTP_204_NO_CONTENT)
async def retire_service_instance(
    instance_id: UUID,
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> None:
    """Retire an instance.

    Returns 204 on success and 404 if the instance is not live (also on
    a repeated call).  503 responses are safe to retry.
    """
    await directory.instances.retire(str(instance_id), timeout=timeout)
    return None


@router.get("/{instance_id}/history", response_model=List[HistoryRecord])
async def get_instance_history(
    instance_id: UUID,
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> List[HistoryRecord]:
    """History of one instance: empty while live, one record once retired."""
    return await directory.archive.list_for_instance(str(instance_id), timeout=timeout)


@router.put("/{instance_id}/health", response_model=InstanceRead)
async def update_instance_health(
    instance_id: UUID,
    update: HealthUpdate,
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> InstanceRead:
    """Set the health of a live instance.  ``starting`` is rejected with 422."""
    return await directory.health.update_health(str(instance_id), update.status, timeout=timeout)


@router.post("/{instance_id}/health-check", response_model=HealthReport)
async def perform_instance_health_check(
    instance_id: UUID,
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> HealthReport:
    """Probe the instance endpoint and store the result."""
    result = await directory.health.perform_health_check(str(instance_id), timeout=timeout)
    return HealthReport(status=result, checked=1)


@router.post("/{instance_id}/usage", response_model=InstanceRead)
async def record_instance_usage(
    instance_id: UUID,
    report: UsageReport,
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> InstanceRead:
    """Add a batch of served transactions to the instance's counters."""
    return await directory.instances.record_usage(str(instance_id), report, timeout=timeout)
