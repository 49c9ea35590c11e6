"""
Pydantic models for service instances and their health.

``HealthStatus`` is a closed set of states.  Instances start in
``starting`` and may only move to ``up``, ``down`` or ``unknown``; the
stores refuse any transition back into ``starting``.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    STARTING = "starting"
    UP = "up"
    DOWN = "down"
    UNKNOWN = "unknown"


class InstanceBase(BaseModel):
    version: str = Field("", examples=["1.4.2"])
    host: str = Field(..., min_length=1, examples=["10.0.0.1"])
    port: int = Field(..., ge=1, le=65535, examples=[9090])
    url: Optional[str] = Field(None, examples=["http://10.0.0.1:9090/health"])
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    api_spec: Optional[str] = Field(None, description="API description document or a link to it")


class InstanceCreate(InstanceBase):
    """Schema for creating an instance under an existing service."""

    service_id: UUID


class InstanceRead(InstanceBase):
    """Schema for reading a live instance."""

    instance_id: str
    service_id: str
    health_status: HealthStatus
    transaction_count: int = 0
    average_response_time: float = 0.0
    created_at: datetime
    last_checked: datetime

    model_config = {
        "from_attributes": True,
    }


class HealthUpdate(BaseModel):
    """Body of a health update request."""

    status: HealthStatus = Field(..., examples=["up"])


class HealthReport(BaseModel):
    """Outcome of a health update or probe."""

    status: HealthStatus
    checked: int = Field(0, description="Number of live instances the status applies to")


class UsageReport(BaseModel):
    """A batch of transactions served by one instance."""

    transactions: int = Field(..., ge=1, examples=[120])
    average_response_time: float = Field(..., ge=0, description="Mean response time of the batch, in milliseconds")
