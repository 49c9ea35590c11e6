"""
Pydantic models for service data.

``ServiceBase`` holds the mutable descriptive fields shared by requests
and responses.  ``ServiceCreate`` accepts an optional caller‑chosen
``service_id``; ``ServiceUpdate`` replaces every mutable field at once;
``ServiceRead`` adds the generated identity, usage totals and
timestamps.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ServiceBase(BaseModel):
    name: str = Field(..., min_length=1, examples=["Acme API"])
    description: str = Field("", examples=["Payments gateway for Acme storefronts"])
    owner_info: str = Field("", examples=["platform-team@acme.example"])
    industry_category: str = Field("", examples=["fintech"])
    client_rating: float = Field(0.0, ge=0, le=5, examples=[4.5])


class ServiceCreate(ServiceBase):
    """Schema for registering a service.

    ``service_id`` is generated when omitted.  Supplying an identifier
    that is already registered fails with a conflict.
    """

    service_id: Optional[UUID] = None


class ServiceUpdate(ServiceBase):
    """Schema for updating a service.

    Every mutable field is replaced; omitted optional fields are reset to
    their defaults.
    """
    pass


class ServiceRead(ServiceBase):
    """Schema for reading a service from the API."""

    service_id: str
    transaction_count: int = 0
    average_response_time: float = 0.0
    created_at: datetime
    updated_at: datetime

    model_config = {
        "from_attributes": True,
    }
