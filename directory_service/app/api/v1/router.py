"""
Top‑level router for version 1 of the API.

This router aggregates the entity routers (services, service instances)
and the directory's own liveness endpoint under a unified prefix.  When
new endpoints are added, update this file to include their routers.
"""

from fastapi import APIRouter

from .endpoints import instances, services, status

router = APIRouter()

router.include_router(services.router, prefix="/services", tags=["services"])
router.include_router(instances.router, prefix="/service-instances", tags=["service-instances"])
router.include_router(status.router, tags=["status"])
