"""
Liveness endpoint of the directory itself.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from directory_service.app.api.deps import get_directory, get_timeout
from directory_service.app.services import Directory

router = APIRouter()


@router.get("/health", response_model=Dict[str, Any])
async def health(
    directory: Directory = Depends(get_directory),
    timeout: Optional[float] = Depends(get_timeout),
) -> Dict[str, Any]:
    """Return ``{"status": "ok"}`` when the store answers a query.

    A store failure is reported as 503 by the application's error
    handler.
    """
    with directory.db.transaction("health", timeout, write=False) as cursor:
        cursor.execute("SELECT 1").fetchone()
    return {"status": "ok"}
