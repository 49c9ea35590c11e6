"""
Pydantic model for archived instances.

A ``HistoryRecord`` is written exactly once, when an instance is
retired, and is never modified afterwards; the model is frozen to match.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class HistoryRecord(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    history_id: str
    service_id: str
    instance_id: str
    version: Optional[str] = None
    url: Optional[str] = None
    metrics: Dict[str, Any] = Field(default_factory=dict)
    started_at: datetime
    stopped_at: datetime
