"""
Pydantic model for per‑service usage statistics.
"""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class ServiceStatistics(BaseModel):
    """Point‑in‑time usage statistics of one service.

    ``average_response_time`` is in milliseconds.  ``details`` carries
    additional named metrics (instance counts by state, and so on).
    """

    model_config = ConfigDict(frozen=True)

    service_id: str
    transaction_count: int = 0
    average_response_time: float = 0.0
    details: Dict[str, Any] = Field(default_factory=dict)
