"""Dashboard metric schemas"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID
from pydantic import BaseModel


class MetricResponse(BaseModel):
    """Metric value with freshness information"""
    metric: str
    tenant_id: UUID
    value: Any = None
    computed_at: Optional[datetime] = None
    stale: bool = False  # served from an expired entry
    partial: bool = False  # no value available within the read ceiling
