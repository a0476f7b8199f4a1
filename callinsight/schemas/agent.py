"""Agent schemas"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID
from pydantic import BaseModel, Field


class AgentResponse(BaseModel):
    """Agent response"""
    id: UUID
    tenant_id: UUID
    name: str
    external_agent_id: str
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AgentConfigRequest(BaseModel):
    """Bulk provider configuration lookup"""
    agent_ids: List[str] = Field(..., min_length=1, max_length=100)


class AgentConfigResult(BaseModel):
    """Outcome of fetching one agent's provider configuration"""
    agent_id: str
    success: bool
    config: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class AgentConfigResponse(BaseModel):
    """Bulk provider configuration response"""
    results: List[AgentConfigResult]
    succeeded: int
    failed: int
