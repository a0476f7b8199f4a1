"""Call schemas"""

from datetime import datetime
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel

from callinsight.schemas.analysis import CallAnalysisResponse


class CallResponse(BaseModel):
    """Call detail response"""
    id: UUID
    tenant_id: UUID
    agent_id: UUID
    contact_id: Optional[UUID] = None
    external_conversation_id: str
    phone_number: Optional[str] = None
    called_number: Optional[str] = None
    caller_name: Optional[str] = None
    caller_email: Optional[str] = None
    call_source: str
    status: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    summary_title: Optional[str] = None
    analysis_status: str
    analysis_error: Optional[str] = None
    analysis: Optional[CallAnalysisResponse] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CallListResponse(BaseModel):
    """Paginated call list response"""
    items: List[CallResponse]
    total: int
    page: int
    page_size: int
    pages: int
