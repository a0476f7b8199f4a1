"""Call analysis schemas"""

from datetime import datetime
from typing import Optional, Dict
from uuid import UUID
from pydantic import BaseModel


class ParsedAnalysis(BaseModel):
    """Lead analysis extracted from a post-call webhook"""
    intent_level: Optional[str] = None
    intent_score: Optional[int] = None
    urgency_level: Optional[str] = None
    urgency_score: Optional[int] = None
    budget_constraint: Optional[str] = None
    budget_score: Optional[int] = None
    fit_alignment: Optional[str] = None
    fit_score: Optional[int] = None
    engagement_health: Optional[str] = None
    engagement_score: Optional[int] = None

    total_score: Optional[int] = None
    lead_status_tag: Optional[str] = None
    reasoning: Optional[str] = None
    category_reasoning: Dict[str, str] = {}

    cta_pricing_clicked: Optional[bool] = None
    cta_demo_clicked: Optional[bool] = None
    cta_followup_clicked: Optional[bool] = None
    cta_sample_clicked: Optional[bool] = None
    cta_escalated_to_human: Optional[bool] = None

    extracted_name: Optional[str] = None
    extracted_email: Optional[str] = None
    extracted_company: Optional[str] = None
    smart_notification: Optional[str] = None
    demo_book_datetime: Optional[str] = None

    call_successful: Optional[bool] = None
    transcript_summary: Optional[str] = None
    call_summary_title: Optional[str] = None
    analysis_source: Optional[str] = None


class CallAnalysisResponse(ParsedAnalysis):
    """Stored call analysis"""
    id: UUID
    call_id: UUID
    category_reasoning: Optional[Dict[str, str]] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
