"""Call-related models"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, JSON, Text, Integer, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from callinsight.database import Base


# Lifecycle order; a stored status is only replaced by one of equal or higher rank
CALL_STATUS_RANK = {
    "initiated": 0,
    "ringing": 1,
    "in-progress": 2,
    "disconnected": 3,
    "completed": 4,
    "failed": 4,
}


class Call(Base):
    """Call records"""
    __tablename__ = "calls"
    __table_args__ = (
        UniqueConstraint("tenant_id", "external_conversation_id", name="uq_calls_tenant_conversation"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True)
    agent_id = Column(UUID(as_uuid=True), ForeignKey("agents.id"), nullable=False, index=True)
    contact_id = Column(UUID(as_uuid=True), ForeignKey("contacts.id"))

    # Provider identifiers
    external_conversation_id = Column(String(128), nullable=False)

    # Caller
    phone_number = Column(String(32))
    called_number = Column(String(32))
    caller_name = Column(String(255))
    caller_email = Column(String(255))
    call_source = Column(String(20), default="unknown")  # phone, internet, unknown

    # Timing
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    ended_at = Column(DateTime)
    duration_seconds = Column(Integer)

    # Status
    status = Column(String(50), default="initiated")  # see CALL_STATUS_RANK

    # Analysis
    analysis_status = Column(String(20), default="pending")  # pending, completed, failed
    analysis_error = Column(Text)
    raw_analysis_json = Column(JSON)
    summary_title = Column(String(255))

    # Metadata
    metadata_json = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    tenant = relationship("Tenant", back_populates="calls")
    agent = relationship("Agent", back_populates="calls")
    analysis = relationship("CallAnalysis", back_populates="call", uselist=False)


class CallAnalysis(Base):
    """Structured lead-quality analysis of one call"""
    __tablename__ = "call_analyses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    call_id = Column(UUID(as_uuid=True), ForeignKey("calls.id"), unique=True, nullable=False)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True)

    # Lead categories, scores in [0, 3]
    intent_level = Column(String(50))
    intent_score = Column(Integer)
    urgency_level = Column(String(50))
    urgency_score = Column(Integer)
    budget_constraint = Column(String(50))
    budget_score = Column(Integer)
    fit_alignment = Column(String(50))
    fit_score = Column(Integer)
    engagement_health = Column(String(50))
    engagement_score = Column(Integer)

    # Overall, in [0, 100]
    total_score = Column(Integer)
    lead_status_tag = Column(String(50))
    reasoning = Column(Text)
    category_reasoning = Column(JSON, default=dict)

    # Calls to action
    cta_pricing_clicked = Column(Boolean)
    cta_demo_clicked = Column(Boolean)
    cta_followup_clicked = Column(Boolean)
    cta_sample_clicked = Column(Boolean)
    cta_escalated_to_human = Column(Boolean)

    # Extracted lead details
    extracted_name = Column(String(255))
    extracted_email = Column(String(255))
    extracted_company = Column(String(255))
    smart_notification = Column(Text)
    demo_book_datetime = Column(String(64))

    call_successful = Column(Boolean)
    transcript_summary = Column(Text)
    call_summary_title = Column(String(255))
    analysis_source = Column(String(50))  # data collection key the analysis came from

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    call = relationship("Call", back_populates="analysis")
