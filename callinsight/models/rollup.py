"""Pre-aggregated call statistics"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from callinsight.database import Base


class CallRollup(Base):
    """Per tenant totals for one hour or one day of calls"""
    __tablename__ = "call_rollups"
    __table_args__ = (
        UniqueConstraint("tenant_id", "period_type", "period_start", name="uq_call_rollups_period"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False)
    period_type = Column(String(10), nullable=False)  # hour, day
    period_start = Column(DateTime, nullable=False)

    # Calls
    total_calls = Column(Integer, nullable=False, default=0)
    successful_calls = Column(Integer, nullable=False, default=0)
    failed_calls = Column(Integer, nullable=False, default=0)
    total_duration_seconds = Column(Integer, nullable=False, default=0)

    # Leads
    leads_total = Column(Integer, nullable=False, default=0)
    leads_hot = Column(Integer, nullable=False, default=0)
    leads_warm = Column(Integer, nullable=False, default=0)
    leads_cold = Column(Integer, nullable=False, default=0)
    qualified_leads = Column(Integer, nullable=False, default=0)

    # Calls to action
    cta_pricing = Column(Integer, nullable=False, default=0)
    cta_demo = Column(Integer, nullable=False, default=0)
    cta_followup = Column(Integer, nullable=False, default=0)
    cta_sample = Column(Integer, nullable=False, default=0)
    cta_escalated = Column(Integer, nullable=False, default=0)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
