"""Dashboard metric queries"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from callinsight.ingestion.rollups import HOT_LEAD_SCORE, PERIOD_DAY
from callinsight.models.call import Call, CallAnalysis
from callinsight.models.rollup import CallRollup
from callinsight.models.tenant import Agent

ACTIVE_STATUSES = ("initiated", "ringing", "in-progress")

ROLLUP_TOTALS = (
    "total_calls",
    "successful_calls",
    "failed_calls",
    "total_duration_seconds",
    "leads_total",
    "leads_hot",
    "leads_warm",
    "leads_cold",
    "qualified_leads",
    "cta_pricing",
    "cta_demo",
    "cta_followup",
    "cta_sample",
    "cta_escalated",
)

CTA_COLUMNS = ("cta_pricing", "cta_demo", "cta_followup", "cta_sample", "cta_escalated")


@dataclass(frozen=True)
class MetricQuery:
    tenant_id: UUID
    days: int = 30
    agent_id: Optional[UUID] = None

    def window_start(self, now: Optional[datetime] = None) -> datetime:
        """First day of the requested window, inclusive"""
        today = (now or datetime.utcnow()).replace(hour=0, minute=0, second=0, microsecond=0)
        return today - timedelta(days=self.days - 1)


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


async def _daily_rollups(db: AsyncSession, query: MetricQuery) -> List[CallRollup]:
    result = await db.execute(
        select(CallRollup)
        .where(
            CallRollup.tenant_id == query.tenant_id,
            CallRollup.period_type == PERIOD_DAY,
            CallRollup.period_start >= query.window_start(),
        )
        .order_by(CallRollup.period_start)
    )
    return list(result.scalars().all())


def _sum_rollups(rows: List[CallRollup]) -> Dict[str, int]:
    totals = {name: 0 for name in ROLLUP_TOTALS}
    for row in rows:
        for name in ROLLUP_TOTALS:
            totals[name] += getattr(row, name) or 0
    return totals


async def live_calls(db: AsyncSession, query: MetricQuery) -> Dict[str, Any]:
    """Calls in progress and today's volume, read from raw calls"""
    today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)

    result = await db.execute(
        select(
            func.coalesce(func.sum(case((Call.status.in_(ACTIVE_STATUSES), 1), else_=0)), 0),
            func.coalesce(func.sum(case((Call.started_at >= today, 1), else_=0)), 0),
            func.max(Call.started_at),
        ).where(Call.tenant_id == query.tenant_id)
    )
    active, today_count, last_call_at = result.one()

    return {
        "active_calls": int(active or 0),
        "calls_today": int(today_count or 0),
        "last_call_at": last_call_at.isoformat() if last_call_at else None,
    }


async def call_summary(db: AsyncSession, query: MetricQuery) -> Dict[str, Any]:
    """Call volume and outcomes for the window, from daily rollups"""
    rows = await _daily_rollups(db, query)
    totals = _sum_rollups(rows)
    total = totals["total_calls"]

    return {
        "days": query.days,
        "total_calls": total,
        "successful_calls": totals["successful_calls"],
        "failed_calls": totals["failed_calls"],
        "success_rate": _rate(totals["successful_calls"], total),
        "total_duration_seconds": totals["total_duration_seconds"],
        "avg_duration_seconds": round(totals["total_duration_seconds"] / total, 1) if total else 0.0,
        "daily": [
            {
                "date": row.period_start.date().isoformat(),
                "total_calls": row.total_calls,
                "successful_calls": row.successful_calls,
                "failed_calls": row.failed_calls,
            }
            for row in rows
        ],
    }


async def lead_quality(db: AsyncSession, query: MetricQuery) -> Dict[str, Any]:
    """Lead buckets for the window, from daily rollups"""
    totals = _sum_rollups(await _daily_rollups(db, query))
    leads = totals["leads_total"]

    return {
        "days": query.days,
        "leads_total": leads,
        "hot": totals["leads_hot"],
        "warm": totals["leads_warm"],
        "cold": totals["leads_cold"],
        "qualified_leads": totals["qualified_leads"],
        "qualification_rate": _rate(totals["qualified_leads"], leads),
    }


async def cta_summary(db: AsyncSession, query: MetricQuery) -> Dict[str, Any]:
    """Call-to-action counts for the window, from daily rollups"""
    totals = _sum_rollups(await _daily_rollups(db, query))
    interactions = sum(totals[name] for name in CTA_COLUMNS)

    summary = {name: totals[name] for name in CTA_COLUMNS}
    summary.update(
        days=query.days,
        total_interactions=interactions,
        interaction_rate=_rate(interactions, totals["leads_total"]),
    )
    return summary


async def agent_performance(db: AsyncSession, query: MetricQuery) -> Dict[str, Any]:
    """Per agent call and lead statistics, read from raw calls"""
    score = CallAnalysis.total_score

    result = await db.execute(
        select(
            func.count(Call.id),
            func.coalesce(func.sum(case((Call.status == "completed", 1), else_=0)), 0),
            func.coalesce(func.sum(case((Call.status == "failed", 1), else_=0)), 0),
            func.avg(Call.duration_seconds),
            func.avg(score),
            func.coalesce(func.sum(case((score >= HOT_LEAD_SCORE, 1), else_=0)), 0),
            func.coalesce(func.sum(case((Call.analysis_status == "failed", 1), else_=0)), 0),
        )
        .select_from(Call)
        .outerjoin(CallAnalysis, CallAnalysis.call_id == Call.id)
        .where(
            Call.tenant_id == query.tenant_id,
            Call.agent_id == query.agent_id,
            Call.started_at >= query.window_start(),
        )
    )
    total, completed, failed, avg_duration, avg_score, hot, analysis_failed = result.one()
    total = int(total or 0)

    return {
        "agent_id": str(query.agent_id),
        "days": query.days,
        "total_calls": total,
        "successful_calls": int(completed or 0),
        "failed_calls": int(failed or 0),
        "success_rate": _rate(int(completed or 0), total),
        "avg_duration_seconds": round(float(avg_duration), 1) if avg_duration is not None else None,
        "avg_lead_score": round(float(avg_score), 1) if avg_score is not None else None,
        "qualified_leads": int(hot or 0),
        "analysis_failures": int(analysis_failed or 0),
    }


async def agents(db: AsyncSession, query: MetricQuery) -> List[Dict[str, Any]]:
    """Agent reference data"""
    result = await db.execute(
        select(Agent).where(Agent.tenant_id == query.tenant_id).order_by(Agent.name)
    )
    return [
        {
            "id": str(agent.id),
            "name": agent.name,
            "external_agent_id": agent.external_agent_id,
            "is_active": agent.is_active,
        }
        for agent in result.scalars().all()
    ]
