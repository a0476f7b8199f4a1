"""Hourly and daily call rollups, recomputed from raw rows"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from callinsight.database import dialect_name
from callinsight.errors import RollupError
from callinsight.models.call import Call, CallAnalysis
from callinsight.models.rollup import CallRollup

logger = structlog.get_logger()

PERIOD_HOUR = "hour"
PERIOD_DAY = "day"
PERIOD_LENGTHS = {
    PERIOD_HOUR: timedelta(hours=1),
    PERIOD_DAY: timedelta(days=1),
}

HOT_LEAD_SCORE = 70
WARM_LEAD_SCORE = 40

Period = Tuple[str, datetime]


def period_start(timestamp: datetime, period_type: str) -> datetime:
    """Start of the hour or day containing ``timestamp``"""
    if period_type == PERIOD_HOUR:
        return timestamp.replace(minute=0, second=0, microsecond=0)
    if period_type == PERIOD_DAY:
        return timestamp.replace(hour=0, minute=0, second=0, microsecond=0)
    raise ValueError(f"Unknown period type: {period_type}")


def affected_periods(timestamps: Iterable[Optional[datetime]]) -> List[Period]:
    """Every hour and day period touched by the given timestamps"""
    periods: Set[Period] = set()
    for timestamp in timestamps:
        if timestamp is None:
            continue
        for period_type in PERIOD_LENGTHS:
            periods.add((period_type, period_start(timestamp, period_type)))
    return sorted(periods, key=lambda p: (p[0], p[1]))


def _insert(db: AsyncSession):
    dialect = dialect_name(db)
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RollupError(f"Upserts are not supported on {dialect}")
    return insert


def _count_if(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


async def compute_period(
    db: AsyncSession,
    tenant_id: Any,
    period_type: str,
    start: datetime,
) -> Dict[str, int]:
    """Re-sum one period from calls and analyses"""
    end = start + PERIOD_LENGTHS[period_type]
    score = CallAnalysis.total_score

    stmt = (
        select(
            func.count(Call.id).label("total_calls"),
            _count_if(Call.status == "completed").label("successful_calls"),
            _count_if(Call.status == "failed").label("failed_calls"),
            func.coalesce(func.sum(Call.duration_seconds), 0).label("total_duration_seconds"),
            _count_if(score.isnot(None)).label("leads_total"),
            _count_if(score >= HOT_LEAD_SCORE).label("leads_hot"),
            _count_if((score >= WARM_LEAD_SCORE) & (score < HOT_LEAD_SCORE)).label("leads_warm"),
            _count_if(score < WARM_LEAD_SCORE).label("leads_cold"),
            _count_if(CallAnalysis.cta_pricing_clicked.is_(True)).label("cta_pricing"),
            _count_if(CallAnalysis.cta_demo_clicked.is_(True)).label("cta_demo"),
            _count_if(CallAnalysis.cta_followup_clicked.is_(True)).label("cta_followup"),
            _count_if(CallAnalysis.cta_sample_clicked.is_(True)).label("cta_sample"),
            _count_if(CallAnalysis.cta_escalated_to_human.is_(True)).label("cta_escalated"),
        )
        .select_from(Call)
        .outerjoin(CallAnalysis, CallAnalysis.call_id == Call.id)
        .where(
            Call.tenant_id == tenant_id,
            Call.started_at >= start,
            Call.started_at < end,
        )
    )

    row = (await db.execute(stmt)).one()
    totals = {key: int(value or 0) for key, value in row._mapping.items()}
    totals["qualified_leads"] = totals["leads_hot"]
    return totals


def period_row(tenant_id: Any, period_type: str, start: datetime):
    """SELECT ... FOR UPDATE of one rollup row"""
    return (
        select(CallRollup.id)
        .where(
            CallRollup.tenant_id == tenant_id,
            CallRollup.period_type == period_type,
            CallRollup.period_start == start,
        )
        .with_for_update()
    )


async def lock_period(
    db: AsyncSession,
    tenant_id: Any,
    period_type: str,
    start: datetime,
) -> None:
    """
    Make sure the rollup row exists and hold its row lock until the
    transaction ends.

    Writers of the same period queue up here, so the re-sum that follows
    runs only after the previous writer committed and sees its calls.
    """
    insert = _insert(db)
    stmt = insert(CallRollup).values(
        tenant_id=tenant_id,
        period_type=period_type,
        period_start=start,
        updated_at=datetime.utcnow(),
    )
    await db.execute(
        stmt.on_conflict_do_nothing(index_elements=["tenant_id", "period_type", "period_start"])
    )
    await db.execute(period_row(tenant_id, period_type, start))


async def upsert_period(
    db: AsyncSession,
    tenant_id: Any,
    period_type: str,
    start: datetime,
) -> Dict[str, int]:
    """Lock one period, recompute it and write the totals"""
    await lock_period(db, tenant_id, period_type, start)
    totals = await compute_period(db, tenant_id, period_type, start)

    rollups = CallRollup.__table__
    await db.execute(
        update(rollups)
        .where(
            rollups.c.tenant_id == tenant_id,
            rollups.c.period_type == period_type,
            rollups.c.period_start == start,
        )
        .values(updated_at=datetime.utcnow(), **totals)
    )
    return totals


async def refresh_rollups(
    db: AsyncSession,
    tenant_id: Any,
    timestamps: Iterable[Optional[datetime]],
) -> bool:
    """
    Bring the rollups of every period touched by ``timestamps`` back in line
    with the raw rows.

    Runs inside a savepoint of the caller's transaction. Failures are logged
    and contained: the savepoint is rolled back and False is returned, the
    enclosing ingestion carries on.
    """
    timestamps = list(timestamps)

    if tenant_id is None:
        logger.warning("Skipping rollup refresh for call without tenant")
        return False

    periods = affected_periods(timestamps)
    if not periods:
        return True

    try:
        async with db.begin_nested():
            for period_type, start in periods:
                await upsert_period(db, tenant_id, period_type, start)
    except Exception as e:
        logger.error(
            "Rollup refresh failed",
            tenant_id=str(tenant_id),
            periods=[f"{p}:{s.isoformat()}" for p, s in periods],
            timestamps=[t.isoformat() for t in timestamps if t is not None],
            error=str(e),
        )
        return False

    return True


async def reconcile_rollups(db: AsyncSession, since: datetime) -> int:
    """Recompute every period touched by calls started since ``since``; returns periods written"""
    result = await db.execute(
        select(Call.tenant_id, Call.started_at).where(Call.started_at >= since)
    )

    by_tenant: Dict[Any, Set[datetime]] = {}
    for tenant_id, started_at in result.all():
        by_tenant.setdefault(tenant_id, set()).add(started_at)

    written = 0
    for tenant_id, timestamps in by_tenant.items():
        for period_type, start in affected_periods(timestamps):
            await upsert_period(db, tenant_id, period_type, start)
            written += 1

    logger.info("Rollups reconciled", tenants=len(by_tenant), periods=written, since=since.isoformat())
    return written
