"""Tests for hourly and daily rollups"""

from datetime import datetime
from unittest.mock import patch
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.dialects import postgresql

from callinsight.ingestion import rollups
from callinsight.ingestion.rollups import (
    PERIOD_DAY,
    PERIOD_HOUR,
    affected_periods,
    period_row,
    period_start,
    reconcile_rollups,
    refresh_rollups,
)
from callinsight.models.call import Call, CallAnalysis
from callinsight.models.rollup import CallRollup


def make_call(tenant, agent, started_at, status="completed", duration=60, score=None, **cta):
    call = Call(
        id=uuid4(),
        tenant_id=tenant.id,
        agent_id=agent.id,
        external_conversation_id=f"conv_{uuid4().hex[:8]}",
        started_at=started_at,
        status=status,
        duration_seconds=duration,
    )
    if score is not None or cta:
        call.analysis = CallAnalysis(tenant_id=tenant.id, total_score=score, **cta)
    return call


async def get_rollup(db, tenant_id, period_type, start):
    result = await db.execute(
        select(CallRollup)
        .where(
            CallRollup.tenant_id == tenant_id,
            CallRollup.period_type == period_type,
            CallRollup.period_start == start,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def test_period_start():
    ts = datetime(2024, 6, 10, 14, 35, 12)

    assert period_start(ts, PERIOD_HOUR) == datetime(2024, 6, 10, 14)
    assert period_start(ts, PERIOD_DAY) == datetime(2024, 6, 10)


def test_affected_periods_deduplicates():
    periods = affected_periods(
        [datetime(2024, 6, 10, 14, 5), datetime(2024, 6, 10, 14, 50), None, datetime(2024, 6, 11, 1)]
    )

    assert periods == [
        (PERIOD_DAY, datetime(2024, 6, 10)),
        (PERIOD_DAY, datetime(2024, 6, 11)),
        (PERIOD_HOUR, datetime(2024, 6, 10, 14)),
        (PERIOD_HOUR, datetime(2024, 6, 11, 1)),
    ]


async def test_refresh_counts_calls_and_leads(test_db, test_tenant, test_agent):
    day = datetime(2024, 6, 10)
    test_db.add_all(
        [
            make_call(test_tenant, test_agent, datetime(2024, 6, 10, 9, 5), score=85, cta_demo_clicked=True),
            make_call(test_tenant, test_agent, datetime(2024, 6, 10, 9, 40), score=55, cta_pricing_clicked=True),
            make_call(test_tenant, test_agent, datetime(2024, 6, 10, 16), status="failed", duration=5, score=10),
            make_call(test_tenant, test_agent, datetime(2024, 6, 10, 17), status="in-progress", duration=None),
        ]
    )
    await test_db.commit()

    ok = await refresh_rollups(
        test_db, test_tenant.id, [datetime(2024, 6, 10, 9, 5), datetime(2024, 6, 10, 16)]
    )
    await test_db.commit()

    assert ok is True

    daily = await get_rollup(test_db, test_tenant.id, PERIOD_DAY, day)
    assert daily.total_calls == 4
    assert daily.successful_calls == 2
    assert daily.failed_calls == 1
    assert daily.total_duration_seconds == 125
    assert daily.leads_total == 3
    assert (daily.leads_hot, daily.leads_warm, daily.leads_cold) == (1, 1, 1)
    assert daily.qualified_leads == 1
    assert daily.cta_demo == 1
    assert daily.cta_pricing == 1
    assert daily.cta_followup == 0

    hourly = await get_rollup(test_db, test_tenant.id, PERIOD_HOUR, datetime(2024, 6, 10, 9))
    assert hourly.total_calls == 2

    # The 17:00 hour was not touched
    assert await get_rollup(test_db, test_tenant.id, PERIOD_HOUR, datetime(2024, 6, 10, 17)) is None


async def test_refresh_is_idempotent(test_db, test_tenant, test_agent):
    started = datetime(2024, 6, 10, 9, 5)
    test_db.add(make_call(test_tenant, test_agent, started, score=90))
    await test_db.commit()

    for _ in range(3):
        assert await refresh_rollups(test_db, test_tenant.id, [started])
        await test_db.commit()

    daily = await get_rollup(test_db, test_tenant.id, PERIOD_DAY, datetime(2024, 6, 10))
    assert daily.total_calls == 1
    assert daily.leads_hot == 1


async def test_rollups_scoped_to_tenant(test_db, test_tenant, test_agent, other_tenant, other_agent):
    started = datetime(2024, 6, 10, 9, 5)
    test_db.add_all(
        [
            make_call(test_tenant, test_agent, started),
            make_call(other_tenant, other_agent, started),
            make_call(other_tenant, other_agent, started),
        ]
    )
    await test_db.commit()

    await refresh_rollups(test_db, test_tenant.id, [started])
    await test_db.commit()

    daily = await get_rollup(test_db, test_tenant.id, PERIOD_DAY, datetime(2024, 6, 10))
    assert daily.total_calls == 1
    assert await get_rollup(test_db, other_tenant.id, PERIOD_DAY, datetime(2024, 6, 10)) is None


async def test_missing_tenant_skipped(test_db):
    assert await refresh_rollups(test_db, None, [datetime(2024, 6, 10)]) is False


async def test_failure_contained(test_db, test_tenant, test_agent):
    started = datetime(2024, 6, 10, 9, 5)
    call = make_call(test_tenant, test_agent, started)
    test_db.add(call)
    await test_db.commit()

    with patch.object(rollups, "upsert_period", side_effect=RuntimeError("boom")):
        ok = await refresh_rollups(test_db, test_tenant.id, [started])

    assert ok is False

    # Enclosing transaction is still usable
    result = await test_db.execute(select(Call.id).where(Call.id == call.id))
    assert result.scalar_one() == call.id


async def test_reconcile_rebuilds_periods(test_db, test_tenant, test_agent, other_tenant, other_agent):
    test_db.add_all(
        [
            make_call(test_tenant, test_agent, datetime(2024, 6, 10, 9, 5), score=80),
            make_call(test_tenant, test_agent, datetime(2024, 6, 11, 10, 0)),
            make_call(other_tenant, other_agent, datetime(2024, 6, 11, 10, 30)),
            make_call(test_tenant, test_agent, datetime(2024, 5, 1, 10, 0)),
        ]
    )
    await test_db.commit()

    written = await reconcile_rollups(test_db, datetime(2024, 6, 10))
    await test_db.commit()

    # Two days and two hours for the first tenant, one of each for the other
    assert written == 6

    daily = await get_rollup(test_db, test_tenant.id, PERIOD_DAY, datetime(2024, 6, 10))
    assert daily.leads_hot == 1
    assert await get_rollup(test_db, test_tenant.id, PERIOD_DAY, datetime(2024, 5, 1)) is None


def test_period_row_is_locked_on_postgresql():
    stmt = period_row(uuid4(), PERIOD_DAY, datetime(2024, 6, 10))

    sql = str(stmt.compile(dialect=postgresql.dialect()))

    assert "FOR UPDATE" in sql


async def test_refresh_overwrites_stale_row(test_db, test_tenant, test_agent):
    started = datetime(2024, 6, 10, 9, 5)
    test_db.add_all(
        [
            make_call(test_tenant, test_agent, started),
            make_call(test_tenant, test_agent, datetime(2024, 6, 10, 9, 30)),
            CallRollup(
                tenant_id=test_tenant.id,
                period_type=PERIOD_DAY,
                period_start=datetime(2024, 6, 10),
                total_calls=1,
            ),
        ]
    )
    await test_db.commit()

    assert await refresh_rollups(test_db, test_tenant.id, [started])
    await test_db.commit()

    daily = await get_rollup(test_db, test_tenant.id, PERIOD_DAY, datetime(2024, 6, 10))
    assert daily.total_calls == 2
    assert daily.successful_calls == 2
