"""Tests for background jobs"""

import asyncio
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from callinsight import database
from callinsight.database import Base
from callinsight.jobs import tasks
from callinsight.jobs.celery_app import celery_app
from callinsight.models.call import Call
from callinsight.models.rollup import CallRollup
from callinsight.models.tenant import Tenant, Agent


@pytest.fixture
def job_database(tmp_path, monkeypatch, sqlite_savepoints):
    """Point the job session factory at a scratch SQLite database"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}", echo=False)
    sqlite_savepoints(engine)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "SessionLocal", factory)

    async def create():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()

    asyncio.run(create())
    return factory


def run(factory, work):
    async def _run():
        try:
            async with factory() as db:
                return await work(db)
        finally:
            await database.engine.dispose()

    return asyncio.run(_run())


def seed_calls(factory, **call_fields):
    async def work(db):
        tenant = Tenant(id=uuid4(), name="Acme Solar")
        agent = Agent(id=uuid4(), tenant_id=tenant.id, name="Inbound", external_agent_id="agent_jobs")
        call = Call(
            id=uuid4(),
            tenant_id=tenant.id,
            agent_id=agent.id,
            external_conversation_id="conv_job",
            started_at=datetime.utcnow() - timedelta(hours=1),
            status="completed",
            duration_seconds=90,
            **call_fields,
        )
        db.add_all([tenant, agent, call])
        await db.commit()
        return call.id

    return run(factory, work)


def test_beat_schedule():
    schedule = celery_app.conf.beat_schedule

    assert schedule["reconcile-rollups"]["task"] == "reconcile_rollups"
    assert schedule["reprocess-failed-analyses"]["task"] == "reprocess_failed_analyses"


def test_reconcile_rollups_task(job_database):
    seed_calls(job_database)

    written = tasks.reconcile_rollups(days=1)

    assert written == 2

    async def work(db):
        return (await db.execute(select(CallRollup).order_by(CallRollup.period_type))).scalars().all()

    rollups = run(job_database, work)
    assert [r.period_type for r in rollups] == ["day", "hour"]
    assert all(r.total_calls == 1 for r in rollups)


def test_reprocess_failed_analyses_task(job_database):
    analysis = {
        "call_successful": "success",
        "data_collection_results": {
            "default": {"value": "{'total_score': 72, 'cta_demo_clicked': 'yes'}"},
        },
    }
    call_id = seed_calls(
        job_database,
        analysis_status="failed",
        analysis_error="No analysis data found",
        raw_analysis_json=analysis,
    )

    recovered = tasks.reprocess_failed_analyses(limit=10)

    assert recovered == 1

    async def work(db):
        call = (await db.execute(select(Call).where(Call.id == call_id))).scalar_one()
        rollup = (
            await db.execute(select(CallRollup).where(CallRollup.period_type == "day"))
        ).scalar_one()
        return call, rollup

    call, rollup = run(job_database, work)
    assert call.analysis_status == "completed"
    assert call.analysis_error is None
    assert rollup.leads_hot == 1
    assert rollup.cta_demo == 1
