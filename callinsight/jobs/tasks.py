"""Background job tasks"""

from datetime import datetime, timedelta
import asyncio
import structlog

from callinsight.jobs.celery_app import celery_app
from callinsight.config import settings

logger = structlog.get_logger()


def run_async(coro):
    """Helper to run async functions in sync context"""
    async def _run():
        from callinsight.database import engine

        try:
            return await coro
        finally:
            # Pooled connections are bound to this event loop
            await engine.dispose()

    return asyncio.run(_run())


@celery_app.task(name="reconcile_rollups")
def reconcile_rollups(days: int = None):
    """Recompute hourly and daily rollups touched by recent calls"""
    days = days or settings.rollup_reconcile_days
    logger.info("Reconciling rollups", days=days)

    async def _reconcile():
        from callinsight.database import SessionLocal
        from callinsight.ingestion import rollups

        since = (datetime.utcnow() - timedelta(days=days)).replace(
            hour=0, minute=0, second=0, microsecond=0
        )

        async with SessionLocal() as db:
            written = await rollups.reconcile_rollups(db, since)
            await db.commit()

        return written

    return run_async(_reconcile())


@celery_app.task(name="reprocess_failed_analyses")
def reprocess_failed_analyses(limit: int = 100):
    """Retry parsing of stored analyses that failed on ingestion"""
    logger.info("Reprocessing failed analyses", limit=limit)

    async def _reprocess():
        from callinsight.database import SessionLocal
        from callinsight.ingestion.coordinator import IngestionCoordinator

        async with SessionLocal() as db:
            recovered = await IngestionCoordinator().reprocess_failed(db, limit=limit)

        logger.info("Failed analyses reprocessed", recovered=recovered)
        return recovered

    return run_async(_reprocess())
