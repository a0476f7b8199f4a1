"""Cached, time-bounded dashboard metric reads"""

import asyncio
from typing import Optional
from uuid import UUID

import structlog
from fastapi import Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from callinsight.cache import CacheKey, TenantCache, get_cache
from callinsight.config import settings
from callinsight.database import get_session_factory
from callinsight.errors import CacheMiss
from callinsight.metrics.queries import MetricQuery
from callinsight.metrics.registry import MetricDefinition, get_metric
from callinsight.schemas.metrics import MetricResponse

logger = structlog.get_logger()


def _log_background_failure(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("Metric computation failed", error=str(error))


class MetricsService:
    """
    Serves metrics from the tenant cache, recomputing on a miss.

    A read never waits longer than ``read_timeout``: a recomputation that
    overruns keeps running in the background to fill the cache, and the
    caller gets the expired entry (``stale``) or no value (``partial``).
    """

    def __init__(
        self,
        cache: TenantCache,
        session_factory: async_sessionmaker,
        read_timeout: Optional[float] = None,
        wait_timeout: Optional[float] = None,
    ):
        self.cache = cache
        self.session_factory = session_factory
        self.read_timeout = settings.dashboard_read_timeout_seconds if read_timeout is None else read_timeout
        self.wait_timeout = settings.cache_wait_timeout_seconds if wait_timeout is None else wait_timeout

    @staticmethod
    def cache_key(definition: MetricDefinition, query: MetricQuery) -> CacheKey:
        if definition.requires_agent:
            return (query.tenant_id, definition.name, query.agent_id, query.days)
        if definition.windowed:
            return (query.tenant_id, definition.name, query.days)
        return (query.tenant_id, definition.name)

    async def _compute(self, definition: MetricDefinition, query: MetricQuery):
        async with self.session_factory() as db:
            return await definition.compute(db, query)

    async def read(
        self,
        tenant_id: UUID,
        metric: str,
        days: int = 30,
        agent_id: Optional[UUID] = None,
    ) -> MetricResponse:
        """Raises KeyError for unknown metrics and ValueError for a missing agent_id"""
        definition = get_metric(metric)
        if definition.requires_agent and agent_id is None:
            raise ValueError(f"{metric} requires agent_id")

        query = MetricQuery(
            tenant_id=tenant_id,
            days=days,
            agent_id=agent_id if definition.requires_agent else None,
        )
        key = self.cache_key(definition, query)

        try:
            entry = self.cache.get(key)
            return MetricResponse(
                metric=metric,
                tenant_id=tenant_id,
                value=entry.value,
                computed_at=entry.computed_at,
            )
        except CacheMiss:
            pass

        task = asyncio.ensure_future(
            self.cache.get_or_compute(
                key,
                lambda: self._compute(definition, query),
                ttl=definition.ttl,
                wait_timeout=self.wait_timeout,
            )
        )
        task.add_done_callback(_log_background_failure)

        try:
            entry = await asyncio.wait_for(asyncio.shield(task), timeout=self.read_timeout)
        except asyncio.TimeoutError:
            logger.warning("Metric read exceeded ceiling", tenant_id=str(tenant_id), metric=metric)
        except Exception as e:
            logger.error("Metric read failed", tenant_id=str(tenant_id), metric=metric, error=str(e))
        else:
            return MetricResponse(
                metric=metric,
                tenant_id=tenant_id,
                value=entry.value,
                computed_at=entry.computed_at,
            )

        stale = self.cache.peek(key)
        if stale is not None:
            return MetricResponse(
                metric=metric,
                tenant_id=tenant_id,
                value=stale.value,
                computed_at=stale.computed_at,
                stale=True,
            )
        return MetricResponse(metric=metric, tenant_id=tenant_id, partial=True)


def get_metrics_service(
    cache: TenantCache = Depends(get_cache),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> MetricsService:
    """FastAPI dependency"""
    return MetricsService(cache, session_factory)
