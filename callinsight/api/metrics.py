"""Dashboard metrics API endpoints"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from callinsight.database import get_db
from callinsight.metrics.registry import METRICS
from callinsight.metrics.service import MetricsService, get_metrics_service
from callinsight.ownership import OwnershipGuard, ResourceType, get_ownership_guard
from callinsight.schemas.auth import Principal
from callinsight.schemas.metrics import MetricResponse
from callinsight.api.auth import get_current_principal, verify_tenant_access

router = APIRouter()


@router.get("")
async def list_metrics(
    tenant_id: UUID,
    principal: Principal = Depends(get_current_principal),
):
    """List available metrics"""
    await verify_tenant_access(tenant_id, principal)

    return {
        "metrics": [
            {
                "name": definition.name,
                "ttl_seconds": definition.ttl,
                "requires_agent": definition.requires_agent,
            }
            for definition in METRICS.values()
        ]
    }


@router.get("/{metric}", response_model=MetricResponse)
async def get_metric(
    tenant_id: UUID,
    metric: str,
    days: int = Query(30, ge=1, le=365),
    agent_id: Optional[str] = None,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    guard: OwnershipGuard = Depends(get_ownership_guard),
    metrics: MetricsService = Depends(get_metrics_service),
):
    """Get a dashboard metric with its computed_at timestamp"""
    await verify_tenant_access(tenant_id, principal)

    definition = METRICS.get(metric)
    if definition is None:
        raise HTTPException(status_code=404, detail="Metric not found")

    agent_uuid = None
    if definition.requires_agent:
        if agent_id is None:
            raise HTTPException(status_code=422, detail=f"{metric} requires agent_id")
        agent = await guard.authorize(db, tenant_id, ResourceType.AGENT, agent_id)
        agent_uuid = agent.id

    return await metrics.read(tenant_id, metric, days=days, agent_id=agent_uuid)
