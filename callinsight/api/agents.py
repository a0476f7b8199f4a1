"""Agent API endpoints"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from callinsight.database import get_db
from callinsight.metrics.registry import AGENT_PERFORMANCE
from callinsight.metrics.service import MetricsService, get_metrics_service
from callinsight.models.tenant import Agent
from callinsight.ownership import OwnershipGuard, ResourceType, get_ownership_guard
from callinsight.providers.elevenlabs import ElevenLabsClient, get_elevenlabs_client
from callinsight.schemas.agent import AgentConfigRequest, AgentConfigResponse, AgentResponse
from callinsight.schemas.auth import Principal
from callinsight.schemas.metrics import MetricResponse
from callinsight.api.auth import get_current_principal, verify_tenant_access

router = APIRouter()
logger = structlog.get_logger()


@router.get("", response_model=List[AgentResponse])
async def list_agents(
    tenant_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """List agents for a tenant"""
    await verify_tenant_access(tenant_id, principal)

    result = await db.execute(
        select(Agent).where(Agent.tenant_id == tenant_id).order_by(Agent.name)
    )
    return result.scalars().all()


@router.get("/{agent_id}/analytics", response_model=MetricResponse)
async def get_agent_analytics(
    tenant_id: UUID,
    agent_id: str,
    days: int = Query(30, ge=1, le=365),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    guard: OwnershipGuard = Depends(get_ownership_guard),
    metrics: MetricsService = Depends(get_metrics_service),
):
    """Get performance metrics for one agent"""
    await verify_tenant_access(tenant_id, principal)

    agent = await guard.authorize(db, tenant_id, ResourceType.AGENT, agent_id)

    return await metrics.read(tenant_id, AGENT_PERFORMANCE, days=days, agent_id=agent.id)


@router.post("/provider-configs", response_model=AgentConfigResponse)
async def fetch_provider_configs(
    tenant_id: UUID,
    request: AgentConfigRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    guard: OwnershipGuard = Depends(get_ownership_guard),
    client: ElevenLabsClient = Depends(get_elevenlabs_client),
):
    """Fetch provider configurations for several of the tenant's agents"""
    await verify_tenant_access(tenant_id, principal)

    agents = await guard.authorize_many(
        db, tenant_id, ResourceType.PROVIDER_AGENT, request.agent_ids
    )

    results = await client.fetch_agent_configs([agent.external_agent_id for agent in agents])
    succeeded = sum(1 for r in results if r.success)

    logger.info(
        "Provider configs fetched",
        tenant_id=str(tenant_id),
        succeeded=succeeded,
        failed=len(results) - succeeded,
    )

    return AgentConfigResponse(
        results=results,
        succeeded=succeeded,
        failed=len(results) - succeeded,
    )
