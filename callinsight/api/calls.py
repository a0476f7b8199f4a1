"""Call history API endpoints"""

from typing import Optional
from uuid import UUID
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from callinsight.database import get_db
from callinsight.models.call import Call
from callinsight.ownership import OwnershipGuard, ResourceType, get_ownership_guard
from callinsight.schemas.auth import Principal
from callinsight.schemas.call import CallResponse, CallListResponse
from callinsight.api.auth import get_current_principal, verify_tenant_access

router = APIRouter()


@router.get("", response_model=CallListResponse)
async def list_calls(
    tenant_id: UUID,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: Optional[str] = None,
    call_source: Optional[str] = None,
    analysis_status: Optional[str] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """List calls for a tenant with pagination and filtering"""
    await verify_tenant_access(tenant_id, principal)

    # Build query
    filters = [Call.tenant_id == tenant_id]

    if status:
        filters.append(Call.status == status)

    if call_source:
        filters.append(Call.call_source == call_source)

    if analysis_status:
        filters.append(Call.analysis_status == analysis_status)

    if from_date:
        filters.append(Call.started_at >= from_date)

    if to_date:
        filters.append(Call.started_at <= to_date)

    # Get total count
    total_result = await db.execute(select(func.count(Call.id)).where(*filters))
    total = total_result.scalar()

    # Get paginated results
    offset = (page - 1) * page_size
    query = (
        select(Call)
        .where(*filters)
        .order_by(Call.started_at.desc())
        .offset(offset)
        .limit(page_size)
        .options(selectinload(Call.analysis))
        .execution_options(populate_existing=True)
    )

    result = await db.execute(query)
    calls = result.scalars().all()

    return CallListResponse(
        items=calls,
        total=total,
        page=page,
        page_size=page_size,
        pages=(total + page_size - 1) // page_size,
    )


@router.get("/{call_id}", response_model=CallResponse)
async def get_call(
    tenant_id: UUID,
    call_id: str,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    guard: OwnershipGuard = Depends(get_ownership_guard),
):
    """Get call details with analysis"""
    await verify_tenant_access(tenant_id, principal)

    call = await guard.authorize(db, tenant_id, ResourceType.CALL, call_id)

    result = await db.execute(
        select(Call)
        .where(Call.id == call.id, Call.tenant_id == tenant_id)
        .options(selectinload(Call.analysis))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()
