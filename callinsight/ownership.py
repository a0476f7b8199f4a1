"""Tenant ownership checks for resource identifiers"""

import re
from enum import Enum
from typing import Any, Iterable, List
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from callinsight.errors import AccessDenied, InvalidResourceId
from callinsight.models.call import Call
from callinsight.models.tenant import Agent, Contact

logger = structlog.get_logger()

PROVIDER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-]{1,128}$")


class ResourceType(str, Enum):
    AGENT = "agent"
    CALL = "call"
    CONTACT = "contact"
    PROVIDER_AGENT = "provider_agent"


def parse_uuid(value: Any, label: str) -> UUID:
    if isinstance(value, UUID):
        return value
    if not isinstance(value, str):
        raise InvalidResourceId(label)
    try:
        return UUID(value)
    except ValueError:
        raise InvalidResourceId(label) from None


class OwnershipGuard:
    """
    Confirms a resource belongs to the acting tenant before it is read or written.

    Identifier shape is validated before touching the database. Each check is
    a single query filtering on both the identifier and the tenant, and a
    foreign resource is indistinguishable from a missing one. Decisions are
    never cached.
    """

    def _parse_id(self, resource_type: ResourceType, resource_id: Any):
        if resource_type == ResourceType.PROVIDER_AGENT:
            if isinstance(resource_id, str) and PROVIDER_ID_PATTERN.match(resource_id):
                return resource_id
            raise InvalidResourceId(resource_type.value)
        return parse_uuid(resource_id, resource_type.value)

    def _statement(self, resource_type: ResourceType, tenant_id: UUID, resource_id):
        if resource_type == ResourceType.AGENT:
            return select(Agent).where(Agent.id == resource_id, Agent.tenant_id == tenant_id)
        if resource_type == ResourceType.PROVIDER_AGENT:
            return select(Agent).where(
                Agent.external_agent_id == resource_id,
                Agent.tenant_id == tenant_id,
            )
        if resource_type == ResourceType.CALL:
            # A call is only visible when its agent belongs to the same tenant
            return (
                select(Call)
                .join(Agent, Call.agent_id == Agent.id)
                .where(
                    Call.id == resource_id,
                    Call.tenant_id == tenant_id,
                    Agent.tenant_id == tenant_id,
                )
            )
        if resource_type == ResourceType.CONTACT:
            return select(Contact).where(Contact.id == resource_id, Contact.tenant_id == tenant_id)
        raise ValueError(f"Unknown resource type: {resource_type}")

    async def authorize(
        self,
        db: AsyncSession,
        tenant_id: Any,
        resource_type: ResourceType,
        resource_id: Any,
    ):
        """Return the resource if it belongs to ``tenant_id``, else raise AccessDenied"""
        resource_type = ResourceType(resource_type)
        tenant_uuid = parse_uuid(tenant_id, "tenant")
        parsed_id = self._parse_id(resource_type, resource_id)

        result = await db.execute(self._statement(resource_type, tenant_uuid, parsed_id))
        resource = result.scalar_one_or_none()

        if resource is None:
            logger.warning(
                "Ownership check denied",
                tenant_id=str(tenant_uuid),
                resource_type=resource_type.value,
            )
            raise AccessDenied()

        return resource

    async def authorize_many(
        self,
        db: AsyncSession,
        tenant_id: Any,
        resource_type: ResourceType,
        resource_ids: Iterable[Any],
    ) -> List[Any]:
        """Check every identifier individually; the first failure aborts"""
        resources = []
        for resource_id in resource_ids:
            resources.append(await self.authorize(db, tenant_id, resource_type, resource_id))
        return resources


ownership_guard = OwnershipGuard()


def get_ownership_guard() -> OwnershipGuard:
    """FastAPI dependency"""
    return ownership_guard
