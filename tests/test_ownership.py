"""Tests for tenant ownership checks"""

import pytest
from unittest.mock import AsyncMock
from uuid import uuid4

from callinsight.errors import AccessDenied, InvalidResourceId
from callinsight.models.call import Call
from callinsight.ownership import OwnershipGuard, ResourceType


@pytest.fixture
def guard():
    return OwnershipGuard()


async def test_own_agent_allowed(guard, test_db, test_tenant, test_agent):
    """Test an agent of the acting tenant is returned"""
    agent = await guard.authorize(test_db, test_tenant.id, ResourceType.AGENT, str(test_agent.id))

    assert agent.id == test_agent.id


async def test_provider_agent_lookup(guard, test_db, test_tenant, test_agent):
    """Test agents can be looked up by provider id"""
    agent = await guard.authorize(test_db, test_tenant.id, ResourceType.PROVIDER_AGENT, "agent_abc123")

    assert agent.id == test_agent.id


async def test_foreign_agent_denied(guard, test_db, test_tenant, other_agent):
    """Test another tenant's agent looks like a missing one"""
    with pytest.raises(AccessDenied) as foreign:
        await guard.authorize(test_db, test_tenant.id, ResourceType.AGENT, str(other_agent.id))

    with pytest.raises(AccessDenied) as missing:
        await guard.authorize(test_db, test_tenant.id, ResourceType.AGENT, str(uuid4()))

    assert str(foreign.value) == str(missing.value)


async def test_foreign_provider_agent_denied(guard, test_db, test_tenant, other_agent):
    with pytest.raises(AccessDenied):
        await guard.authorize(test_db, test_tenant.id, ResourceType.PROVIDER_AGENT, "agent_other999")


async def test_call_requires_same_tenant_agent(guard, test_db, test_tenant, test_agent, other_agent):
    """Test a call row pointing at a foreign agent is not visible"""
    own_call = Call(
        id=uuid4(),
        tenant_id=test_tenant.id,
        agent_id=test_agent.id,
        external_conversation_id="conv_own",
    )
    mismatched = Call(
        id=uuid4(),
        tenant_id=test_tenant.id,
        agent_id=other_agent.id,
        external_conversation_id="conv_mismatched",
    )
    test_db.add_all([own_call, mismatched])
    await test_db.commit()

    call = await guard.authorize(test_db, test_tenant.id, ResourceType.CALL, str(own_call.id))
    assert call.id == own_call.id

    with pytest.raises(AccessDenied):
        await guard.authorize(test_db, test_tenant.id, ResourceType.CALL, str(mismatched.id))


async def test_malformed_id_rejected_before_query(guard):
    """Test identifier shape is checked without touching the database"""
    db = AsyncMock()

    with pytest.raises(InvalidResourceId):
        await guard.authorize(db, uuid4(), ResourceType.CALL, "not-a-uuid")

    with pytest.raises(InvalidResourceId):
        await guard.authorize(db, uuid4(), ResourceType.PROVIDER_AGENT, "agent/../../etc")

    with pytest.raises(InvalidResourceId):
        await guard.authorize(db, "tenant-1", ResourceType.AGENT, str(uuid4()))

    with pytest.raises(InvalidResourceId):
        await guard.authorize(db, uuid4(), ResourceType.AGENT, "'; DROP TABLE x; --")

    db.execute.assert_not_called()


async def test_authorize_many_stops_at_first_denial(guard, test_db, test_tenant, test_agent, other_agent):
    agents = await guard.authorize_many(
        test_db, test_tenant.id, ResourceType.PROVIDER_AGENT, ["agent_abc123"]
    )
    assert [a.id for a in agents] == [test_agent.id]

    with pytest.raises(AccessDenied):
        await guard.authorize_many(
            test_db,
            test_tenant.id,
            ResourceType.PROVIDER_AGENT,
            ["agent_abc123", "agent_other999"],
        )
