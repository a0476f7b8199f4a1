"""Test configuration and fixtures"""

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from uuid import uuid4

from callinsight.main import app
from callinsight.cache import TenantCache, get_cache
from callinsight.config import settings
from callinsight.database import Base, get_db, get_session_factory
from callinsight.models.tenant import Tenant, Agent
from callinsight.schemas.auth import UserRole


def _sqlite_savepoints(engine):
    """Let SQLAlchemy own BEGIN so SAVEPOINTs nest properly on SQLite"""

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture
def sqlite_savepoints():
    return _sqlite_savepoints


@pytest.fixture
async def test_engine(tmp_path):
    """Create a file backed SQLite database shared by every session of a test"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    _sqlite_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(session_factory):
    """Create test database session"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def test_cache():
    """Fresh metric cache per test"""
    return TenantCache(max_entries=100, default_ttl=60)


@pytest.fixture
async def test_tenant(test_db):
    """Create a test tenant"""
    tenant = Tenant(
        id=uuid4(),
        name="Acme Solar",
        timezone="America/New_York",
    )
    test_db.add(tenant)
    await test_db.commit()

    return tenant


@pytest.fixture
async def test_agent(test_db, test_tenant):
    """Create an agent for the test tenant"""
    agent = Agent(
        id=uuid4(),
        tenant_id=test_tenant.id,
        name="Inbound Sales",
        external_agent_id="agent_abc123",
    )
    test_db.add(agent)
    await test_db.commit()

    return agent


@pytest.fixture
async def other_tenant(test_db):
    """Create a second tenant"""
    tenant = Tenant(
        id=uuid4(),
        name="Other Company",
        timezone="Europe/London",
    )
    test_db.add(tenant)
    await test_db.commit()

    return tenant


@pytest.fixture
async def other_agent(test_db, other_tenant):
    """Create an agent owned by the second tenant"""
    agent = Agent(
        id=uuid4(),
        tenant_id=other_tenant.id,
        name="Other Agent",
        external_agent_id="agent_other999",
    )
    test_db.add(agent)
    await test_db.commit()

    return agent


def create_access_token(tenant_id=None, role=UserRole.TENANT_ADMIN, token_type="access"):
    """Sign a token the way the identity service does"""
    payload = {
        "sub": str(uuid4()),
        "tenant_id": str(tenant_id) if tenant_id else None,
        "role": role.value,
        "type": token_type,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


@pytest.fixture
async def client(session_factory, test_cache):
    """Create test client with overridden database and cache"""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_cache] = lambda: test_cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def authenticated_client(client, test_tenant):
    """Create client authenticated as an admin of the test tenant"""
    token = create_access_token(test_tenant.id)
    client.headers["Authorization"] = f"Bearer {token}"

    return client


@pytest.fixture
async def admin_client(client):
    """Create super admin authenticated test client"""
    token = create_access_token(role=UserRole.SUPER_ADMIN)
    client.headers["Authorization"] = f"Bearer {token}"

    return client


def build_webhook_payload(
    conversation_id="conv_001",
    agent_id="agent_abc123",
    caller_id="+15551234567",
    call_type=None,
    analysis_value=None,
    status="done",
    start_time=1718000000,
    duration=125,
    **dynamic,
):
    """Wrapped post-call transcription payload"""
    variables = {"system__conversation_id": conversation_id, "system__agent_id": agent_id}
    if caller_id is not None:
        variables["system__caller_id"] = caller_id
    if call_type is not None:
        variables["system__call_type"] = call_type
    variables.update(dynamic)

    if analysis_value is None:
        analysis_value = (
            "{'intent_level': 'High', 'intent_score': 3, 'urgency_level': 'Medium', "
            "'urgency_score': 2, 'budget_constraint': 'Flexible', 'budget_score': 3, "
            "'fit_alignment': 'Strong', 'fit_score': 3, 'engagement_health': 'Good', "
            "'engagement_score': 2, 'total_score': 87, 'lead_status_tag': 'Hot', "
            "'cta_pricing_clicked': 'Yes', 'cta_demo_clicked': True, "
            "'cta_followup_clicked': 'No', 'cta_sample_clicked': None, "
            "'cta_escalated_to_human': False, 'reasoning': 'Ready to buy'}"
        )

    return {
        "type": "post_call_transcription",
        "event_timestamp": start_time + duration,
        "data": {
            "agent_id": agent_id,
            "conversation_id": conversation_id,
            "status": status,
            "metadata": {
                "start_time_unix_secs": start_time,
                "call_duration_secs": duration,
            },
            "analysis": {
                "call_successful": "success",
                "transcript_summary": "Caller asked about pricing.",
                "call_summary_title": "Pricing inquiry",
                "data_collection_results": {
                    "default": {"value": analysis_value},
                },
            },
            "conversation_initiation_client_data": {
                "dynamic_variables": variables,
            },
        },
    }


@pytest.fixture
def webhook_payload():
    """Builder for post-call webhook payloads"""
    return build_webhook_payload


@pytest.fixture
def make_token():
    """Builder for signed access tokens"""
    return create_access_token
