#!/usr/bin/env python3
"""
Seed script to create a demo tenant with a voice agent
"""

import asyncio
import uuid


async def seed_demo_data():
    """Seed demo data for development"""
    from sqlalchemy import select

    from callinsight.database import SessionLocal, engine, Base
    from callinsight.models.tenant import Tenant, Agent

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as db:
        # Check if demo tenant already exists
        result = await db.execute(
            select(Tenant).where(Tenant.name == "Acme Solar")
        )
        existing = result.scalar_one_or_none()

        if existing:
            print("Demo data already exists. Skipping...")
            return

        print("Creating demo tenant...")

        tenant = Tenant(
            id=uuid.uuid4(),
            name="Acme Solar",
            timezone="America/New_York",
        )
        db.add(tenant)
        await db.flush()

        print(f"Created tenant: {tenant.name} (ID: {tenant.id})")

        agents = [
            Agent(
                id=uuid.uuid4(),
                tenant_id=tenant.id,
                name="Inbound Sales",
                external_agent_id="agent_demo_inbound",
            ),
            Agent(
                id=uuid.uuid4(),
                tenant_id=tenant.id,
                name="Website Assistant",
                external_agent_id="agent_demo_website",
            ),
        ]
        for agent in agents:
            db.add(agent)

        await db.commit()

        agent_lines = "\n".join(
            f"  {agent.name}: {agent.external_agent_id} (ID: {agent.id})"
            for agent in agents
        )
        print(f"""
Demo data created successfully!

Tenant: {tenant.name}
  ID: {tenant.id}

Agents:
{agent_lines}

Point the provider's post-call webhook at:
  /webhooks/elevenlabs/{tenant.id}
""")


if __name__ == "__main__":
    asyncio.run(seed_demo_data())
