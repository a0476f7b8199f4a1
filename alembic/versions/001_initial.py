"""Initial migration

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create tenants table
    op.create_table(
        'tenants',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('timezone', sa.String(50), default='UTC'),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Create agents table
    op.create_table(
        'agents',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('external_agent_id', sa.String(128), unique=True, nullable=False),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Create contacts table
    op.create_table(
        'contacts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('phone_number', sa.String(32), nullable=False),
        sa.Column('name', sa.String(255)),
        sa.Column('email', sa.String(255)),
        sa.Column('last_call_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
        sa.UniqueConstraint('tenant_id', 'phone_number', name='uq_contacts_tenant_phone'),
    )

    # Create calls table
    op.create_table(
        'calls',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('agent_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('agents.id'), nullable=False),
        sa.Column('contact_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('contacts.id')),
        sa.Column('external_conversation_id', sa.String(128), nullable=False),
        sa.Column('phone_number', sa.String(32)),
        sa.Column('called_number', sa.String(32)),
        sa.Column('caller_name', sa.String(255)),
        sa.Column('caller_email', sa.String(255)),
        sa.Column('call_source', sa.String(20), default='unknown'),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('ended_at', sa.DateTime()),
        sa.Column('duration_seconds', sa.Integer()),
        sa.Column('status', sa.String(50), default='initiated'),
        sa.Column('analysis_status', sa.String(20), default='pending'),
        sa.Column('analysis_error', sa.Text()),
        sa.Column('raw_analysis_json', postgresql.JSON()),
        sa.Column('summary_title', sa.String(255)),
        sa.Column('metadata_json', postgresql.JSON(), default={}),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
        sa.UniqueConstraint('tenant_id', 'external_conversation_id', name='uq_calls_tenant_conversation'),
    )

    # Create call_analyses table
    op.create_table(
        'call_analyses',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('call_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('calls.id'), unique=True, nullable=False),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('intent_level', sa.String(50)),
        sa.Column('intent_score', sa.Integer()),
        sa.Column('urgency_level', sa.String(50)),
        sa.Column('urgency_score', sa.Integer()),
        sa.Column('budget_constraint', sa.String(50)),
        sa.Column('budget_score', sa.Integer()),
        sa.Column('fit_alignment', sa.String(50)),
        sa.Column('fit_score', sa.Integer()),
        sa.Column('engagement_health', sa.String(50)),
        sa.Column('engagement_score', sa.Integer()),
        sa.Column('total_score', sa.Integer()),
        sa.Column('lead_status_tag', sa.String(50)),
        sa.Column('reasoning', sa.Text()),
        sa.Column('category_reasoning', postgresql.JSON(), default={}),
        sa.Column('cta_pricing_clicked', sa.Boolean()),
        sa.Column('cta_demo_clicked', sa.Boolean()),
        sa.Column('cta_followup_clicked', sa.Boolean()),
        sa.Column('cta_sample_clicked', sa.Boolean()),
        sa.Column('cta_escalated_to_human', sa.Boolean()),
        sa.Column('extracted_name', sa.String(255)),
        sa.Column('extracted_email', sa.String(255)),
        sa.Column('extracted_company', sa.String(255)),
        sa.Column('smart_notification', sa.Text()),
        sa.Column('demo_book_datetime', sa.String(64)),
        sa.Column('call_successful', sa.Boolean()),
        sa.Column('transcript_summary', sa.Text()),
        sa.Column('call_summary_title', sa.String(255)),
        sa.Column('analysis_source', sa.String(50)),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Create call_rollups table
    op.create_table(
        'call_rollups',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('period_type', sa.String(10), nullable=False),
        sa.Column('period_start', sa.DateTime(), nullable=False),
        sa.Column('total_calls', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('successful_calls', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed_calls', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_duration_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('leads_total', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('leads_hot', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('leads_warm', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('leads_cold', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('qualified_leads', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cta_pricing', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cta_demo', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cta_followup', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cta_sample', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cta_escalated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
        sa.UniqueConstraint('tenant_id', 'period_type', 'period_start', name='uq_call_rollups_period'),
    )

    # Create indexes
    op.create_index('ix_agents_tenant_id', 'agents', ['tenant_id'])
    op.create_index('ix_calls_tenant_id', 'calls', ['tenant_id'])
    op.create_index('ix_calls_agent_id', 'calls', ['agent_id'])
    op.create_index('ix_calls_tenant_started_at', 'calls', ['tenant_id', 'started_at'])
    op.create_index('ix_calls_analysis_status', 'calls', ['analysis_status'])
    op.create_index('ix_call_analyses_tenant_id', 'call_analyses', ['tenant_id'])


def downgrade() -> None:
    op.drop_table('call_rollups')
    op.drop_table('call_analyses')
    op.drop_table('calls')
    op.drop_table('contacts')
    op.drop_table('agents')
    op.drop_table('tenants')
