"""Form hierarchy baseline

Revision ID: 0001_form_hierarchy
Revises:
Create Date: 2025-06-02

- form_categories / form_types / form_templates / form_instances
- (type_id, name, version) unique key drives template versioning
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_form_hierarchy'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('created_by', sa.String(100), nullable=False),
        sa.Column('updated_by', sa.String(100), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'form_categories',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tenant_id', sa.String(100), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), server_default='active', nullable=False),
        *_audit_columns(),
        sa.UniqueConstraint('tenant_id', 'name', name='uq_form_category_name'),
    )
    op.create_index('idx_form_categories_tenant_status', 'form_categories', ['tenant_id', 'status'])

    op.create_table(
        'form_types',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('category_id', sa.Uuid(), sa.ForeignKey('form_categories.id'), nullable=False),
        sa.Column('tenant_id', sa.String(100), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('business_rules', postgresql.JSONB(), server_default='[]', nullable=False),
        sa.Column('status', sa.String(20), server_default='active', nullable=False),
        *_audit_columns(),
        sa.UniqueConstraint('category_id', 'name', name='uq_form_type_name'),
    )
    op.create_index('idx_form_types_category_status', 'form_types', ['category_id', 'status'])

    op.create_table(
        'form_templates',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('type_id', sa.Uuid(), sa.ForeignKey('form_types.id'), nullable=False),
        sa.Column('tenant_id', sa.String(100), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('questions', postgresql.JSONB(), nullable=False),
        sa.Column('workflow', postgresql.JSONB(), nullable=False),
        sa.Column('due_date_calculation', postgresql.JSONB(), nullable=True),
        sa.Column('reminder_frequency', postgresql.JSONB(), nullable=True),
        sa.Column('auto_assignment_rules', postgresql.JSONB(), nullable=True),
        sa.Column('status', sa.String(20), server_default='active', nullable=False),
        sa.Column('effective_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expiration_date', sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
        sa.UniqueConstraint('type_id', 'name', 'version', name='uq_form_template_version'),
        sa.CheckConstraint('version >= 1', name='ck_form_template_version_positive'),
    )
    op.create_index('idx_form_templates_type_name', 'form_templates', ['type_id', 'name'])

    op.create_table(
        'form_instances',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('template_id', sa.Uuid(), sa.ForeignKey('form_templates.id'), nullable=False),
        sa.Column('tenant_id', sa.String(100), nullable=False),
        sa.Column('member_id', sa.String(100), nullable=True),
        sa.Column('provider_id', sa.String(100), nullable=True),
        sa.Column('assigned_to', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), server_default='draft', nullable=False),
        sa.Column('response_data', postgresql.JSONB(), server_default='[]', nullable=False),
        sa.Column('context_data', postgresql.JSONB(), server_default='{}', nullable=False),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        *_audit_columns(),
    )
    op.create_index('idx_form_instances_template_status', 'form_instances', ['template_id', 'status'])
    op.create_index('idx_form_instances_member', 'form_instances', ['member_id'])
    op.create_index('idx_form_instances_provider', 'form_instances', ['provider_id'])
    op.create_index('idx_form_instances_assignee', 'form_instances', ['tenant_id', 'assigned_to'])


def downgrade() -> None:
    op.drop_table('form_instances')
    op.drop_table('form_templates')
    op.drop_table('form_types')
    op.drop_table('form_categories')
