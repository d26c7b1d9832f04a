"""goal lifecycle schema

Revision ID: 001
Revises:
Create Date: 2026-10-16 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'goal_template',
        sa.Column('id', sa.Uuid(), primary_key=True),
        *_timestamps(),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.Text(), nullable=True),
        sa.Column('recurring_pattern', sa.Text(), nullable=False),
        sa.Column('priority', sa.Text(), nullable=False, server_default='medium'),
        sa.Column('urgent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('metrics', sa.JSON(), nullable=True),
        sa.Column('problem_id', sa.Text(), nullable=True),
        sa.Column('labels', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.CheckConstraint("priority IN ('low', 'medium', 'high')", name='ck_goal_template_priority'),
    )
    op.create_index('ix_goal_template_active', 'goal_template', ['is_active'])

    op.create_table(
        'milestone',
        sa.Column('id', sa.Uuid(), primary_key=True),
        *_timestamps(),
        sa.Column('target_metric', sa.Text(), nullable=False),
        sa.Column('daily_amount', sa.Integer(), nullable=False),
        sa.Column('target_value', sa.Integer(), nullable=False),
        sa.Column('period_type', sa.Text(), nullable=False, server_default='monthly'),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('strategy', sa.Text(), nullable=False, server_default='EvenDistribution'),
        sa.Column('current_value', sa.Float(), nullable=False, server_default='0'),
        sa.Column('recurring_pattern', sa.Text(), nullable=True),
        sa.Column('problem_id', sa.Text(), nullable=True),
        sa.Column('label', sa.Text(), nullable=True),
        sa.Column('unit', sa.Text(), nullable=True),
        sa.CheckConstraint("period_type IN ('monthly', 'weekly', 'daily')", name='ck_milestone_period_type'),
        sa.CheckConstraint("strategy IN ('EvenDistribution', 'FrontLoad', 'Manual')", name='ck_milestone_strategy'),
        sa.CheckConstraint('period_end >= period_start', name='ck_milestone_period_order'),
    )
    op.create_index('ix_milestone_dates', 'milestone', ['period_start', 'period_end'])

    op.create_table(
        'goal_instance',
        sa.Column('id', sa.Uuid(), primary_key=True),
        *_timestamps(),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.Text(), nullable=True),
        sa.Column('completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('due_date_local', sa.Text(), nullable=True),
        sa.Column('template_id', sa.Uuid(), sa.ForeignKey('goal_template.id', ondelete='SET NULL'), nullable=True),
        sa.Column('parent_goal_id', sa.Uuid(), sa.ForeignKey('milestone.id', ondelete='SET NULL'), nullable=True),
        sa.Column('priority', sa.Text(), nullable=False, server_default='medium'),
        sa.Column('urgent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('metrics', sa.JSON(), nullable=True),
        sa.Column('problem_id', sa.Text(), nullable=True),
        sa.Column('labels', sa.JSON(), nullable=True),
        sa.Column('linked_activity_ids', sa.JSON(), nullable=True),
        sa.Column('is_debt', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('original_date', sa.Text(), nullable=True),
        sa.UniqueConstraint('template_id', 'due_date_local', name='uq_goal_instance_template_day'),
        sa.CheckConstraint("priority IN ('low', 'medium', 'high')", name='ck_goal_instance_priority'),
    )
    op.create_index('ix_goal_instance_due_date', 'goal_instance', ['due_date'])
    op.create_index('ix_goal_instance_due_date_local', 'goal_instance', ['due_date_local'])
    op.create_index('ix_goal_instance_is_debt', 'goal_instance', ['is_debt'])
    op.create_index('ix_goal_instance_parent', 'goal_instance', ['parent_goal_id'])
    op.create_index('ix_goal_instance_problem_id', 'goal_instance', ['problem_id'])

    op.create_table(
        'activity',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('date', sa.Text(), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('category', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_productive', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_shadow', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('goal_id', sa.Uuid(), sa.ForeignKey('goal_instance.id', ondelete='SET NULL'), nullable=True),
        sa.CheckConstraint('end_time >= start_time', name='ck_activity_time_order'),
    )
    op.create_index('ix_activity_date', 'activity', ['date'])
    op.create_index('ix_activity_goal_id', 'activity', ['goal_id'])
    # Shadow activities are keyed by their end timestamp.
    op.create_index(
        'uq_activity_shadow_end_time',
        'activity',
        ['end_time'],
        unique=True,
        postgresql_where=sa.text('is_shadow'),
        sqlite_where=sa.text('is_shadow'),
    )

    op.create_table(
        'debt_record',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('goal_id', sa.Uuid(), sa.ForeignKey('goal_instance.id', ondelete='CASCADE'), nullable=False),
        sa.Column('original_date', sa.Text(), nullable=True),
        sa.Column('original_month', sa.Text(), nullable=True),
        sa.Column('source', sa.Text(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('goal_text', sa.Text(), nullable=False),
        sa.Column('goal_data', sa.JSON(), nullable=True),
        sa.Column('archived_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("source IN ('sweep', 'monthly')", name='ck_debt_record_source'),
    )
    op.create_index('ix_debt_record_goal_id', 'debt_record', ['goal_id'])
    op.create_index('ix_debt_record_original_date', 'debt_record', ['original_date'])
    op.create_index('ix_debt_record_original_month', 'debt_record', ['original_month'])
    op.create_index('ix_debt_record_resolved_at', 'debt_record', ['resolved_at'])


def downgrade() -> None:
    op.drop_table('debt_record')
    op.drop_index('uq_activity_shadow_end_time', table_name='activity')
    op.drop_table('activity')
    op.drop_table('goal_instance')
    op.drop_table('milestone')
    op.drop_table('goal_template')
