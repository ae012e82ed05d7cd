"""quote delivery schema

Revision ID: 001
Revises:
Create Date: 2026-10-01 00:00:00.000000

Quotes (read-only to the delivery engine), quote schedules, delivery
history and user events.
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
    op.create_table(
        'quote',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('author', sa.Text(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('source', sa.Text(), nullable=True),
        sa.Column('categories', postgresql.JSONB(), nullable=True),
        sa.Column('is_favorite', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_quote_is_favorite', 'quote', ['is_favorite'])

    op.create_table(
        'quote_schedule',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('scheduled_hour', sa.Integer(), nullable=False),
        sa.Column('scheduled_minute', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('delivery_method', sa.Text(), nullable=False, server_default='both'),
        sa.Column('favorites_only', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('categories', postgresql.JSONB(), nullable=True),
        sa.Column('exclude_recent_days', sa.Integer(), nullable=False, server_default='7'),
        sa.Column('active_days', postgresql.JSONB(), nullable=True),
        sa.Column('last_delivered_quote_id', sa.String(36), nullable=True),
        sa.Column('last_delivery_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['last_delivered_quote_id'], ['quote.id'], ondelete='SET NULL'),
        sa.CheckConstraint('scheduled_hour >= 0 AND scheduled_hour <= 23', name='ck_quote_schedule_hour'),
        sa.CheckConstraint('scheduled_minute >= 0 AND scheduled_minute <= 59', name='ck_quote_schedule_minute'),
        sa.CheckConstraint('exclude_recent_days >= 0', name='ck_quote_schedule_exclude_days'),
        sa.CheckConstraint(
            "delivery_method IN ('notification', 'widget', 'both')",
            name='ck_quote_schedule_delivery_method',
        ),
    )
    op.create_index('ix_quote_schedule_enabled', 'quote_schedule', ['is_enabled'])
    # At most one default schedule
    op.create_index(
        'uq_quote_schedule_default',
        'quote_schedule',
        ['is_default'],
        unique=True,
        postgresql_where=sa.text('is_default IS true'),
    )

    op.create_table(
        'delivered_quote',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('quote_id', sa.String(36), nullable=False),
        sa.Column('schedule_id', sa.String(36), nullable=False),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['schedule_id'], ['quote_schedule.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_delivered_quote_quote_id', 'delivered_quote', ['quote_id'])
    op.create_index('ix_delivered_quote_delivered_at', 'delivered_quote', ['delivered_at'])
    op.create_index('ix_delivered_quote_schedule_delivered', 'delivered_quote', ['schedule_id', 'delivered_at'])

    op.create_table(
        'user_event',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('event_type', sa.Text(), nullable=False),
        sa.Column('related_entity_id', sa.String(36), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('details', postgresql.JSONB(), nullable=True),
    )
    op.create_index('ix_user_event_event_type', 'user_event', ['event_type'])
    op.create_index('ix_user_event_occurred_at', 'user_event', ['occurred_at'])
    op.create_index('ix_user_event_related_entity_id', 'user_event', ['related_entity_id'])


def downgrade() -> None:
    op.drop_index('ix_user_event_related_entity_id', table_name='user_event')
    op.drop_index('ix_user_event_occurred_at', table_name='user_event')
    op.drop_index('ix_user_event_event_type', table_name='user_event')
    op.drop_table('user_event')

    op.drop_index('ix_delivered_quote_schedule_delivered', table_name='delivered_quote')
    op.drop_index('ix_delivered_quote_delivered_at', table_name='delivered_quote')
    op.drop_index('ix_delivered_quote_quote_id', table_name='delivered_quote')
    op.drop_table('delivered_quote')

    op.drop_index('uq_quote_schedule_default', table_name='quote_schedule')
    op.drop_index('ix_quote_schedule_enabled', table_name='quote_schedule')
    op.drop_table('quote_schedule')

    op.drop_index('ix_quote_is_favorite', table_name='quote')
    op.drop_table('quote')
