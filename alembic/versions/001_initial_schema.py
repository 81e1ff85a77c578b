"""Initial schema: ideas, tasks, discussions and the audit trail.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


PRIORITY = sa.Enum('low', 'medium', 'high', 'critical', name='priority')


def upgrade() -> None:
    # Create ideas table (enums will be created automatically)
    op.create_table(
        'ideas',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('category', sa.String(100), nullable=False, server_default='Other'),
        sa.Column('priority', PRIORITY, nullable=False, server_default='medium'),
        sa.Column(
            'status',
            sa.Enum('pending_approval', 'approved', 'rejected', 'in_progress', 'completed', name='ideastatus'),
            nullable=False,
            server_default='pending_approval',
        ),
        sa.Column('created_by', sa.JSON),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('modified_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('approved_by', sa.JSON),
        sa.Column('approved_at', sa.DateTime),
        sa.Column('attachments', sa.JSON, nullable=False),
    )
    op.create_index('ix_ideas_status', 'ideas', ['status'])
    op.create_index('ix_ideas_created_at', 'ideas', ['created_at'])

    # Create tasks table
    op.create_table(
        'tasks',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('idea_id', sa.Integer, sa.ForeignKey('ideas.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column(
            'status',
            sa.Enum('not_started', 'in_progress', 'completed', 'on_hold', name='taskstatus'),
            nullable=False,
            server_default='not_started',
        ),
        sa.Column('priority', PRIORITY, nullable=False, server_default='medium'),
        sa.Column('percent_complete', sa.Integer, nullable=False, server_default='0'),
        sa.Column('assigned_to', sa.JSON, nullable=False),
        sa.Column('start_date', sa.DateTime),
        sa.Column('due_date', sa.DateTime),
        sa.Column('created_by', sa.JSON),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('modified_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('percent_complete >= 0 AND percent_complete <= 100', name='valid_percent_complete'),
    )
    op.create_index('ix_tasks_idea_id', 'tasks', ['idea_id'])
    op.create_index('ix_tasks_status', 'tasks', ['status'])
    op.create_index('ix_tasks_due_date', 'tasks', ['due_date'])
    op.create_index('ix_tasks_created_at', 'tasks', ['created_at'])

    # Create discussions table (one thread per owning idea or task)
    op.create_table(
        'discussions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('owner_type', sa.Enum('idea', 'task', name='discussionownertype'), nullable=False),
        sa.Column('owner_id', sa.Integer, nullable=False),
        sa.Column('idea_id', sa.Integer, sa.ForeignKey('ideas.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False, server_default=''),
        sa.Column('locked', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('messages', sa.JSON, nullable=False),
        sa.Column('participants', sa.JSON, nullable=False),
        sa.Column('last_activity_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('owner_type', 'owner_id', name='uq_discussion_owner'),
    )
    op.create_index('ix_discussions_idea_id', 'discussions', ['idea_id'])

    # Create trail_events table (append-only)
    op.create_table(
        'trail_events',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('idea_id', sa.Integer, sa.ForeignKey('ideas.id', ondelete='CASCADE'), nullable=False),
        sa.Column('task_id', sa.Integer),
        sa.Column('discussion_id', sa.Integer),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('actor', sa.JSON),
        sa.Column('previous_status', sa.String(30)),
        sa.Column('new_status', sa.String(30)),
        sa.Column('metadata', sa.JSON, nullable=False),
        sa.Column('timestamp', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_trail_events_idea_id', 'trail_events', ['idea_id'])
    op.create_index('ix_trail_events_task_id', 'trail_events', ['task_id'])
    op.create_index('ix_trail_events_event_type', 'trail_events', ['event_type'])
    op.create_index('ix_trail_events_timestamp', 'trail_events', ['timestamp'])


def downgrade() -> None:
    # Drop tables
    op.drop_table('trail_events')
    op.drop_table('discussions')
    op.drop_table('tasks')
    op.drop_table('ideas')

    # Drop enums (no-op on databases without native enum types)
    bind = op.get_bind()
    for enum_name in ('discussionownertype', 'taskstatus', 'ideastatus', 'priority'):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
