"""Initial schema - users, tickets, notifications, messages

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

Portable across PostgreSQL and SQLite (Uuid / timezone-aware DateTime).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the realtime core tables."""

    # ==========================================================================
    # Users
    # ==========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('token_version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_users_role', 'users', ['role'])

    # ==========================================================================
    # Tickets
    # ==========================================================================
    op.create_table(
        'tickets',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='open'),
        sa.Column('priority', sa.String(20), nullable=False),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('organization_id', sa.Uuid(), nullable=True),
        sa.Column(
            'created_by_user_id', sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column(
            'assignee_user_id', sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_message', sa.Text(), nullable=True),
        sa.Column('last_message_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_tickets_creator', 'tickets', ['created_by_user_id', 'updated_at'])
    op.create_index('idx_tickets_assignee', 'tickets', ['assignee_user_id', 'updated_at'])
    op.create_index('idx_tickets_last_message_at', 'tickets', ['last_message_at'])

    # ==========================================================================
    # Notifications (per-user inbox)
    # ==========================================================================
    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'user_id', sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column(
            'ticket_id', sa.Uuid(),
            sa.ForeignKey('tickets.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        'idx_notif_user_read_created', 'notifications', ['user_id', 'read', 'created_at']
    )

    # ==========================================================================
    # Messages (ticket chat transcript)
    # ==========================================================================
    op.create_table(
        'messages',
        sa.Column(
            'id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'),
            primary_key=True, autoincrement=True,
        ),
        sa.Column(
            'ticket_id', sa.Uuid(),
            sa.ForeignKey('tickets.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column(
            'sender_user_id', sa.Uuid(),
            sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        'idx_messages_ticket_created', 'messages', ['ticket_id', 'created_at', 'id']
    )


def downgrade() -> None:
    op.drop_table('messages')
    op.drop_table('notifications')
    op.drop_table('tickets')
    op.drop_table('users')
