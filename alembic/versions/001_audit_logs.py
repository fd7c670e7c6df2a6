"""audit logs

Revision ID: 001_audit_logs
Revises:
Create Date: 2026-10-16 09:00:00.000000

Creates the users projection table (if the auth service has not already)
and the append-only audit_logs table.

- JSONB for flexible old/new value storage
- record_id is a string: unresolved records are stored as 'unknown'
- Indexes for the admin query patterns (actor, action, time, entity)
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

# revision identifiers, used by Alembic.
revision = '001_audit_logs'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create users and audit_logs tables with indexes."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table('users'):
        op.create_table(
            'users',
            sa.Column('id', UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column('email', sa.String(255), nullable=False),
            sa.Column('role', sa.String(50), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        )
        op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'audit_logs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, nullable=False),

        # Operation
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('table_name', sa.String(100), nullable=True),
        sa.Column('record_id', sa.String(255), nullable=True),

        # Value snapshots
        sa.Column('old_values', JSONB, nullable=True),
        sa.Column('new_values', JSONB, nullable=True),

        # Actor and request origin
        sa.Column('actor_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),

        # Timestamp
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # "What did user Y do?"
    op.create_index('ix_audit_logs_actor_id', 'audit_logs', ['actor_id'])
    # Action filters and statistics grouping
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    # Time-range filters and newest-first listing
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])
    # "Show all changes to offer X"
    op.create_index('ix_audit_logs_table_record', 'audit_logs', ['table_name', 'record_id'])


def downgrade() -> None:
    """Drop audit_logs. The users table is owned by the auth service and is left in place."""
    op.drop_index('ix_audit_logs_table_record', table_name='audit_logs')
    op.drop_index('ix_audit_logs_created_at', table_name='audit_logs')
    op.drop_index('ix_audit_logs_action', table_name='audit_logs')
    op.drop_index('ix_audit_logs_actor_id', table_name='audit_logs')
    op.drop_table('audit_logs')
