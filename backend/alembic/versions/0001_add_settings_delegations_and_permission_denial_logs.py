"""Add settings delegations and permission denial logs"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str | None = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Apply schema changes."""
    # Create settings_delegations table
    op.create_table(
        'settings_delegations',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('can_manage_billing', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('can_manage_team', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('can_manage_integrations', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('can_manage_branding', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('delegated_by_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('delegated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], name=op.f('fk_settings_delegations_org_id_organizations'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_settings_delegations_user_id_users'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['delegated_by_id'], ['users.id'], name=op.f('fk_settings_delegations_delegated_by_id_users'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_settings_delegations')),
        sa.UniqueConstraint('org_id', 'user_id', name='uq_settings_delegations_org_user'),
    )
    op.create_index('ix_settings_delegations_org_id', 'settings_delegations', ['org_id'], unique=False)
    op.create_index('ix_settings_delegations_user_id', 'settings_delegations', ['user_id'], unique=False)

    # Create permission_denial_logs table
    op.create_table(
        'permission_denial_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('org_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('resource', sa.String(length=50), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('resource_id', sa.String(length=255), nullable=True),
        sa.Column('reason', sa.String(length=50), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], name=op.f('fk_permission_denial_logs_org_id_organizations'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_permission_denial_logs_user_id_users'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_permission_denial_logs')),
    )
    op.create_index('ix_permission_denial_logs_org_id', 'permission_denial_logs', ['org_id'], unique=False)
    op.create_index('ix_permission_denial_logs_user_id', 'permission_denial_logs', ['user_id'], unique=False)
    op.create_index('ix_permission_denial_logs_created_at', 'permission_denial_logs', ['created_at'], unique=False)


def downgrade() -> None:
    """Revert schema changes."""
    op.drop_index('ix_permission_denial_logs_created_at', table_name='permission_denial_logs')
    op.drop_index('ix_permission_denial_logs_user_id', table_name='permission_denial_logs')
    op.drop_index('ix_permission_denial_logs_org_id', table_name='permission_denial_logs')
    op.drop_table('permission_denial_logs')

    op.drop_index('ix_settings_delegations_user_id', table_name='settings_delegations')
    op.drop_index('ix_settings_delegations_org_id', table_name='settings_delegations')
    op.drop_table('settings_delegations')
