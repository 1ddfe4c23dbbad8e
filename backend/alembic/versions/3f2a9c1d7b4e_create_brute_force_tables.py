"""create_brute_force_tables

Revision ID: 3f2a9c1d7b4e
Revises:
Create Date: 2026-10-18 09:12:44.318207

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7b4e'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

json_type = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    op.create_table(
        'login_attempts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('identifier', sa.String(length=255), nullable=False),
        sa.Column('attempt_type', sa.String(length=8), nullable=False),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=False),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('failure_reason', sa.String(length=100), nullable=True),
        sa.Column('additional_data', json_type, nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'ix_login_attempts_identifier_type_ts',
        'login_attempts',
        ['identifier', 'attempt_type', 'timestamp'],
        unique=False
    )
    op.create_index('ix_login_attempts_ip_ts', 'login_attempts', ['ip_address', 'timestamp'], unique=False)

    op.create_table(
        'account_lockouts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('identifier', sa.String(length=255), nullable=False),
        sa.Column('lockout_type', sa.String(length=8), nullable=False),
        sa.Column('reason', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('requires_manual_unlock', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    # At most one active lockout per (identifier, lockout_type)
    op.create_index(
        'uq_account_lockouts_active',
        'account_lockouts',
        ['identifier', 'lockout_type'],
        unique=True,
        postgresql_where=sa.text('is_active'),
        sqlite_where=sa.text('is_active'),
    )
    op.create_index(
        'ix_account_lockouts_identifier_type_created',
        'account_lockouts',
        ['identifier', 'lockout_type', 'created_at'],
        unique=False
    )

    op.create_table(
        'emergency_access_codes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('code_hash', sa.String(length=255), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'ix_emergency_access_codes_user_used_expires',
        'emergency_access_codes',
        ['user_id', 'used', 'expires_at'],
        unique=False
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('resource_type', sa.String(length=50), nullable=False),
        sa.Column('resource_id', sa.String(length=255), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('severity', sa.String(length=20), server_default='info', nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('details', json_type, nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_logs_action_ts', 'audit_logs', ['action', 'timestamp'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_audit_logs_action_ts', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_emergency_access_codes_user_used_expires', table_name='emergency_access_codes')
    op.drop_table('emergency_access_codes')
    op.drop_index('ix_account_lockouts_identifier_type_created', table_name='account_lockouts')
    op.drop_index('uq_account_lockouts_active', table_name='account_lockouts')
    op.drop_table('account_lockouts')
    op.drop_index('ix_login_attempts_ip_ts', table_name='login_attempts')
    op.drop_table('login_attempts')
