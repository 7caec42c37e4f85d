"""Initial CLA bot schema.

Revision ID: 001
Revises:
Create Date: 2026-10-16
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('github_id', sa.String(length=64), nullable=False),
        sa.Column('github_username', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('avatar_url', sa.String(length=1024), nullable=True),
        sa.Column('email', sa.String(length=320), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='contributor'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_github_id', 'users', ['github_id'], unique=True)
    op.create_index('ix_users_github_username', 'users', ['github_username'])

    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('github_org_slug', sa.String(length=255), nullable=False),
        sa.Column('github_account_type', sa.String(length=20), nullable=False, server_default='organization'),
        sa.Column('github_account_id', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('avatar_url', sa.String(length=1024), nullable=True),
        sa.Column('installed_at', sa.DateTime(), nullable=False),
        sa.Column('admin_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('installation_id', sa.BigInteger(), nullable=True),
        sa.Column('cla_text', sa.Text(), nullable=False, server_default=''),
        sa.Column('cla_text_sha256', sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_organizations_id', 'organizations', ['id'])
    op.create_index('ix_organizations_github_org_slug', 'organizations', ['github_org_slug'], unique=True)

    op.create_table(
        'cla_archives',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('sha256', sa.String(length=64), nullable=False),
        sa.Column('cla_text', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'sha256', name='uq_cla_archive_org_sha'),
    )
    op.create_index('ix_cla_archives_id', 'cla_archives', ['id'])
    op.create_index('ix_cla_archives_org_id', 'cla_archives', ['org_id'])

    op.create_table(
        'bypass_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('github_user_id', sa.String(length=64), nullable=False),
        sa.Column('github_username', sa.String(length=255), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'github_user_id', name='uq_bypass_org_user'),
    )
    op.create_index('ix_bypass_accounts_id', 'bypass_accounts', ['id'])
    op.create_index('ix_bypass_accounts_org_id', 'bypass_accounts', ['org_id'])

    op.create_table(
        'signatures',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('cla_sha256', sa.String(length=64), nullable=False),
        sa.Column('accepted_sha256', sa.String(length=64), nullable=True),
        sa.Column('consent_text_version', sa.String(length=32), nullable=False, server_default='v1'),
        sa.Column('assented', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('signed_at', sa.DateTime(), nullable=False),
        sa.Column('github_user_id_at_signature', sa.String(length=64), nullable=True),
        sa.Column('github_username', sa.String(length=255), nullable=False),
        sa.Column('email_at_signature', sa.String(length=320), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('avatar_url', sa.String(length=1024), nullable=True),
        sa.Column('ip_hash', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'user_id', 'cla_sha256', name='uq_signature_org_user_sha'),
    )
    op.create_index('ix_signatures_id', 'signatures', ['id'])
    op.create_index('ix_signatures_org_id', 'signatures', ['org_id'])
    op.create_index('ix_signatures_user_id', 'signatures', ['user_id'])
    op.create_index('ix_signatures_cla_sha256', 'signatures', ['cla_sha256'])

    op.create_table(
        'webhook_deliveries',
        sa.Column('delivery_id', sa.String(length=255), nullable=False),
        sa.Column('event', sa.String(length=100), nullable=False),
        sa.Column('received_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('delivery_id'),
    )

    op.create_table(
        'audit_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('actor_github_id', sa.String(length=64), nullable=True),
        sa.Column('actor_github_username', sa.String(length=255), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_events_id', 'audit_events', ['id'])
    op.create_index('ix_audit_events_event_type', 'audit_events', ['event_type'])
    op.create_index('ix_audit_events_org_id', 'audit_events', ['org_id'])
    op.create_index('ix_audit_events_created_at', 'audit_events', ['created_at'])


def downgrade() -> None:
    op.drop_table('audit_events')
    op.drop_table('webhook_deliveries')
    op.drop_table('signatures')
    op.drop_table('bypass_accounts')
    op.drop_table('cla_archives')
    op.drop_table('organizations')
    op.drop_table('users')
