"""singleton backup settings document

Revision ID: 0001_backup_settings
Revises:
Create Date: 2026-10-18
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_backup_settings'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'backup_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('settings_id', sa.String(32), nullable=False),
        sa.Column('include_media', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('compression_level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('email_notifications', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notification_email', sa.String(255), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_by', sa.String(128), nullable=True),
    )
    op.create_index('ix_backup_settings_settings_id', 'backup_settings', ['settings_id'], unique=True)

    op.create_table(
        'backup_job_policies',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('settings_id', sa.String(32), nullable=False),
        sa.Column('job_type', sa.String(32), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('interval_hours', sa.Float(), nullable=False),
        sa.Column('max_backups_to_keep', sa.Integer(), nullable=False),
        sa.Column('last_auto_backup', sa.DateTime(timezone=True), nullable=True),
        sa.Column('next_scheduled_backup', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('settings_id', 'job_type', name='uq_backup_job_policy'),
    )
    op.create_index('ix_backup_job_policies_settings_id', 'backup_job_policies', ['settings_id'])

def downgrade():
    op.drop_index('ix_backup_job_policies_settings_id', table_name='backup_job_policies')
    op.drop_table('backup_job_policies')
    op.drop_index('ix_backup_settings_settings_id', table_name='backup_settings')
    op.drop_table('backup_settings')
