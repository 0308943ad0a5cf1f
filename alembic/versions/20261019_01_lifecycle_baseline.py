# alembic/versions/20261019_01_lifecycle_baseline.py
"""Baseline schema: watched channels, archive warnings, archived channels, resources

Revision ID: 20261019_01_baseline
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261019_01_baseline'
down_revision = None
branch_labels = None
depends_on = None

RESOURCE_TYPES = ('FILE', 'LINK', 'CODE', 'PIN', 'IMAGE', 'DOCUMENT')
WARNING_TYPES = ('SEVEN_DAYS', 'THREE_DAYS', 'ONE_DAY', 'FINAL')


def upgrade() -> None:
    op.create_table(
        'watched_channels',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('channel_id', sa.String(32), nullable=False),
        sa.Column('guild_id', sa.String(32), nullable=False),
        sa.Column('inactivity_days', sa.Integer(), nullable=False),
        sa.Column('rescue_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_activity', sa.DateTime(timezone=True), nullable=False),
        sa.Column('watched_since', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('channel_id', name='uq_watched_channel_id'),
    )
    op.create_index('ix_watched_channels_channel_id', 'watched_channels', ['channel_id'])
    op.create_index('ix_watched_channels_guild_id', 'watched_channels', ['guild_id'])
    op.create_index('ix_watched_channels_is_active', 'watched_channels', ['is_active'])

    op.create_table(
        'archive_warnings',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('channel_id', sa.String(32), nullable=False),
        sa.Column('warning_type', sa.Enum(*WARNING_TYPES, name='warningtype'), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_archive_warnings_lookup', 'archive_warnings', ['channel_id', 'warning_type', 'sent_at'])

    op.create_table(
        'archived_channels',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('original_id', sa.String(32), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('guild_id', sa.String(32), nullable=False),
        sa.Column('topic', sa.Text(), nullable=True),
        sa.Column('nsfw', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('rate_limit', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.Column('permission_snapshot', sa.JSON(), nullable=False),
        sa.Column('inactivity_days', sa.Integer(), nullable=True),
        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('restored', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('restored_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_archived_channels_original_id', 'archived_channels', ['original_id'])
    op.create_index('ix_archived_channels_guild_id', 'archived_channels', ['guild_id'])
    op.create_index('ix_archived_channels_restored', 'archived_channels', ['restored'])
    op.create_index('ix_archived_channels_guild_name', 'archived_channels', ['guild_id', 'name'])

    op.create_table(
        'resources',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('type', sa.Enum(*RESOURCE_TYPES, name='resourcetype'), nullable=False),
        sa.Column('url', sa.Text(), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('file_name', sa.String(255), nullable=True),
        sa.Column('file_size', sa.BigInteger(), nullable=True),
        sa.Column('language', sa.String(50), nullable=True),
        sa.Column('context', sa.Text(), nullable=True),
        sa.Column('author_id', sa.String(32), nullable=False),
        sa.Column('author_name', sa.String(100), nullable=False),
        sa.Column('original_message_id', sa.String(32), nullable=False),
        sa.Column('channel_id', sa.Integer(), sa.ForeignKey('archived_channels.id', ondelete='CASCADE'), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('dedup_key', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('channel_id', 'dedup_key', name='uq_resource_channel_dedup'),
    )
    op.create_index('ix_resources_type', 'resources', ['type'])
    op.create_index('ix_resources_author_id', 'resources', ['author_id'])
    op.create_index('ix_resources_channel_id', 'resources', ['channel_id'])


def downgrade() -> None:
    op.drop_table('resources')
    op.drop_table('archived_channels')
    op.drop_table('archive_warnings')
    op.drop_table('watched_channels')
    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        op.execute("DROP TYPE IF EXISTS resourcetype")
        op.execute("DROP TYPE IF EXISTS warningtype")
