"""Initial catalog schema: owners, subscriptions, episodes, archived episodes

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'owners',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('username', sa.String(256), nullable=False),
        sa.Column('email', sa.String(256), nullable=False),
        sa.Column('password', sa.String(256), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False),
    )

    # AUTOINCREMENT so ids of deleted rows are never reused
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('owner_id', sa.Integer, sa.ForeignKey('owners.id'), nullable=False),
        sa.Column('name', sa.String(512), nullable=False),
        sa.Column('feed_url', sa.String(2048), nullable=False),
        sa.Column('website_url', sa.String(2048), nullable=True),
        sa.Column('image_url', sa.String(2048), nullable=True),
        sa.Column('title', sa.String(512), nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('language', sa.String(32), nullable=True),
        sa.Column('last_checked', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.UniqueConstraint('owner_id', 'name', name='uq_subscription_owner_name'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_subscriptions_owner_id', 'subscriptions', ['owner_id'])

    op.create_table(
        'episodes',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('subscription_id', sa.Integer, sa.ForeignKey('subscriptions.id'), nullable=False),
        sa.Column('media_url', sa.String(2048), nullable=False),
        sa.Column('guid', sa.String(2048), nullable=True),
        sa.Column('feed_position', sa.Integer, nullable=True),
        sa.Column('title', sa.String(512), nullable=True),
        sa.Column('published', sa.String(128), nullable=True),
        sa.Column('downloaded', sa.Boolean, nullable=False),
        sa.Column('file_name', sa.String(1024), nullable=True),
        sa.Column('downloaded_at', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=True),
        sa.UniqueConstraint('subscription_id', 'media_url', name='uq_episode_subscription_url'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_episodes_subscription_id', 'episodes', ['subscription_id'])
    op.create_index('ix_episodes_downloaded', 'episodes', ['downloaded'])

    op.create_table(
        'archived_episodes',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('original_episode_id', sa.Integer, sa.ForeignKey('episodes.id'), nullable=False),
        sa.Column('subscription_id', sa.Integer, sa.ForeignKey('subscriptions.id'), nullable=False),
        sa.Column('media_url', sa.String(2048), nullable=False),
        sa.Column('downloaded', sa.Boolean, nullable=False),
        sa.Column('archived_at', sa.DateTime, nullable=False),
    )
    op.create_index(
        'ix_archived_episodes_original_episode_id',
        'archived_episodes',
        ['original_episode_id'],
    )


def downgrade() -> None:
    op.drop_index('ix_archived_episodes_original_episode_id', table_name='archived_episodes')
    op.drop_table('archived_episodes')
    op.drop_index('ix_episodes_downloaded', table_name='episodes')
    op.drop_index('ix_episodes_subscription_id', table_name='episodes')
    op.drop_table('episodes')
    op.drop_index('ix_subscriptions_owner_id', table_name='subscriptions')
    op.drop_table('subscriptions')
    op.drop_table('owners')
