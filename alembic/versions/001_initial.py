"""initial migration

Revision ID: 001
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    conn = op.get_bind()

    if inspect(conn).has_table('entries'):
        return

    op.create_table(
        'entries',
        sa.Column('name', sa.String(length=512), nullable=False),
        sa.Column('url', sa.String(), nullable=True),
        sa.Column('redirect', sa.Boolean(), nullable=True),
        sa.Column('filename', sa.String(), nullable=True),
        sa.Column('content_type', sa.String(), nullable=True),
        sa.Column('creation', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('owner_token', sa.String(length=64), nullable=True),
        sa.Column('access_redirect_on_deny', sa.String(length=512), nullable=True),
        sa.Column('access_blacklist', sa.Text(), nullable=True),
        sa.Column('access_blacklist_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('access_expire', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('access_expire_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('access_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('access_train', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('name')
    )
    op.create_index(op.f('ix_entries_creation'), 'entries', ['creation'], unique=False)
    op.create_index(op.f('ix_entries_owner_token'), 'entries', ['owner_token'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_entries_owner_token'), table_name='entries')
    op.drop_index(op.f('ix_entries_creation'), table_name='entries')
    op.drop_table('entries')
