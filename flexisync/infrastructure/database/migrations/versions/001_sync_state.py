"""sync_state y cleanup_log

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table('sync_state'):
        op.create_table('sync_state',
        sa.Column('evidence', sa.String(length=255), nullable=False),
        sa.Column('last_update', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_sync', sa.DateTime(timezone=True), nullable=False),
        sa.Column('row_count', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('status', sa.String(length=16), server_default='ok', nullable=False),
        sa.Column('error_msg', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('evidence')
        )

    if not inspector.has_table('cleanup_log'):
        op.create_table('cleanup_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('evidence', sa.String(length=255), nullable=False),
        sa.Column('rows_deleted', sa.BigInteger(), nullable=False),
        sa.Column('oldest_kept', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cleaned_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_cleanup_log_evidence'), 'cleanup_log', ['evidence'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if inspector.has_table('cleanup_log'):
        indexes = [idx['name'] for idx in inspector.get_indexes('cleanup_log')]
        if 'ix_cleanup_log_evidence' in indexes:
            op.drop_index(op.f('ix_cleanup_log_evidence'), table_name='cleanup_log')
        op.drop_table('cleanup_log')

    if inspector.has_table('sync_state'):
        op.drop_table('sync_state')
