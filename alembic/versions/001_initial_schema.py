"""Initial schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-16

Tables:
- counters
- queues
- admins
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


queue_status_enum = sa.Enum(
    'claimed', 'called', 'served', 'skipped', 'released', 'reset',
    name='queue_status_enum',
)


def upgrade() -> None:
    # ===========================================
    # COUNTERS
    # ===========================================
    op.create_table(
        'counters',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('max_queue', sa.Integer(), nullable=False, server_default='99'),
        sa.Column('current_queue', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    # Names are unique among non-deleted counters only
    op.create_index(
        'uq_counters_name_not_deleted',
        'counters',
        ['name'],
        unique=True,
        postgresql_where=sa.text('deleted_at IS NULL'),
        sqlite_where=sa.text('deleted_at IS NULL'),
    )
    op.create_index('ix_counters_active_current', 'counters', ['is_active', 'current_queue'])

    # ===========================================
    # QUEUES (tickets)
    # ===========================================
    op.create_table(
        'queues',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('counter_id', sa.Integer(), nullable=False),
        sa.Column('status', queue_status_enum, nullable=False, server_default='claimed'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['counter_id'], ['counters.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_queues_counter_status', 'queues', ['counter_id', 'status'])
    op.create_index('ix_queues_created_at', 'queues', ['created_at'])

    # ===========================================
    # ADMINS
    # ===========================================
    op.create_table(
        'admins',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_admins_username', 'admins', ['username'], unique=True)


def downgrade() -> None:
    # Drop tables in reverse order (respecting foreign keys)
    op.drop_index('ix_admins_username', table_name='admins')
    op.drop_table('admins')
    op.drop_index('ix_queues_created_at', table_name='queues')
    op.drop_index('ix_queues_counter_status', table_name='queues')
    op.drop_table('queues')
    op.drop_index('ix_counters_active_current', table_name='counters')
    op.drop_index('uq_counters_name_not_deleted', table_name='counters')
    op.drop_table('counters')

    if op.get_bind().dialect.name == 'postgresql':
        op.execute('DROP TYPE IF EXISTS queue_status_enum')
