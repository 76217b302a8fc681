"""create caja tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19 08:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade():
    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('total', sa.BigInteger(), nullable=False),
        sa.Column('payment_method', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('customer_name', sa.String(200), nullable=True),
        sa.Column('bank_reference', sa.String(100), nullable=True),
        sa.Column('bank_name', sa.String(100), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_sales_id', 'sales', ['id'])
    op.create_index('ix_sales_payment_method', 'sales', ['payment_method'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_created_at', 'sales', ['created_at'])
    op.create_index('idx_sales_status_created_at', 'sales', ['status', 'created_at'])

    op.create_table(
        'cash_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('status', sa.String(7), nullable=False),
        sa.Column('opened_by', sa.String(100), nullable=False),
        sa.Column('closed_by', sa.String(100), nullable=True),
        sa.Column('opened_at', sa.DateTime(), nullable=False),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('opening_float', sa.BigInteger(), nullable=False),
        sa.Column('closing_count', sa.BigInteger(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('auto_closed', sa.Boolean(), nullable=False),
        sa.Column('closure_kind', sa.String(7), nullable=True),
        sa.Column('expected_cash', sa.BigInteger(), nullable=True),
        sa.Column('expected_transfers', sa.BigInteger(), nullable=True),
        sa.Column('verified_transfers', sa.BigInteger(), nullable=True),
        sa.Column('difference', sa.BigInteger(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_cash_sessions_id', 'cash_sessions', ['id'])
    op.create_index('ix_cash_sessions_status', 'cash_sessions', ['status'])
    # Una sola caja abierta a la vez
    op.create_index(
        'uq_cash_sessions_single_open', 'cash_sessions', ['status'], unique=True,
        postgresql_where=sa.text("status = 'open'"),
        sqlite_where=sa.text("status = 'open'")
    )

    op.create_table(
        'transfer_verifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_id', sa.Integer(), sa.ForeignKey('cash_sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(8), nullable=False),
        sa.Column('bank_reference', sa.String(100), nullable=True),
        sa.Column('bank_name', sa.String(100), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('session_id', 'sale_id', name='uq_transfer_verification_session_sale'),
    )
    op.create_index('ix_transfer_verifications_id', 'transfer_verifications', ['id'])
    op.create_index('ix_transfer_verifications_session_id', 'transfer_verifications', ['session_id'])
    op.create_index('ix_transfer_verifications_sale_id', 'transfer_verifications', ['sale_id'])

    op.create_table(
        'cash_counts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_id', sa.Integer(), sa.ForeignKey('cash_sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('denominations', sa.JSON(), nullable=False),
        sa.Column('total', sa.BigInteger(), nullable=False),
        sa.Column('counted_by', sa.String(100), nullable=False),
        sa.Column('counted_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_cash_counts_id', 'cash_counts', ['id'])
    op.create_index('ix_cash_counts_session_id', 'cash_counts', ['session_id'])


def downgrade():
    op.drop_table('cash_counts')
    op.drop_table('transfer_verifications')
    op.drop_index('uq_cash_sessions_single_open', table_name='cash_sessions')
    op.drop_table('cash_sessions')
    op.drop_table('sales')
