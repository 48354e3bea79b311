"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

rebalance_status = sa.Enum('pending', 'completed', 'failed', name='rebalancestatusenum')


def upgrade():
    op.create_table('asset_yield',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('symbol', sa.String(length=20), nullable=False),
        sa.Column('apr_basis_points', sa.Integer(), nullable=False),
        sa.Column('volatility', sa.Float(), nullable=False),
        sa.Column('source', sa.String(length=20), nullable=False),
        sa.Column('source_timestamp', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_asset_yield_symbol'), 'asset_yield', ['symbol'], unique=False)
    op.create_index('ix_asset_yield_symbol_ts', 'asset_yield', ['symbol', 'source_timestamp'], unique=False)

    op.create_table('basket_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('basket_id', sa.Integer(), nullable=False),
        sa.Column('basket_name', sa.String(length=50), nullable=False),
        sa.Column('average_yield_bp', sa.Integer(), nullable=False),
        sa.Column('weighted_yield_bp', sa.Integer(), nullable=False),
        sa.Column('asset_yields', sa.JSON(), nullable=False),
        sa.Column('computed_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_basket_history_basket_id'), 'basket_history', ['basket_id'], unique=False)
    op.create_index(op.f('ix_basket_history_computed_at'), 'basket_history', ['computed_at'], unique=False)
    op.create_index('ix_basket_history_basket_computed', 'basket_history', ['basket_id', 'computed_at'], unique=False)

    op.create_table('users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('wallet_address', sa.String(length=64), nullable=False),
        sa.Column('selected_basket', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_wallet_address'), 'users', ['wallet_address'], unique=True)

    op.create_table('recommendation',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('recommended_basket', sa.Integer(), nullable=False),
        sa.Column('confidence_score', sa.Integer(), nullable=False),
        sa.Column('reasoning', sa.Text(), nullable=False),
        sa.Column('expected_yield_bp', sa.Integer(), nullable=False),
        sa.Column('risk_score', sa.Integer(), nullable=False),
        sa.Column('is_fallback', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('produced_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_recommendation_user_id'), 'recommendation', ['user_id'], unique=False)
    op.create_index(op.f('ix_recommendation_produced_at'), 'recommendation', ['produced_at'], unique=False)

    op.create_table('rebalancing_transaction',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('from_basket', sa.Integer(), nullable=False),
        sa.Column('to_basket', sa.Integer(), nullable=False),
        sa.Column('status', rebalance_status, nullable=False),
        sa.Column('confidence', sa.Integer(), nullable=False),
        sa.Column('tx_reference', sa.String(length=128), nullable=True),
        sa.Column('gas_used', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_rebalancing_transaction_user_id'), 'rebalancing_transaction', ['user_id'], unique=False)

    op.create_table('audit_event',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_type', sa.String(length=40), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('basket_id', sa.Integer(), nullable=True),
        sa.Column('data_hash', sa.String(length=64), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_event_event_type'), 'audit_event', ['event_type'], unique=False)
    op.create_index(op.f('ix_audit_event_user_id'), 'audit_event', ['user_id'], unique=False)
    op.create_index(op.f('ix_audit_event_created_at'), 'audit_event', ['created_at'], unique=False)


def downgrade():
    op.drop_table('audit_event')
    op.drop_table('rebalancing_transaction')
    op.drop_table('recommendation')
    op.drop_table('users')
    op.drop_table('basket_history')
    op.drop_table('asset_yield')
    rebalance_status.drop(op.get_bind(), checkfirst=True)
