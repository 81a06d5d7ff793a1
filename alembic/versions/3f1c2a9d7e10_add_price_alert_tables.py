"""add_price_alert_tables

Revision ID: 3f1c2a9d7e10
Revises:
Create Date: 2026-10-18 10:12:41.502113

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7e10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


PRICE = sa.Numeric(30, 12)
CHANNELS_DEFAULT = sa.text("'{\"email\": true, \"push\": false}'::jsonb")


def upgrade() -> None:
    """Create tables read and written by the price alert worker."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(255), nullable=False, comment='Login and notification email'),
        sa.Column('first_name', sa.String(255), nullable=True, comment='Display name used in emails'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'tokens',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('cmc_id', sa.Integer(), nullable=False, comment='CoinMarketCap ID'),
        sa.Column('symbol', sa.String(20), nullable=False, comment="Ticker (e.g., 'BTC')"),
        sa.Column('name', sa.String(100), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tokens_cmc_id', 'tokens', ['cmc_id'], unique=True)
    op.create_index('ix_tokens_symbol', 'tokens', ['symbol'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('symbol', sa.String(20), nullable=False),
        sa.Column('cmc_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Float(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('ix_transactions_user_symbol', 'transactions', ['user_id', 'symbol'])

    op.create_table(
        'strategies',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('asset', sa.String(20), nullable=False, comment="Asset symbol (e.g., 'BTC')"),
        sa.Column('token_cmc_id', sa.Integer(), nullable=True, comment='CoinMarketCap ID captured at creation (NULL for legacy rows)'),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('reference_price', PRICE, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_strategies_user_id', 'strategies', ['user_id'])
    op.create_index('ix_strategies_asset', 'strategies', ['asset'])
    op.create_index('ix_strategies_status', 'strategies', ['status'])

    op.create_table(
        'strategy_steps',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('strategy_id', sa.Integer(), nullable=False),
        sa.Column('target_type', sa.String(30), nullable=False, server_default='exact_price'),
        sa.Column('target_value', PRICE, nullable=False, comment='Exact price or % above reference price'),
        sa.Column('target_price', PRICE, nullable=False),
        sa.Column('sell_percentage', sa.Float(), nullable=False, comment='Fraction of the holding to sell (0-100)'),
        sa.Column('state', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('triggered_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['strategy_id'], ['strategies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_strategy_steps_strategy_id', 'strategy_steps', ['strategy_id'])
    op.create_index('ix_strategy_steps_state', 'strategy_steps', ['state'])

    op.create_table(
        'strategy_alerts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('strategy_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('notification_channels', postgresql.JSONB(), nullable=False, server_default=CHANNELS_DEFAULT),
        sa.ForeignKeyConstraint(['strategy_id'], ['strategies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('strategy_id'),
    )

    op.create_table(
        'step_alerts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('step_id', sa.Integer(), nullable=False),
        sa.Column('before_tp_enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('before_tp_percentage', sa.Float(), nullable=True),
        sa.Column('tp_reached_enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('before_tp_email_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('tp_reached_email_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['step_id'], ['strategy_steps.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('step_id'),
    )

    op.create_table(
        'alert_configurations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('forecast_id', sa.String(64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('notification_channels', postgresql.JSONB(), nullable=False, server_default=CHANNELS_DEFAULT),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_alert_configurations_user_id', 'alert_configurations', ['user_id'])

    op.create_table(
        'token_alerts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('alert_configuration_id', sa.Integer(), nullable=False),
        sa.Column('holding_id', sa.String(64), nullable=False),
        sa.Column('token_symbol', sa.String(20), nullable=False),
        sa.Column('strategy_id', sa.Integer(), nullable=True),
        sa.Column('number_of_targets', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.ForeignKeyConstraint(['alert_configuration_id'], ['alert_configurations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['strategy_id'], ['strategies.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_token_alerts_alert_configuration_id', 'token_alerts', ['alert_configuration_id'])
    op.create_index('ix_token_alerts_token_symbol', 'token_alerts', ['token_symbol'])

    op.create_table(
        'tp_alerts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('token_alert_id', sa.Integer(), nullable=False),
        sa.Column('tp_order', sa.Integer(), nullable=False),
        sa.Column('target_price', PRICE, nullable=False),
        sa.Column('sell_quantity', sa.Float(), nullable=False, server_default='0'),
        sa.Column('projected_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('remaining_value', sa.Float(), nullable=False, server_default='0'),
        sa.Column('before_tp_enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('before_tp_value', sa.Float(), nullable=True),
        sa.Column('before_tp_type', sa.String(20), nullable=False, server_default='percentage'),
        sa.Column('tp_reached_enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('before_tp_email_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('tp_reached_email_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['token_alert_id'], ['token_alerts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tp_alerts_token_alert_id', 'tp_alerts', ['token_alert_id'])


def downgrade() -> None:
    """Drop price alert tables."""
    op.drop_index('ix_tp_alerts_token_alert_id', table_name='tp_alerts')
    op.drop_table('tp_alerts')
    op.drop_index('ix_token_alerts_token_symbol', table_name='token_alerts')
    op.drop_index('ix_token_alerts_alert_configuration_id', table_name='token_alerts')
    op.drop_table('token_alerts')
    op.drop_index('ix_alert_configurations_user_id', table_name='alert_configurations')
    op.drop_table('alert_configurations')
    op.drop_table('step_alerts')
    op.drop_table('strategy_alerts')
    op.drop_index('ix_strategy_steps_state', table_name='strategy_steps')
    op.drop_index('ix_strategy_steps_strategy_id', table_name='strategy_steps')
    op.drop_table('strategy_steps')
    op.drop_index('ix_strategies_status', table_name='strategies')
    op.drop_index('ix_strategies_asset', table_name='strategies')
    op.drop_index('ix_strategies_user_id', table_name='strategies')
    op.drop_table('strategies')
    op.drop_index('ix_transactions_user_symbol', table_name='transactions')
    op.drop_index('ix_transactions_user_id', table_name='transactions')
    op.drop_table('transactions')
    op.drop_index('ix_tokens_symbol', table_name='tokens')
    op.drop_index('ix_tokens_cmc_id', table_name='tokens')
    op.drop_table('tokens')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
