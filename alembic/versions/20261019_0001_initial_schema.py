"""Initial schema for the options trade ledger and pipeline state.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "option_trades",
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("ticker", sa.String(32), nullable=False),
        sa.Column("contract_type", sa.String(8), nullable=False),
        sa.Column("strike", sa.Numeric(18, 4), nullable=False),
        sa.Column("expiration", sa.Date(), nullable=True),
        sa.Column("avg_price", sa.Numeric(18, 4), nullable=False),
        sa.Column("contracts", sa.Integer(), nullable=False),
        sa.Column("open_interest", sa.Integer(), nullable=False),
        sa.Column("premium", sa.Numeric(20, 2), nullable=False),
        sa.Column("implied_vol", sa.Numeric(12, 6), nullable=False),
        sa.Column("trade_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("external_id"),
    )
    op.create_index("idx_option_trades_trade_time", "option_trades", ["trade_time"])
    op.create_index("idx_option_trades_ticker_time", "option_trades", ["ticker", "trade_time"])

    # Watermark and other progress markers
    op.create_table(
        "pipeline_state",
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("ts_value", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade() -> None:
    op.drop_table("pipeline_state")
    op.drop_index("idx_option_trades_ticker_time", table_name="option_trades")
    op.drop_index("idx_option_trades_trade_time", table_name="option_trades")
    op.drop_table("option_trades")
