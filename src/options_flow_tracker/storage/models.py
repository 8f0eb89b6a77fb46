"""SQLAlchemy models for persistent storage.

This module defines the database schema for the options trade ledger
and the small key-value table holding pipeline progress (the watermark).
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, Index, Integer, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class OptionTradeModel(Base):
    """Persisted options trade (append-only ledger)."""

    __tablename__ = "option_trades"

    external_id: Mapped[str] = mapped_column(String(255), primary_key=True, nullable=False)

    ticker: Mapped[str] = mapped_column(String(32), nullable=False)
    contract_type: Mapped[str] = mapped_column(String(8), nullable=False)
    strike: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    expiration: Mapped[date | None] = mapped_column(Date, nullable=True)

    avg_price: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    contracts: Mapped[int] = mapped_column(Integer, nullable=False)
    open_interest: Mapped[int] = mapped_column(Integer, nullable=False)
    premium: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)
    implied_vol: Mapped[Decimal] = mapped_column(Numeric(12, 6), nullable=False)

    trade_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    source: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_option_trades_trade_time", "trade_time"),
        Index("idx_option_trades_ticker_time", "ticker", "trade_time"),
    )


class PipelineStateModel(Base):
    """Key-value pipeline progress markers."""

    __tablename__ = "pipeline_state"

    key: Mapped[str] = mapped_column(String(64), primary_key=True, nullable=False)
    ts_value: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
