"""Repository pattern implementations for data access.

This module provides data access abstractions for the options trade
ledger and the pipeline progress table.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from options_flow_tracker.ingestor.models import (
    ContractType,
    FlowTally,
    LeaderboardRow,
    Trade,
)
from options_flow_tracker.storage.models import OptionTradeModel, PipelineStateModel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

WATERMARK_KEY = "last_trade_time"


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _to_decimal(value: object) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass
class OptionTradeDTO:
    """Data transfer object for persisted trades."""

    external_id: str
    ticker: str
    contract_type: str
    strike: Decimal
    expiration: date | None
    avg_price: Decimal
    contracts: int
    open_interest: int
    premium: Decimal
    implied_vol: Decimal
    trade_time: datetime
    source: str
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: OptionTradeModel) -> OptionTradeDTO:
        return cls(
            external_id=model.external_id,
            ticker=model.ticker,
            contract_type=model.contract_type,
            strike=_to_decimal(model.strike),
            expiration=model.expiration,
            avg_price=_to_decimal(model.avg_price),
            contracts=model.contracts,
            open_interest=model.open_interest,
            premium=_to_decimal(model.premium),
            implied_vol=_to_decimal(model.implied_vol),
            trade_time=as_utc(model.trade_time),
            source=model.source,
            created_at=as_utc(model.created_at) if model.created_at else None,
        )

    @classmethod
    def from_trade(cls, trade: Trade) -> OptionTradeDTO:
        return cls(
            external_id=trade.external_id,
            ticker=trade.ticker,
            contract_type=trade.contract_type.value,
            strike=trade.strike,
            expiration=trade.expiration,
            avg_price=trade.avg_price,
            contracts=trade.contracts,
            open_interest=trade.open_interest,
            premium=trade.premium,
            implied_vol=trade.implied_vol,
            trade_time=trade.trade_time,
            source=trade.source,
        )

    def to_trade(self) -> Trade:
        return Trade(
            external_id=self.external_id,
            ticker=self.ticker,
            contract_type=ContractType(self.contract_type),
            strike=self.strike,
            expiration=self.expiration,
            avg_price=self.avg_price,
            contracts=self.contracts,
            open_interest=self.open_interest,
            premium=self.premium,
            implied_vol=self.implied_vol,
            trade_time=self.trade_time,
            source=self.source,
        )


class OptionTradeRepository:
    """Repository for the options trade ledger."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _dialect_name(self) -> str:
        return self.session.get_bind().dialect.name

    async def insert_if_new(self, dto: OptionTradeDTO) -> bool:
        """Insert unless ``external_id`` already exists.

        Returns:
            True if a row was created, False on conflict.
        """
        values = {
            "external_id": dto.external_id,
            "ticker": dto.ticker,
            "contract_type": dto.contract_type,
            "strike": dto.strike,
            "expiration": dto.expiration,
            "avg_price": dto.avg_price,
            "contracts": dto.contracts,
            "open_interest": dto.open_interest,
            "premium": dto.premium,
            "implied_vol": dto.implied_vol,
            "trade_time": dto.trade_time,
            "source": dto.source,
            "created_at": datetime.now(UTC),
        }
        if self._dialect_name() == "postgresql":
            stmt = pg_insert(OptionTradeModel).values(**values)
        else:
            stmt = sqlite_insert(OptionTradeModel).values(**values)
        stmt = stmt.on_conflict_do_nothing(index_elements=["external_id"]).returning(
            OptionTradeModel.external_id
        )
        result = await self.session.execute(stmt)
        inserted = result.scalar_one_or_none() is not None
        await self.session.flush()
        return inserted

    async def top_movers(self, *, since: datetime, limit: int) -> list[LeaderboardRow]:
        """Sum premium per ticker since ``since``, largest first, ties by ticker."""
        total = sa.func.sum(OptionTradeModel.premium).label("total_premium")
        result = await self.session.execute(
            select(OptionTradeModel.ticker, total)
            .where(OptionTradeModel.trade_time >= since)
            .group_by(OptionTradeModel.ticker)
            .order_by(total.desc(), OptionTradeModel.ticker.asc())
            .limit(limit)
        )
        return [
            LeaderboardRow(ticker=row.ticker, total_premium=_to_decimal(row.total_premium))
            for row in result.all()
        ]

    async def flow_tally(self, *, since: datetime, window_minutes: int) -> FlowTally:
        result = await self.session.execute(
            select(
                OptionTradeModel.contract_type,
                sa.func.count().label("n"),
                sa.func.sum(OptionTradeModel.premium).label("total"),
            )
            .where(OptionTradeModel.trade_time >= since)
            .group_by(OptionTradeModel.contract_type)
        )
        by_type = {row.contract_type: (int(row.n), _to_decimal(row.total)) for row in result.all()}
        call_count, call_premium = by_type.get(ContractType.CALL.value, (0, Decimal("0")))
        put_count, put_premium = by_type.get(ContractType.PUT.value, (0, Decimal("0")))
        return FlowTally(
            window_minutes=window_minutes,
            call_count=call_count,
            put_count=put_count,
            call_premium=call_premium,
            put_premium=put_premium,
        )

    async def list_since(self, *, since: datetime, limit: int = 100) -> list[OptionTradeDTO]:
        result = await self.session.execute(
            select(OptionTradeModel)
            .where(OptionTradeModel.trade_time >= since)
            .order_by(OptionTradeModel.trade_time.desc(), OptionTradeModel.external_id.asc())
            .limit(limit)
        )
        return [OptionTradeDTO.from_model(m) for m in result.scalars().all()]

    async def delete_before(self, *, cutoff: datetime) -> int:
        result = await self.session.execute(
            delete(OptionTradeModel).where(OptionTradeModel.trade_time < cutoff)
        )
        await self.session.flush()
        return int(result.rowcount or 0)


class PipelineStateRepository:
    """Repository for key-value pipeline progress markers."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_timestamp(self, key: str) -> datetime | None:
        result = await self.session.execute(
            select(PipelineStateModel.ts_value).where(PipelineStateModel.key == key)
        )
        value = result.scalar_one_or_none()
        return as_utc(value) if value is not None else None

    async def advance_timestamp(self, key: str, value: datetime) -> datetime:
        """Store ``value`` unless the stored timestamp is already later.

        Returns:
            The timestamp held after the call.
        """
        now = datetime.now(UTC)
        current = await self.get_timestamp(key)
        if current is None:
            self.session.add(PipelineStateModel(key=key, ts_value=value, updated_at=now))
            await self.session.flush()
            return value
        if value <= current:
            return current
        await self.session.execute(
            sa.update(PipelineStateModel)
            .where(PipelineStateModel.key == key)
            .values(ts_value=value, updated_at=now)
        )
        await self.session.flush()
        return value
