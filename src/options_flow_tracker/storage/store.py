"""Persistence store for the trade ledger and the watermark.

``FlowStore`` is the narrow interface the poller, the aggregator and
external readers use. Each call runs in its own committed session.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from options_flow_tracker.storage.repos import (
    WATERMARK_KEY,
    OptionTradeDTO,
    OptionTradeRepository,
    PipelineStateRepository,
    as_utc,
)

if TYPE_CHECKING:
    from options_flow_tracker.ingestor.models import FlowTally, LeaderboardRow, Trade
    from options_flow_tracker.storage.database import DatabaseManager

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the store is called with invalid arguments."""


def _require_aware(value: datetime, name: str) -> datetime:
    if value.tzinfo is None:
        raise StoreError(f"{name} must be timezone-aware")
    return value.astimezone(UTC)


class FlowStore:
    """Ledger + watermark access over a DatabaseManager."""

    def __init__(self, db_manager: DatabaseManager) -> None:
        self._db = db_manager
        self._watermark_lock = asyncio.Lock()

    async def insert_if_new(self, trade: Trade) -> bool:
        """Persist ``trade`` unless its external id is already in the ledger.

        Returns:
            True if the row was created by this call.
        """
        dto = OptionTradeDTO.from_trade(trade)
        dto.trade_time = _require_aware(dto.trade_time, "trade_time")
        async with self._db.get_async_session() as session:
            return await OptionTradeRepository(session).insert_if_new(dto)

    async def top_movers(
        self, window_minutes: int, k: int, *, now: datetime | None = None
    ) -> list[LeaderboardRow]:
        """Top ``k`` tickers by summed premium over the trailing window."""
        if window_minutes <= 0 or k <= 0:
            return []
        current = _require_aware(now, "now") if now is not None else datetime.now(UTC)
        since = current - timedelta(minutes=window_minutes)
        async with self._db.get_async_session() as session:
            return await OptionTradeRepository(session).top_movers(since=since, limit=k)

    async def flow_tally(self, window_minutes: int, *, now: datetime | None = None) -> FlowTally:
        current = _require_aware(now, "now") if now is not None else datetime.now(UTC)
        since = current - timedelta(minutes=window_minutes)
        async with self._db.get_async_session() as session:
            return await OptionTradeRepository(session).flow_tally(
                since=since, window_minutes=window_minutes
            )

    async def list_recent(self, since: datetime, *, limit: int = 100) -> list[Trade]:
        """Raw ledger rows at or after ``since``, newest first."""
        since = _require_aware(since, "since")
        async with self._db.get_async_session() as session:
            rows = await OptionTradeRepository(session).list_since(since=since, limit=limit)
        return [row.to_trade() for row in rows]

    async def prune_before(self, cutoff: datetime) -> int:
        cutoff = _require_aware(cutoff, "cutoff")
        async with self._db.get_async_session() as session:
            deleted = await OptionTradeRepository(session).delete_before(cutoff=cutoff)
        if deleted:
            logger.info("Pruned %d ledger rows older than %s", deleted, cutoff.isoformat())
        return deleted

    async def get_watermark(self) -> datetime | None:
        async with self._db.get_async_session() as session:
            value = await PipelineStateRepository(session).get_timestamp(WATERMARK_KEY)
        return as_utc(value) if value is not None else None

    async def set_watermark(self, value: datetime) -> datetime:
        """Advance the watermark to ``value``; never moves it backwards.

        Returns:
            The persisted watermark after the call.
        """
        value = _require_aware(value, "watermark")
        async with self._watermark_lock:
            async with self._db.get_async_session() as session:
                return await PipelineStateRepository(session).advance_timestamp(WATERMARK_KEY, value)
