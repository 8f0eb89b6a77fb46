"""Trailing-window leaderboards and flow tallies.

Read-only over the store. Each job queries the ledger and hands a
non-empty result to the dispatcher.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from options_flow_tracker.alerter.dispatcher import AlertDispatcher
    from options_flow_tracker.ingestor.models import FlowTally, LeaderboardRow
    from options_flow_tracker.storage.store import FlowStore

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5


class Aggregator:
    """Posts top movers and call/put tallies for trailing windows."""

    def __init__(
        self,
        store: FlowStore,
        dispatcher: AlertDispatcher,
        *,
        top_k: int = DEFAULT_TOP_K,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._top_k = top_k
        self._clock = clock or (lambda: datetime.now(UTC))

    async def top_movers(self, window_minutes: int) -> list[LeaderboardRow]:
        return await self._store.top_movers(window_minutes, self._top_k, now=self._clock())

    async def post_top_movers(self, window_minutes: int) -> list[LeaderboardRow]:
        """Compute and post the leaderboard for one window.

        Returns:
            The rows posted (empty when nothing traded in the window).
        """
        now = self._clock()
        rows = await self._store.top_movers(window_minutes, self._top_k, now=now)
        if not rows:
            logger.info("No trades in the last %d minutes; skipping leaderboard", window_minutes)
            return []
        result = await self._dispatcher.post_leaderboard(window_minutes, rows, now=now)
        if result.success:
            logger.info("Posted %d-minute leaderboard (%d rows)", window_minutes, len(rows))
        return rows

    async def post_flow_tally(self, window_minutes: int) -> FlowTally | None:
        tally = await self._store.flow_tally(window_minutes, now=self._clock())
        if tally.is_empty:
            logger.info("No trades in the past %d minutes; skipping flow tally", window_minutes)
            return None
        await self._dispatcher.post_flow_tally(tally)
        return tally
