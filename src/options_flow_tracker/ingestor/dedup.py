"""Two-tier duplicate suppression ahead of the ledger.

The persisted watermark rejects anything at or before the newest trade
already stored; the session cache catches repeats inside the current
process cheaply. Neither is authoritative: the ledger's unique key is.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from options_flow_tracker.context import PipelineContext
    from options_flow_tracker.ingestor.models import Trade

logger = logging.getLogger(__name__)

DEFAULT_SESSION_CACHE_SIZE = 5000


class SessionDedupCache:
    """Bounded FIFO set of composite trade keys."""

    def __init__(self, capacity: int = DEFAULT_SESSION_CACHE_SIZE) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._keys: OrderedDict[str, None] = OrderedDict()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def add(self, key: str) -> bool:
        """Insert ``key``; returns False if it was already present.

        Evicts the oldest key once capacity is exceeded. A repeat does not
        refresh the key's position.
        """
        if key in self._keys:
            return False
        self._keys[key] = None
        while len(self._keys) > self._capacity:
            self._keys.popitem(last=False)
        return True

    def discard(self, key: str) -> None:
        self._keys.pop(key, None)

    def clear(self) -> None:
        self._keys.clear()


class Deduplicator:
    """Watermark and session-cache filter."""

    def admit(self, ctx: PipelineContext, trade: Trade) -> bool:
        """Decide whether ``trade`` should be offered to the store.

        Rejects trades at or before the watermark (inclusive), then trades
        whose composite key is already cached. Admitted keys are cached.
        """
        if ctx.watermark is not None and trade.trade_time <= ctx.watermark:
            logger.debug(
                "Skipping %s at %s: not after watermark %s",
                trade.external_id,
                trade.trade_time.isoformat(),
                ctx.watermark.isoformat(),
            )
            return False
        if not ctx.session_cache.add(trade.dedup_key):
            logger.debug("Skipping %s: seen this session", trade.external_id)
            return False
        return True
