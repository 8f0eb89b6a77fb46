"""Data models for the ingestor module."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class ContractType(str, Enum):
    """Option contract side."""

    CALL = "call"
    PUT = "put"


@dataclass(frozen=True)
class Trade:
    """A normalized options trade.

    Produced by the normalizer from a raw feed record and persisted
    verbatim into the ledger. ``external_id`` is the ledger's unique key.
    """

    external_id: str
    ticker: str
    contract_type: ContractType
    strike: Decimal
    expiration: date | None
    avg_price: Decimal
    contracts: int
    open_interest: int
    premium: Decimal
    implied_vol: Decimal
    trade_time: datetime
    source: str

    @property
    def is_call(self) -> bool:
        return self.contract_type == ContractType.CALL

    @property
    def is_put(self) -> bool:
        return self.contract_type == ContractType.PUT

    @property
    def dedup_key(self) -> str:
        """Composite key used by the in-process session cache."""
        expiration = self.expiration.isoformat() if self.expiration else ""
        return "|".join(
            (
                self.ticker,
                self.contract_type.value,
                str(self.strike),
                expiration,
                self.trade_time.isoformat(),
                str(self.premium),
            )
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "external_id": self.external_id,
            "ticker": self.ticker,
            "contract_type": self.contract_type.value,
            "strike": str(self.strike),
            "expiration": self.expiration.isoformat() if self.expiration else None,
            "avg_price": str(self.avg_price),
            "contracts": self.contracts,
            "open_interest": self.open_interest,
            "premium": str(self.premium),
            "implied_vol": str(self.implied_vol),
            "trade_time": self.trade_time.isoformat(),
            "source": self.source,
        }


@dataclass(frozen=True)
class LeaderboardRow:
    """Total premium traded in one ticker over a trailing window."""

    ticker: str
    total_premium: Decimal


@dataclass(frozen=True)
class FlowTally:
    """Call vs put activity over a trailing window."""

    window_minutes: int
    call_count: int
    put_count: int
    call_premium: Decimal
    put_premium: Decimal

    @property
    def is_empty(self) -> bool:
        return self.call_count == 0 and self.put_count == 0

    @property
    def call_put_ratio(self) -> Decimal | None:
        """Call count divided by put count, None when there were no puts."""
        if self.put_count == 0:
            return None
        return Decimal(self.call_count) / Decimal(self.put_count)

    @property
    def bias(self) -> str:
        if self.call_premium > self.put_premium:
            return "bullish"
        if self.put_premium > self.call_premium:
            return "bearish"
        return "neutral"
