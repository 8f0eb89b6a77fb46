"""Data models for trade classification."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from options_flow_tracker.ingestor.models import Trade


class AlertTier(str, Enum):
    """Alert categories a trade can qualify for."""

    FLOW_ALERT = "flow_alert"
    PUT_FLOW_ALERT = "put_flow_alert"
    MEGA_WHALE = "mega_whale"
    RISKY_BIZ = "risky_biz"
    PENNY_WHALE = "penny_whale"


@dataclass(frozen=True)
class ClassifiedTrade:
    """A trade together with the tiers it matched and the derived metrics."""

    trade: Trade
    tiers: frozenset[AlertTier]
    days_to_expiry: int
    per_contract_price: Decimal
    classified_at: datetime

    @property
    def should_alert(self) -> bool:
        return bool(self.tiers)

    def to_dict(self) -> dict[str, Any]:
        return {
            "trade": self.trade.to_dict(),
            "tiers": sorted(t.value for t in self.tiers),
            "days_to_expiry": self.days_to_expiry,
            "per_contract_price": str(self.per_contract_price),
            "classified_at": self.classified_at.isoformat(),
        }
