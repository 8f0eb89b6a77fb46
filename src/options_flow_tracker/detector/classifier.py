"""Rule-table trade classifier.

Each alert tier is an independent predicate over the trade and two
derived metrics. A trade gets every tier whose predicate holds.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, time
from decimal import Decimal

from options_flow_tracker.detector.models import AlertTier, ClassifiedTrade
from options_flow_tracker.ingestor.models import Trade

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400
CONTRACT_MULTIPLIER = 100


@dataclass(frozen=True)
class ClassifierConfig:
    """Thresholds for each tier."""

    min_premium: Decimal = Decimal("50000")
    mega_whale_premium: Decimal = Decimal("1000000")
    risky_biz_premium: Decimal = Decimal("300000")
    risky_biz_max_days: int = 10
    penny_whale_premium: Decimal = Decimal("100000")
    penny_whale_max_price: Decimal = Decimal("1.00")


@dataclass(frozen=True)
class TradeFacts:
    """Inputs every tier predicate sees."""

    trade: Trade
    days_to_expiry: int
    per_contract_price: Decimal


TierPredicate = Callable[[TradeFacts, ClassifierConfig], bool]


def days_to_expiry(trade: Trade, now: datetime) -> int:
    """Whole days from ``now`` to expiration midnight UTC, rounded up.

    Unknown expirations count as 0 days.
    """
    if trade.expiration is None:
        return 0
    expires_at = datetime.combine(trade.expiration, time(0, 0), tzinfo=UTC)
    seconds = (expires_at - now).total_seconds()
    return math.ceil(seconds / SECONDS_PER_DAY)


def per_contract_price(trade: Trade) -> Decimal:
    """Quoted average price, else premium spread over contracts, else 0."""
    if trade.avg_price > 0:
        return trade.avg_price
    if trade.contracts > 0:
        return trade.premium / (trade.contracts * CONTRACT_MULTIPLIER)
    return Decimal("0")


TIER_RULES: tuple[tuple[AlertTier, TierPredicate], ...] = (
    (
        AlertTier.FLOW_ALERT,
        lambda f, c: f.trade.is_call and f.trade.premium >= c.min_premium,
    ),
    (
        AlertTier.PUT_FLOW_ALERT,
        lambda f, c: f.trade.is_put and f.trade.premium >= c.min_premium,
    ),
    (
        AlertTier.MEGA_WHALE,
        lambda f, c: f.trade.is_call and f.trade.premium >= c.mega_whale_premium,
    ),
    (
        AlertTier.RISKY_BIZ,
        lambda f, c: (
            f.trade.is_call
            and f.trade.premium >= c.risky_biz_premium
            and 0 < f.days_to_expiry <= c.risky_biz_max_days
        ),
    ),
    (
        AlertTier.PENNY_WHALE,
        lambda f, c: (
            f.trade.premium >= c.penny_whale_premium
            and 0 < f.per_contract_price <= c.penny_whale_max_price
        ),
    ),
)


class TradeClassifier:
    """Applies the tier rule table to persisted trades."""

    def __init__(self, config: ClassifierConfig | None = None) -> None:
        self.config = config or ClassifierConfig()

    def classify(self, trade: Trade, *, now: datetime | None = None) -> ClassifiedTrade:
        current = now or datetime.now(UTC)
        facts = TradeFacts(
            trade=trade,
            days_to_expiry=days_to_expiry(trade, current),
            per_contract_price=per_contract_price(trade),
        )
        tiers = frozenset(tier for tier, rule in TIER_RULES if rule(facts, self.config))
        if tiers:
            logger.debug(
                "Trade %s matched %s",
                trade.external_id,
                ", ".join(sorted(t.value for t in tiers)),
            )
        return ClassifiedTrade(
            trade=trade,
            tiers=tiers,
            days_to_expiry=facts.days_to_expiry,
            per_contract_price=facts.per_contract_price,
            classified_at=current,
        )


def classify(
    trade: Trade, *, now: datetime, min_premium: Decimal = ClassifierConfig.min_premium
) -> frozenset[AlertTier]:
    """Tiers ``trade`` qualifies for, with default thresholds apart from ``min_premium``."""
    return TradeClassifier(ClassifierConfig(min_premium=min_premium)).classify(trade, now=now).tiers
