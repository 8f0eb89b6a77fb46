"""Tests for the alert tier classifier."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from conftest import SESSION_NOW, make_trade

from options_flow_tracker.detector.classifier import (
    ClassifierConfig,
    TradeClassifier,
    classify,
    days_to_expiry,
    per_contract_price,
)
from options_flow_tracker.detector.models import AlertTier
from options_flow_tracker.ingestor.models import ContractType

# SESSION_NOW is 2026-10-20 15:00 UTC; this expiry is five days out (rounded up).
FIVE_DAYS_OUT = date(2026, 10, 25)


@pytest.fixture
def classifier() -> TradeClassifier:
    return TradeClassifier()


class TestDerivedMetrics:
    """Tests for days_to_expiry and per_contract_price."""

    def test_days_to_expiry_rounds_up(self) -> None:
        assert days_to_expiry(make_trade(expiration=FIVE_DAYS_OUT), SESSION_NOW) == 5

    def test_days_to_expiry_same_day_is_zero(self) -> None:
        assert days_to_expiry(make_trade(expiration=date(2026, 10, 20)), SESSION_NOW) == 0

    def test_days_to_expiry_expired_is_negative(self) -> None:
        assert days_to_expiry(make_trade(expiration=date(2026, 10, 18)), SESSION_NOW) < 0

    def test_days_to_expiry_unknown(self) -> None:
        assert days_to_expiry(make_trade(expiration=None), SESSION_NOW) == 0

    def test_price_prefers_quoted_average(self) -> None:
        trade = make_trade(avg_price=Decimal("0.75"), premium=Decimal("100000"), contracts=10)
        assert per_contract_price(trade) == Decimal("0.75")

    def test_price_derived_from_premium(self) -> None:
        trade = make_trade(avg_price=Decimal("0"), premium=Decimal("100000"), contracts=2000)
        assert per_contract_price(trade) == Decimal("0.5")

    def test_price_zero_without_inputs(self) -> None:
        trade = make_trade(avg_price=Decimal("0"), contracts=0)
        assert per_contract_price(trade) == Decimal("0")


class TestTradeClassifier:
    """Tests for the tier rule table."""

    def test_large_short_dated_cheap_call_matches_four_tiers(
        self, classifier: TradeClassifier
    ) -> None:
        trade = make_trade(
            premium=Decimal("1200000"),
            avg_price=Decimal("0.50"),
            contracts=24000,
            expiration=FIVE_DAYS_OUT,
        )

        result = classifier.classify(trade, now=SESSION_NOW)

        assert result.tiers == {
            AlertTier.FLOW_ALERT,
            AlertTier.MEGA_WHALE,
            AlertTier.RISKY_BIZ,
            AlertTier.PENNY_WHALE,
        }
        assert result.days_to_expiry == 5
        assert result.per_contract_price == Decimal("0.50")
        assert result.should_alert

    def test_below_floor_matches_nothing(self, classifier: TradeClassifier) -> None:
        result = classifier.classify(make_trade(premium=Decimal("40000")), now=SESSION_NOW)
        assert result.tiers == frozenset()
        assert not result.should_alert

    def test_floor_is_inclusive(self, classifier: TradeClassifier) -> None:
        result = classifier.classify(make_trade(premium=Decimal("50000")), now=SESSION_NOW)
        assert result.tiers == {AlertTier.FLOW_ALERT}

    def test_put_gets_put_flow_only(self, classifier: TradeClassifier) -> None:
        trade = make_trade(
            contract_type=ContractType.PUT,
            premium=Decimal("2000000"),
            avg_price=Decimal("5.00"),
            expiration=FIVE_DAYS_OUT,
        )

        result = classifier.classify(trade, now=SESSION_NOW)

        assert result.tiers == {AlertTier.PUT_FLOW_ALERT}

    def test_cheap_put_is_penny_whale(self, classifier: TradeClassifier) -> None:
        trade = make_trade(
            contract_type=ContractType.PUT,
            premium=Decimal("150000"),
            avg_price=Decimal("0.25"),
        )

        result = classifier.classify(trade, now=SESSION_NOW)

        assert result.tiers == {AlertTier.PUT_FLOW_ALERT, AlertTier.PENNY_WHALE}

    def test_penny_whale_requires_positive_price(self, classifier: TradeClassifier) -> None:
        trade = make_trade(premium=Decimal("150000"), avg_price=Decimal("0"), contracts=0)

        result = classifier.classify(trade, now=SESSION_NOW)

        assert AlertTier.PENNY_WHALE not in result.tiers

    def test_penny_whale_price_boundary(self, classifier: TradeClassifier) -> None:
        at_limit = make_trade(premium=Decimal("100000"), avg_price=Decimal("1.00"))
        above = make_trade(premium=Decimal("100000"), avg_price=Decimal("1.01"))

        assert AlertTier.PENNY_WHALE in classifier.classify(at_limit, now=SESSION_NOW).tiers
        assert AlertTier.PENNY_WHALE not in classifier.classify(above, now=SESSION_NOW).tiers

    @pytest.mark.parametrize(
        ("expiration", "expected"),
        [
            (date(2026, 10, 30), True),  # 10 days
            (date(2026, 10, 31), False),  # 11 days
            (date(2026, 10, 20), False),  # expires today
            (None, False),
        ],
    )
    def test_risky_biz_expiry_window(
        self, classifier: TradeClassifier, expiration: date | None, expected: bool
    ) -> None:
        trade = make_trade(premium=Decimal("300000"), avg_price=Decimal("3.00"), expiration=expiration)

        tiers = classifier.classify(trade, now=SESSION_NOW).tiers

        assert (AlertTier.RISKY_BIZ in tiers) is expected

    def test_mega_whale_threshold(self, classifier: TradeClassifier) -> None:
        just_below = make_trade(premium=Decimal("999999.99"), avg_price=Decimal("5"))
        at = make_trade(premium=Decimal("1000000"), avg_price=Decimal("5"))

        assert AlertTier.MEGA_WHALE not in classifier.classify(just_below, now=SESSION_NOW).tiers
        assert AlertTier.MEGA_WHALE in classifier.classify(at, now=SESSION_NOW).tiers

    def test_custom_floor(self) -> None:
        classifier = TradeClassifier(ClassifierConfig(min_premium=Decimal("200000")))
        result = classifier.classify(make_trade(premium=Decimal("150000"), avg_price=Decimal("5")), now=SESSION_NOW)
        assert result.tiers == frozenset()

    def test_module_level_classify(self) -> None:
        trade = make_trade(premium=Decimal("40000"))
        assert classify(trade, now=SESSION_NOW) == frozenset()
        assert classify(trade, now=SESSION_NOW, min_premium=Decimal("30000")) == {AlertTier.FLOW_ALERT}

    def test_to_dict(self, classifier: TradeClassifier) -> None:
        data = classifier.classify(make_trade(), now=SESSION_NOW).to_dict()
        assert data["tiers"] == ["flow_alert"]
        assert data["trade"]["ticker"] == "AAPL"
