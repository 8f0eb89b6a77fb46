"""Tests for alert payload formatting."""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import SESSION_NOW, make_trade

from options_flow_tracker.alerter.formatter import (
    AlertFormatter,
    format_saved_trade,
    format_strike,
    format_usd,
)
from options_flow_tracker.detector.classifier import TradeClassifier
from options_flow_tracker.detector.models import AlertTier
from options_flow_tracker.ingestor.models import ContractType, FlowTally, LeaderboardRow


@pytest.fixture
def formatter() -> AlertFormatter:
    return AlertFormatter(alert_role_id="111", topdog_role_id="222")


@pytest.fixture
def whale():
    trade = make_trade(
        ticker="NVDA",
        premium=Decimal("1200000"),
        avg_price=Decimal("0.50"),
        contracts=24000,
    )
    return TradeClassifier().classify(trade, now=SESSION_NOW)


class TestHelpers:
    """Tests for number formatting helpers."""

    @pytest.mark.parametrize(
        ("amount", "expected"),
        [
            (Decimal("1200000"), "$1,200,000"),
            (Decimal("500000.00"), "$500,000"),
            (Decimal("1234.5"), "$1,234.50"),
        ],
    )
    def test_format_usd(self, amount: Decimal, expected: str) -> None:
        assert format_usd(amount) == expected

    def test_format_strike(self) -> None:
        assert format_strike(Decimal("150.0000")) == "$150"
        assert format_strike(Decimal("12.5")) == "$12.5"

    def test_saved_trade_line(self) -> None:
        line = format_saved_trade(make_trade())
        assert line.startswith("Saved trade: AAPL CALL $150 exp 2026-10-25")
        assert line.endswith("Premium $100,000")


class TestTradePayloads:
    """Tests for per-tier trade payloads."""

    def test_flow_alert_is_embed_with_mention(self, formatter: AlertFormatter, whale) -> None:
        payload = formatter.format(whale, AlertTier.FLOW_ALERT)

        assert payload.text is None
        assert payload.mention == "<@&111>"
        assert payload.embed is not None
        assert payload.embed.title == "📊 Flow Alert"
        fields = {f.name: f.value for f in payload.embed.fields}
        assert fields["Ticker"] == "NVDA"
        assert fields["Type"] == "CALL"
        assert fields["Premium"] == "$1,200,000"
        assert "OI" in fields

    def test_mega_whale_headline(self, formatter: AlertFormatter, whale) -> None:
        payload = formatter.format(whale, AlertTier.MEGA_WHALE)

        assert payload.text == (
            "💥 Someone just bought **$1,200,000** of **NVDA calls** expiring in 5 days!"
        )
        assert payload.mention is None
        assert payload.embed is not None

    def test_risky_biz_headline(self, formatter: AlertFormatter, whale) -> None:
        payload = formatter.format(whale, AlertTier.RISKY_BIZ)
        assert payload.text is not None
        assert "expiring in only 5 days!" in payload.text

    def test_penny_whale_card(self, formatter: AlertFormatter, whale) -> None:
        payload = formatter.format(whale, AlertTier.PENNY_WHALE)

        assert payload.text is not None
        assert payload.text.startswith("🐋 Penny Whale Alert")
        assert "Price per contract: **$0.50**" in payload.text
        assert "https://robinhood.com/options/chains/NVDA" in payload.text
        fields = {f.name: f.value for f in payload.embed.fields}
        assert "OI" not in fields
        assert fields["Avg Price"] == "$0.50"

    def test_put_label(self, formatter: AlertFormatter) -> None:
        classified = TradeClassifier().classify(
            make_trade(contract_type=ContractType.PUT, premium=Decimal("2000000")),
            now=SESSION_NOW,
        )
        payload = formatter.format(classified, AlertTier.PUT_FLOW_ALERT)
        assert payload.embed.title == "🔻 PUT Flow Alert"

    def test_no_role_no_mention(self, whale) -> None:
        payload = AlertFormatter().format(whale, AlertTier.FLOW_ALERT)
        assert payload.mention is None


class TestAggregatePayloads:
    """Tests for leaderboard and tally payloads."""

    def test_leaderboard(self, formatter: AlertFormatter) -> None:
        rows = [
            LeaderboardRow("MSFT", Decimal("500000")),
            LeaderboardRow("AAPL", Decimal("300000")),
        ]

        payload = formatter.format_leaderboard(30, rows, now=SESSION_NOW)

        assert payload.mention == "<@&222>"
        assert payload.embed.title == "🔥 Top Dogs — Last 30 minutes"
        description = payload.embed.description
        assert "#1: **MSFT** — $500,000" in description
        assert "#2: **AAPL** — $300,000" in description
        assert description.index("MSFT") < description.index("AAPL")

    def test_flow_tally_bullish(self, formatter: AlertFormatter) -> None:
        tally = FlowTally(30, call_count=6, put_count=3, call_premium=Decimal("900000"), put_premium=Decimal("100000"))

        payload = formatter.format_flow_tally(tally)

        assert payload.embed is None
        assert "Flow Tally (Past 30 Min)" in payload.text
        assert "CALLS: 6 ($900,000)" in payload.text
        assert "Ratio: 2.00:1 (CALL:PUT)" in payload.text
        assert "Bullish" in payload.text

    def test_flow_tally_without_puts(self, formatter: AlertFormatter) -> None:
        tally = FlowTally(30, call_count=4, put_count=0, call_premium=Decimal("1"), put_premium=Decimal("0"))
        assert "Ratio: 4:1" in formatter.format_flow_tally(tally).text
