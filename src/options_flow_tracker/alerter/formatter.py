"""Alert message formatter.

This module turns classified trades, leaderboards and flow tallies into
destination payloads: a headline text where the tier has one, and a
structured embed carrying the trade details.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from options_flow_tracker.alerter.models import AlertEmbed, AlertPayload, EmbedField
from options_flow_tracker.detector.models import AlertTier

if TYPE_CHECKING:
    from options_flow_tracker.detector.models import ClassifiedTrade
    from options_flow_tracker.ingestor.models import FlowTally, LeaderboardRow, Trade

ROBINHOOD_CHAIN_URL = "https://robinhood.com/options/chains/{ticker}"

# Discord embed colors (decimal values)
COLOR_FLOW = 0x1ABC9C
COLOR_PUT = 0xE74C3C
COLOR_MEGA = 0xE67E22
COLOR_RISKY = 0xE74C3C
COLOR_PENNY = 0x3498DB
COLOR_LEADERBOARD = 0xF39C12

TIER_TITLES = {
    AlertTier.FLOW_ALERT: "📊 Flow Alert",
    AlertTier.PUT_FLOW_ALERT: "🔻 PUT Flow Alert",
    AlertTier.MEGA_WHALE: "🐳 Mega Whale Alert +$1M",
    AlertTier.RISKY_BIZ: "⚠️ Risky Biz Flow Alert (<10d Expiry)",
    AlertTier.PENNY_WHALE: "🐋 Penny Whale Flow Alert (<$1 Contracts)",
}

TIER_COLORS = {
    AlertTier.FLOW_ALERT: COLOR_FLOW,
    AlertTier.PUT_FLOW_ALERT: COLOR_PUT,
    AlertTier.MEGA_WHALE: COLOR_MEGA,
    AlertTier.RISKY_BIZ: COLOR_RISKY,
    AlertTier.PENNY_WHALE: COLOR_PENNY,
}


def format_usd(amount: Decimal) -> str:
    """Format a dollar amount with commas; cents only when present."""
    if amount == amount.to_integral_value():
        return f"${amount:,.0f}"
    return f"${amount:,.2f}"


def format_strike(strike: Decimal) -> str:
    normalized = strike.normalize()
    if normalized == normalized.to_integral_value():
        return f"${normalized:.0f}"
    return f"${normalized:f}"


def chain_link(ticker: str) -> str:
    return ROBINHOOD_CHAIN_URL.format(ticker=ticker)


def role_mention(role_id: str | None) -> str | None:
    return f"<@&{role_id}>" if role_id else None


def contract_label(trade: Trade) -> str:
    return "calls" if trade.is_call else "puts"


def format_saved_trade(trade: Trade) -> str:
    """One-line progress record for a newly persisted trade."""
    expiry = trade.expiration.isoformat() if trade.expiration else "N/A"
    return (
        f"Saved trade: {trade.ticker} {trade.contract_type.value.upper()} "
        f"{format_strike(trade.strike)} exp {expiry} — Premium {format_usd(trade.premium)}"
    )


class AlertFormatter:
    """Builds per-tier payloads.

    Role ids are optional; without them payloads carry no mention.
    """

    def __init__(
        self,
        *,
        alert_role_id: str | None = None,
        topdog_role_id: str | None = None,
    ) -> None:
        self.alert_mention = role_mention(alert_role_id)
        self.topdog_mention = role_mention(topdog_role_id)

    def format(self, classified: ClassifiedTrade, tier: AlertTier) -> AlertPayload:
        """Format the payload for one tier of a classified trade."""
        embed = self._build_trade_embed(classified, tier)
        if tier in (AlertTier.FLOW_ALERT, AlertTier.PUT_FLOW_ALERT):
            return AlertPayload(embed=embed, mention=self.alert_mention)
        return AlertPayload(text=self._build_headline(classified, tier), embed=embed)

    def _build_headline(self, classified: ClassifiedTrade, tier: AlertTier) -> str:
        trade = classified.trade
        amount = format_usd(trade.premium)
        what = f"**{trade.ticker} {contract_label(trade)}**"

        if tier == AlertTier.MEGA_WHALE:
            return (
                f"💥 Someone just bought **{amount}** of {what} "
                f"expiring in {classified.days_to_expiry} days!"
            )
        if tier == AlertTier.RISKY_BIZ:
            return (
                f"⏳ Someone just bought **{amount}** of {what} "
                f"expiring in only {classified.days_to_expiry} days!"
            )
        expiry = trade.expiration.isoformat() if trade.expiration else "N/A"
        return (
            f"🐋 Penny Whale Alert\n"
            f"Someone just bought **{amount}** of {what}\n"
            f"Strike: **{format_strike(trade.strike)}** | Expiry: **{expiry}**\n"
            f"Price per contract: **${classified.per_contract_price:.2f}** | "
            f"Contracts: **{trade.contracts}**\n"
            f"{chain_link(trade.ticker)}"
        )

    def _build_trade_embed(self, classified: ClassifiedTrade, tier: AlertTier) -> AlertEmbed:
        trade = classified.trade
        expiry = trade.expiration.isoformat() if trade.expiration else "N/A"

        # Penny and risky cards show the derived per-contract price.
        if tier in (AlertTier.PENNY_WHALE, AlertTier.RISKY_BIZ):
            price = f"${classified.per_contract_price:.2f}"
        else:
            price = f"${trade.avg_price}"

        fields = [
            EmbedField("Ticker", trade.ticker),
            EmbedField("Type", trade.contract_type.value.upper()),
            EmbedField("Strike", format_strike(trade.strike)),
            EmbedField("Expiry", expiry),
            EmbedField("Avg Price", price),
            EmbedField("Contracts", str(trade.contracts)),
        ]
        if tier != AlertTier.PENNY_WHALE:
            fields.append(EmbedField("OI", str(trade.open_interest)))
        fields.append(EmbedField("Premium", format_usd(trade.premium)))

        return AlertEmbed(
            title=TIER_TITLES[tier],
            description=f"[View on Robinhood]({chain_link(trade.ticker)})",
            color=TIER_COLORS[tier],
            fields=tuple(fields),
            footer=f"Trade Time: {trade.trade_time.isoformat()}",
        )

    def format_leaderboard(
        self, window_minutes: int, rows: list[LeaderboardRow], *, now: datetime
    ) -> AlertPayload:
        lines = [
            f"🪙 The most money flowed into these companies in the last {window_minutes} minutes:",
            "",
        ]
        for i, row in enumerate(rows, start=1):
            lines.append(f"#{i}: **{row.ticker}** — {format_usd(row.total_premium)}")
            lines.append(chain_link(row.ticker))
            lines.append("")
        embed = AlertEmbed(
            title=f"🔥 Top Dogs — Last {window_minutes} minutes",
            description="\n".join(lines).rstrip(),
            color=COLOR_LEADERBOARD,
            timestamp=now,
        )
        return AlertPayload(embed=embed, mention=self.topdog_mention)

    def format_flow_tally(self, tally: FlowTally) -> AlertPayload:
        ratio = tally.call_put_ratio
        ratio_text = f"{ratio:.2f}" if ratio is not None else str(tally.call_count)
        if tally.bias == "bullish":
            sentiment = "🟢 **Bullish bias**"
        elif tally.bias == "bearish":
            sentiment = "🔴 **Bearish bias**"
        else:
            sentiment = "⚪ **Neutral flow**"
        text = "\n".join(
            [
                f"📊 **Flow Tally (Past {tally.window_minutes} Min)**",
                f"CALLS: {tally.call_count} ({format_usd(tally.call_premium)})",
                f"PUTS: {tally.put_count} ({format_usd(tally.put_premium)})",
                f"Ratio: {ratio_text}:1 (CALL:PUT)",
                sentiment,
            ]
        )
        return AlertPayload(text=text)
