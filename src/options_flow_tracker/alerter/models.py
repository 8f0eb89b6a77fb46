"""Data models for outbound alerts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Destination(str, Enum):
    """Logical alert destinations, each mapped to one channel."""

    FLOW_ALERTS = "flow_alerts"
    PUT_FLOW = "put_flow"
    TOP_DOGS = "top_dogs"
    RISKY_BIZ = "risky_biz"
    PENNY_WHALES = "penny_whales"
    FLOW_LOG = "flow_log"
    LOG = "log"


@dataclass(frozen=True)
class EmbedField:
    name: str
    value: str
    inline: bool = True


@dataclass(frozen=True)
class AlertEmbed:
    """Structured summary rendered as a rich card where the channel supports one."""

    title: str
    description: str = ""
    color: int = 0
    fields: tuple[EmbedField, ...] = ()
    footer: str | None = None
    timestamp: datetime | None = None

    def to_discord(self) -> dict[str, Any]:
        embed: dict[str, Any] = {"title": self.title, "color": self.color}
        if self.description:
            embed["description"] = self.description
        if self.fields:
            embed["fields"] = [
                {"name": f.name, "value": f.value, "inline": f.inline} for f in self.fields
            ]
        if self.footer:
            embed["footer"] = {"text": self.footer}
        if self.timestamp is not None:
            embed["timestamp"] = self.timestamp.isoformat()
        return embed


@dataclass(frozen=True)
class AlertPayload:
    """What to deliver to one destination.

    ``text`` is sent first (split into ordered chunks when long), then the
    embed. ``mention`` rides along with the embed, or is prefixed to the
    text when there is no embed.
    """

    text: str | None = None
    embed: AlertEmbed | None = None
    mention: str | None = None


@dataclass(frozen=True)
class OutboundMessage:
    """A single wire message handed to a channel."""

    content: str | None = None
    embed: AlertEmbed | None = None


@dataclass
class DeliveryResult:
    """Outcome of delivering one payload to one destination."""

    destination: Destination
    success: bool
    messages_sent: int = 0
    error: str | None = None
    skipped: bool = False


@dataclass
class DispatchResult:
    """Outcome of fanning one trade out to its destinations."""

    results: list[DeliveryResult] = field(default_factory=list)

    @property
    def attempted(self) -> list[DeliveryResult]:
        return [r for r in self.results if not r.skipped]

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.attempted if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.attempted if not r.success)

    @property
    def all_succeeded(self) -> bool:
        return self.failure_count == 0
