"""Alert fan-out with per-destination pacing.

Each destination has its own lock and rate limiter, so sends to one
destination are serialized and spaced while different destinations
proceed independently. A failing destination never prevents delivery to
the others.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from options_flow_tracker.alerter.models import (
    AlertPayload,
    DeliveryResult,
    Destination,
    DispatchResult,
    OutboundMessage,
)
from options_flow_tracker.detector.models import AlertTier

if TYPE_CHECKING:
    from options_flow_tracker.alerter.formatter import AlertFormatter
    from options_flow_tracker.detector.models import ClassifiedTrade
    from options_flow_tracker.ingestor.models import FlowTally, LeaderboardRow

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL_SECONDS = 0.5
DEFAULT_MAX_MESSAGE_CHARS = 1990

TIER_ROUTES: dict[AlertTier, tuple[Destination, ...]] = {
    AlertTier.FLOW_ALERT: (Destination.FLOW_ALERTS,),
    AlertTier.PUT_FLOW_ALERT: (Destination.PUT_FLOW,),
    AlertTier.MEGA_WHALE: (Destination.FLOW_ALERTS, Destination.TOP_DOGS),
    AlertTier.RISKY_BIZ: (Destination.FLOW_ALERTS, Destination.RISKY_BIZ),
    AlertTier.PENNY_WHALE: (Destination.PENNY_WHALES,),
}

# Tiers are delivered in this order.
TIER_ORDER: tuple[AlertTier, ...] = (
    AlertTier.FLOW_ALERT,
    AlertTier.PUT_FLOW_ALERT,
    AlertTier.MEGA_WHALE,
    AlertTier.RISKY_BIZ,
    AlertTier.PENNY_WHALE,
)


class AlertChannel(Protocol):
    """Delivers single wire messages; raises on failure."""

    name: str

    async def send(self, message: OutboundMessage) -> None: ...


class RateLimiter:
    """Minimum-interval limiter for one destination."""

    def __init__(self, min_interval: float) -> None:
        self._min_interval = max(0.0, min_interval)
        self._last_request_time: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until the next send slot is available."""
        async with self._lock:
            if self._last_request_time is not None:
                elapsed = time.monotonic() - self._last_request_time
                if elapsed < self._min_interval:
                    await asyncio.sleep(self._min_interval - elapsed)
            self._last_request_time = time.monotonic()


def chunk_text(text: str, max_chars: int) -> list[str]:
    """Split ``text`` into ordered chunks of at most ``max_chars``.

    Prefers to break after a newline; otherwise cuts hard. Concatenating
    the chunks reproduces ``text`` exactly.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    chunks: list[str] = []
    remaining = text
    while len(remaining) > max_chars:
        cut = remaining.rfind("\n", 0, max_chars)
        cut = cut + 1 if cut > 0 else max_chars
        chunks.append(remaining[:cut])
        remaining = remaining[cut:]
    if remaining:
        chunks.append(remaining)
    return chunks


class AlertDispatcher:
    """Routes payloads to destinations under a rate-limit discipline."""

    def __init__(
        self,
        channels: Mapping[Destination, AlertChannel],
        formatter: AlertFormatter,
        *,
        min_interval: float = DEFAULT_MIN_INTERVAL_SECONDS,
        max_message_chars: int = DEFAULT_MAX_MESSAGE_CHARS,
        interval_overrides: Mapping[Destination, float] | None = None,
        chunk_overrides: Mapping[Destination, int] | None = None,
        dry_run: bool = False,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            channels: Channel per configured destination. Destinations
                without a channel are skipped.
            formatter: Builds payloads for trades, leaderboards and tallies.
            min_interval: Default spacing between sends to one destination.
            max_message_chars: Default text chunk size.
            interval_overrides: Per-destination spacing.
            chunk_overrides: Per-destination chunk size.
            dry_run: Log instead of sending.
        """
        self._channels = dict(channels)
        self.formatter = formatter
        self._max_message_chars = max_message_chars
        self._chunk_overrides = dict(chunk_overrides or {})
        self._dry_run = dry_run
        overrides = interval_overrides or {}
        self._limiters = {
            dest: RateLimiter(overrides.get(dest, min_interval)) for dest in Destination
        }
        self._locks = {dest: asyncio.Lock() for dest in Destination}

    def is_configured(self, destination: Destination) -> bool:
        return destination in self._channels

    def _build_messages(self, destination: Destination, payload: AlertPayload) -> list[OutboundMessage]:
        max_chars = self._chunk_overrides.get(destination, self._max_message_chars)
        messages: list[OutboundMessage] = []
        text = payload.text
        if payload.mention and payload.embed is None and text:
            text = f"{payload.mention}\n{text}"
        if text:
            messages.extend(OutboundMessage(content=chunk) for chunk in chunk_text(text, max_chars))
        if payload.embed is not None:
            messages.append(OutboundMessage(content=payload.mention, embed=payload.embed))
        return messages

    async def send(self, destination: Destination, payload: AlertPayload) -> DeliveryResult:
        """Deliver one payload to one destination.

        Never raises for delivery problems; the result carries the error.
        """
        channel = self._channels.get(destination)
        if channel is None:
            logger.debug("Destination %s not configured; skipping", destination.value)
            return DeliveryResult(destination=destination, success=False, skipped=True)

        messages = self._build_messages(destination, payload)
        if not messages:
            return DeliveryResult(destination=destination, success=True)

        if self._dry_run:
            logger.info(
                "[DRY RUN] Would send %d message(s) to %s",
                len(messages),
                destination.value,
            )
            return DeliveryResult(destination=destination, success=True, skipped=True)

        sent = 0
        async with self._locks[destination]:
            try:
                for message in messages:
                    await self._limiters[destination].acquire()
                    await channel.send(message)
                    sent += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "Delivery to %s failed after %d/%d message(s): %s",
                    destination.value,
                    sent,
                    len(messages),
                    e,
                )
                return DeliveryResult(
                    destination=destination, success=False, messages_sent=sent, error=str(e)
                )
        return DeliveryResult(destination=destination, success=True, messages_sent=sent)

    async def dispatch(self, classified: ClassifiedTrade) -> DispatchResult:
        """Fan a classified trade out to every destination its tiers route to."""
        result = DispatchResult()
        for tier in TIER_ORDER:
            if tier not in classified.tiers:
                continue
            payload = self.formatter.format(classified, tier)
            for destination in TIER_ROUTES[tier]:
                delivery = await self.send(destination, payload)
                result.results.append(delivery)
        if result.failure_count:
            logger.warning(
                "Alert for %s partially failed: %d/%d destinations succeeded",
                classified.trade.external_id,
                result.success_count,
                result.success_count + result.failure_count,
            )
        return result

    async def post_leaderboard(
        self, window_minutes: int, rows: list[LeaderboardRow], *, now: datetime | None = None
    ) -> DeliveryResult:
        payload = self.formatter.format_leaderboard(
            window_minutes, rows, now=now or datetime.now(UTC)
        )
        return await self.send(Destination.TOP_DOGS, payload)

    async def post_flow_tally(self, tally: FlowTally) -> DeliveryResult:
        return await self.send(Destination.FLOW_LOG, self.formatter.format_flow_tally(tally))

    async def send_text(self, destination: Destination, text: str) -> DeliveryResult:
        return await self.send(destination, AlertPayload(text=text))
