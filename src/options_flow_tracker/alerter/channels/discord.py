"""Discord webhook delivery channel."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from options_flow_tracker.alerter.models import OutboundMessage

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_RETRY_AFTER_SECONDS = 2.0


class ChannelError(Exception):
    """Raised when a message could not be delivered."""


class ChannelRateLimitedError(ChannelError):
    """Raised when the remote side keeps rate limiting past the retry limit."""


def build_webhook_body(message: OutboundMessage) -> dict[str, Any]:
    body: dict[str, Any] = {"allowed_mentions": {"parse": ["roles"]}}
    if message.content:
        body["content"] = message.content
    if message.embed is not None:
        body["embeds"] = [message.embed.to_discord()]
    return body


def _retry_after_seconds(response: httpx.Response) -> float:
    try:
        payload = response.json()
        return float(payload.get("retry_after", DEFAULT_RETRY_AFTER_SECONDS))
    except (ValueError, TypeError, AttributeError):
        pass
    header = response.headers.get("Retry-After")
    if header:
        try:
            return float(header)
        except ValueError:
            pass
    return DEFAULT_RETRY_AFTER_SECONDS


class DiscordWebhookChannel:
    """Posts messages to one Discord webhook.

    The HTTP client is shared across channels and closed by its owner.
    """

    def __init__(
        self,
        webhook_url: str,
        *,
        client: httpx.AsyncClient,
        name: str = "discord",
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.name = name
        self._url = webhook_url
        self._max_attempts = max(1, max_attempts)
        self._sleep = sleep
        self._client = client

    async def send(self, message: OutboundMessage) -> None:
        body = build_webhook_body(message)
        delay = 1.0

        for attempt in range(1, self._max_attempts + 1):
            try:
                response = await self._client.post(self._url, json=body)
            except httpx.HTTPError as e:
                if attempt == self._max_attempts:
                    raise ChannelError(f"{self.name}: request failed: {e}") from e
                logger.warning("%s send attempt %d failed: %s", self.name, attempt, e)
                await self._sleep(delay)
                delay *= 2
                continue

            if response.status_code == 429:
                if attempt == self._max_attempts:
                    raise ChannelRateLimitedError(f"{self.name}: still rate limited")
                retry_after = _retry_after_seconds(response)
                logger.warning("%s rate limited. Sleeping %.1fs", self.name, retry_after)
                await self._sleep(retry_after)
                continue

            if response.status_code >= 500 and attempt < self._max_attempts:
                logger.warning("%s returned HTTP %d, retrying", self.name, response.status_code)
                await self._sleep(delay)
                delay *= 2
                continue

            if response.status_code >= 300:
                raise ChannelError(f"{self.name}: HTTP {response.status_code}")
            return
