"""HTTP client for the options flow feed.

Fetches one raw batch per call. Transport errors and non-2xx responses
are retried a bounded number of times with a linearly increasing delay;
when retries run out the batch degrades to empty so the caller's cycle
simply has nothing to do.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 2.0


class FeedError(Exception):
    """Base exception for feed client errors."""


class FeedTransientError(FeedError):
    """Raised for retryable failures (network issues, non-2xx, bad JSON)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def extract_records(payload: Any) -> list[Any]:
    """Pull the record list out of a decoded response body.

    Accepts ``{"data": [...]}`` or a bare list; anything else is empty.
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, list):
            return data
    logger.warning("Feed response had no record list")
    return []


class FlowFeedClient:
    """Polls the flow feed endpoint with bearer authentication."""

    def __init__(
        self,
        url: str,
        api_key: str | None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            url: Feed endpoint.
            api_key: Bearer token, sent as ``Authorization: Bearer <key>``.
            timeout: Per-attempt HTTP timeout in seconds.
            max_retries: Retries after the first failure.
            retry_base_delay: Delay before retry N is ``N * retry_base_delay``.
            client: Optional pre-built httpx client (tests inject a MockTransport).
            sleep: Awaitable sleep used between attempts.
        """
        self.url = url
        self._max_retries = max(0, max_retries)
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = headers

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _fetch_once(self) -> list[Any]:
        try:
            response = await self._client.get(self.url, headers=self._headers)
        except httpx.HTTPError as e:
            raise FeedTransientError(f"Feed request failed: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            raise FeedTransientError(f"HTTP {response.status_code}", status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            raise FeedTransientError(f"Feed returned invalid JSON: {e}") from e
        return extract_records(payload)

    async def fetch_batch(self) -> list[Any]:
        """Fetch the latest raw records.

        Returns:
            The raw record list, or an empty list once retries are exhausted.
        """
        attempts = self._max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                records = await self._fetch_once()
                logger.debug("Retrieved %d raw records", len(records))
                return records
            except FeedTransientError as e:
                if attempt == attempts:
                    logger.error("Feed fetch failed after %d attempts: %s", attempts, e)
                    break
                delay = self._retry_base_delay * attempt
                logger.warning(
                    "Attempt %d/%d failed: %s. Retrying in %.1f seconds...",
                    attempt,
                    attempts,
                    str(e),
                    delay,
                )
                await self._sleep(delay)
        return []

    async def __aenter__(self) -> FlowFeedClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
