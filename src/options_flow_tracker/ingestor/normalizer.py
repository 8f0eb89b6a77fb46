"""Raw feed record normalization.

Maps loosely-typed feed records onto :class:`Trade`. Several fields
arrive under alternative keys depending on the feed endpoint; the first
truthy key wins.
"""

from __future__ import annotations

import contextlib
import logging
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from options_flow_tracker.ingestor.models import ContractType, Trade

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "UW_API"

# Epoch values above this are milliseconds.
_EPOCH_MS_THRESHOLD = 10_000_000_000


def _first(record: dict[str, Any], *keys: str) -> Any:
    """Return the first truthy value among ``keys``."""
    for key in keys:
        value = record.get(key)
        if value:
            return value
    return None


def _to_decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not result.is_finite():
        return Decimal("0")
    return result


def _to_count(value: Any) -> int:
    return max(0, int(_to_decimal(value)))


def parse_trade_time(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or epoch seconds/milliseconds into UTC."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)
    if isinstance(value, (int, float, Decimal)):
        ts = float(value)
        if ts > _EPOCH_MS_THRESHOLD:
            ts /= 1000.0
        with contextlib.suppress(OverflowError, OSError, ValueError):
            return datetime.fromtimestamp(ts, tz=UTC)
        return None
    text = str(value).strip()
    if text.isdigit():
        return parse_trade_time(int(text))
    with contextlib.suppress(ValueError):
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    return None


def record_trade_time(record: Any) -> datetime | None:
    """Trade time of a raw record, or None when missing or unparseable."""
    if not isinstance(record, dict):
        return None
    return parse_trade_time(_first(record, "created_at", "executed_at"))


def parse_expiration(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    with contextlib.suppress(ValueError):
        return date.fromisoformat(str(value).strip()[:10])
    return None


def normalize_record(record: dict[str, Any], *, source: str = DEFAULT_SOURCE) -> Trade | None:
    """Normalize one raw feed record.

    Args:
        record: Decoded JSON object from the feed.
        source: Source tag stored on the trade.

    Returns:
        The normalized Trade, or None if the record is malformed
        (empty ticker, non-positive premium, unknown contract type,
        or missing trade time).
    """
    if not isinstance(record, dict):
        logger.debug("Dropping non-object feed record: %r", record)
        return None

    ticker = str(record.get("ticker") or "").strip().upper()
    if not ticker:
        logger.debug("Dropping record without ticker: id=%s", record.get("id"))
        return None

    premium = _to_decimal(_first(record, "total_premium", "premium"))
    if premium <= 0:
        logger.debug("Dropping %s record with non-positive premium", ticker)
        return None

    raw_type = str(record.get("type") or "").strip().lower()
    try:
        contract_type = ContractType(raw_type)
    except ValueError:
        logger.debug("Dropping %s record with contract type %r", ticker, raw_type)
        return None

    raw_time = _first(record, "created_at", "executed_at")
    trade_time = parse_trade_time(raw_time)
    if trade_time is None:
        logger.debug("Dropping %s record with unparseable trade time %r", ticker, raw_time)
        return None

    raw_expiry = _first(record, "expiry", "expiration")
    raw_strike = record.get("strike")
    external_id = record.get("id")
    if not external_id:
        # ticker-strike-expiry-created_at, as the raw values appear in the feed
        external_id = f"{record.get('ticker')}-{raw_strike}-{raw_expiry}-{raw_time}"

    return Trade(
        external_id=str(external_id),
        ticker=ticker,
        contract_type=contract_type,
        strike=_to_decimal(raw_strike),
        expiration=parse_expiration(raw_expiry),
        avg_price=max(Decimal("0"), _to_decimal(_first(record, "ask", "price"))),
        contracts=_to_count(_first(record, "total_size", "contracts")),
        open_interest=_to_count(_first(record, "open_interest", "oi")),
        premium=premium,
        implied_vol=max(Decimal("0"), _to_decimal(_first(record, "iv_start", "iv"))),
        trade_time=trade_time,
        source=source,
    )


def normalize_batch(records: list[Any], *, source: str = DEFAULT_SOURCE) -> list[Trade]:
    """Normalize a batch, dropping malformed records, preserving order."""
    trades: list[Trade] = []
    for record in records:
        trade = normalize_record(record, source=source)
        if trade is not None:
            trades.append(trade)
    return trades
