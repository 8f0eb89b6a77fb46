"""Tests for raw feed record normalization."""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest
from conftest import make_record

from options_flow_tracker.ingestor.models import ContractType
from options_flow_tracker.ingestor.normalizer import (
    normalize_batch,
    normalize_record,
    parse_expiration,
    parse_trade_time,
    record_trade_time,
)


class TestParseTradeTime:
    """Tests for parse_trade_time."""

    def test_iso_with_z_suffix(self) -> None:
        assert parse_trade_time("2026-10-20T14:59:00Z") == datetime(2026, 10, 20, 14, 59, tzinfo=UTC)

    def test_iso_with_offset_converted_to_utc(self) -> None:
        parsed = parse_trade_time("2026-10-20T10:59:00-04:00")
        assert parsed == datetime(2026, 10, 20, 14, 59, tzinfo=UTC)
        assert parsed.tzinfo is UTC

    def test_naive_iso_assumed_utc(self) -> None:
        assert parse_trade_time("2026-10-20 14:59:00") == datetime(2026, 10, 20, 14, 59, tzinfo=UTC)

    def test_epoch_seconds_and_milliseconds(self) -> None:
        expected = datetime(2026, 10, 20, 14, 59, tzinfo=UTC)
        seconds = int(expected.timestamp())
        assert parse_trade_time(seconds) == expected
        assert parse_trade_time(seconds * 1000) == expected
        assert parse_trade_time(str(seconds)) == expected

    @pytest.mark.parametrize("value", [None, "", "yesterday", True])
    def test_unparseable(self, value: object) -> None:
        assert parse_trade_time(value) is None

    def test_record_trade_time_falls_back_to_executed_at(self) -> None:
        record = {"executed_at": "2026-10-20T14:00:00Z"}
        assert record_trade_time(record) == datetime(2026, 10, 20, 14, 0, tzinfo=UTC)
        assert record_trade_time("not a record") is None


class TestParseExpiration:
    """Tests for parse_expiration."""

    def test_date_string(self) -> None:
        assert parse_expiration("2026-10-25") == date(2026, 10, 25)

    def test_datetime_string_truncated(self) -> None:
        assert parse_expiration("2026-10-25T00:00:00Z") == date(2026, 10, 25)

    def test_missing_or_garbage(self) -> None:
        assert parse_expiration(None) is None
        assert parse_expiration("soon") is None


class TestNormalizeRecord:
    """Tests for normalize_record."""

    def test_full_record(self) -> None:
        trade = normalize_record(make_record())

        assert trade is not None
        assert trade.external_id == "rec-1"
        assert trade.ticker == "AAPL"
        assert trade.contract_type == ContractType.CALL
        assert trade.strike == Decimal("150")
        assert trade.expiration == date(2026, 10, 25)
        assert trade.avg_price == Decimal("2.50")
        assert trade.contracts == 400
        assert trade.open_interest == 1200
        assert trade.premium == Decimal("100000")
        assert trade.implied_vol == Decimal("0.45")
        assert trade.trade_time == datetime(2026, 10, 20, 14, 59, tzinfo=UTC)
        assert trade.source == "UW_API"

    def test_alternate_keys(self) -> None:
        record = {
            "id": "alt-1",
            "ticker": "msft",
            "type": "PUT",
            "strike": 410,
            "expiration": "2026-11-20",
            "ask": "1.10",
            "contracts": "250",
            "oi": 90,
            "premium": 27500,
            "iv": 0.3,
            "executed_at": "2026-10-20T15:00:00Z",
        }

        trade = normalize_record(record, source="TEST")

        assert trade is not None
        assert trade.ticker == "MSFT"
        assert trade.contract_type == ContractType.PUT
        assert trade.expiration == date(2026, 11, 20)
        assert trade.avg_price == Decimal("1.10")
        assert trade.contracts == 250
        assert trade.open_interest == 90
        assert trade.premium == Decimal("27500")
        assert trade.source == "TEST"

    def test_primary_key_wins_over_alias(self) -> None:
        trade = normalize_record(make_record(total_premium="90000", premium="1"))
        assert trade is not None
        assert trade.premium == Decimal("90000")

    def test_synthesized_external_id(self) -> None:
        record = make_record()
        del record["id"]

        trade = normalize_record(record)

        assert trade is not None
        assert trade.external_id == "AAPL-150-2026-10-25-2026-10-20T14:59:00Z"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"ticker": ""},
            {"ticker": None},
            {"total_premium": "0"},
            {"total_premium": "-5"},
            {"total_premium": "abc"},
            {"type": "straddle"},
            {"created_at": "not-a-time"},
        ],
    )
    def test_malformed_records_dropped(self, overrides: dict) -> None:
        assert normalize_record(make_record(**overrides)) is None

    def test_non_object_dropped(self) -> None:
        assert normalize_record(["AAPL"]) is None  # type: ignore[arg-type]

    def test_missing_numeric_fields_default_to_zero(self) -> None:
        record = make_record()
        for key in ("price", "total_size", "open_interest", "iv_start", "expiry"):
            del record[key]

        trade = normalize_record(record)

        assert trade is not None
        assert trade.avg_price == Decimal("0")
        assert trade.contracts == 0
        assert trade.open_interest == 0
        assert trade.implied_vol == Decimal("0")
        assert trade.expiration is None

    def test_negative_counts_clamped(self) -> None:
        trade = normalize_record(make_record(total_size=-10, open_interest="-3"))
        assert trade is not None
        assert trade.contracts == 0
        assert trade.open_interest == 0


class TestNormalizeBatch:
    """Tests for normalize_batch."""

    def test_drops_malformed_and_keeps_order(self) -> None:
        records = [
            make_record(id="a", ticker="TSLA"),
            make_record(id="b", total_premium="0"),
            "garbage",
            make_record(id="c", ticker="NVDA"),
        ]

        trades = normalize_batch(records)

        assert [t.external_id for t in trades] == ["a", "c"]
