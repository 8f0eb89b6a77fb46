"""Tests for the watermark and session-cache deduplicator."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from conftest import SESSION_NOW, make_trade

from options_flow_tracker.context import PipelineContext
from options_flow_tracker.ingestor.dedup import Deduplicator, SessionDedupCache


@pytest.fixture
def ctx() -> PipelineContext:
    return PipelineContext(store=MagicMock(), sink=MagicMock(), session_cache=SessionDedupCache(3))


class TestSessionDedupCache:
    """Tests for SessionDedupCache."""

    def test_add_reports_repeats(self) -> None:
        cache = SessionDedupCache(10)
        assert cache.add("a") is True
        assert cache.add("a") is False
        assert "a" in cache
        assert len(cache) == 1

    def test_evicts_oldest_first(self) -> None:
        cache = SessionDedupCache(2)
        cache.add("a")
        cache.add("b")
        cache.add("c")

        assert "a" not in cache
        assert "b" in cache
        assert "c" in cache
        assert len(cache) == 2

    def test_repeat_does_not_refresh_position(self) -> None:
        cache = SessionDedupCache(2)
        cache.add("a")
        cache.add("b")
        cache.add("a")
        cache.add("c")

        assert "a" not in cache

    def test_discard(self) -> None:
        cache = SessionDedupCache(2)
        cache.add("a")
        cache.discard("a")
        cache.discard("missing")
        assert "a" not in cache

    def test_capacity_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            SessionDedupCache(0)


class TestDeduplicator:
    """Tests for Deduplicator.admit."""

    def test_admits_new_trade_without_watermark(self, ctx: PipelineContext) -> None:
        assert Deduplicator().admit(ctx, make_trade()) is True

    def test_rejects_trade_at_watermark(self, ctx: PipelineContext) -> None:
        ctx.watermark = SESSION_NOW
        assert Deduplicator().admit(ctx, make_trade(trade_time=SESSION_NOW)) is False

    def test_rejects_trade_before_watermark(self, ctx: PipelineContext) -> None:
        ctx.watermark = SESSION_NOW
        trade = make_trade(trade_time=SESSION_NOW - timedelta(seconds=1))
        assert Deduplicator().admit(ctx, trade) is False

    def test_admits_trade_after_watermark(self, ctx: PipelineContext) -> None:
        ctx.watermark = SESSION_NOW
        trade = make_trade(trade_time=SESSION_NOW + timedelta(seconds=1))
        assert Deduplicator().admit(ctx, trade) is True

    def test_rejects_repeat_within_session(self, ctx: PipelineContext) -> None:
        dedup = Deduplicator()
        trade = make_trade()
        assert dedup.admit(ctx, trade) is True
        assert dedup.admit(ctx, trade) is False

    def test_key_ignores_external_id(self, ctx: PipelineContext) -> None:
        dedup = Deduplicator()
        assert dedup.admit(ctx, make_trade(external_id="x")) is True
        assert dedup.admit(ctx, make_trade(external_id="y")) is False

    def test_watermark_rejection_does_not_cache(self, ctx: PipelineContext) -> None:
        ctx.watermark = SESSION_NOW
        trade = make_trade(trade_time=SESSION_NOW)
        Deduplicator().admit(ctx, trade)
        assert trade.dedup_key not in ctx.session_cache
