"""Main pipeline orchestrator for the Options Flow Tracker.

This module provides the Pipeline class that wires together polling,
normalization, deduplication, persistence, classification and alerting,
and schedules the leaderboard and housekeeping jobs.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

from options_flow_tracker.aggregator import Aggregator
from options_flow_tracker.alerter.channels.discord import (
    DEFAULT_TIMEOUT_SECONDS,
    DiscordWebhookChannel,
)
from options_flow_tracker.alerter.dispatcher import AlertChannel, AlertDispatcher
from options_flow_tracker.alerter.formatter import AlertFormatter, format_saved_trade
from options_flow_tracker.alerter.models import Destination
from options_flow_tracker.alerter.sinks import (
    CYCLE_SUMMARY,
    ERROR,
    TRADE_SAVED,
    CompositeSink,
    ProgressSink,
    RemoteSink,
    TerminalSink,
)
from options_flow_tracker.config import Settings, get_settings
from options_flow_tracker.context import PipelineContext
from options_flow_tracker.detector.classifier import ClassifierConfig, TradeClassifier
from options_flow_tracker.ingestor.dedup import Deduplicator, SessionDedupCache
from options_flow_tracker.ingestor.feed_client import FlowFeedClient
from options_flow_tracker.ingestor.normalizer import normalize_batch, record_trade_time
from options_flow_tracker.market_hours import MarketHours
from options_flow_tracker.scheduler import PeriodicScheduler
from options_flow_tracker.storage.database import DatabaseManager, is_sqlite_url
from options_flow_tracker.storage.store import FlowStore

if TYPE_CHECKING:
    from options_flow_tracker.ingestor.models import Trade

logger = logging.getLogger(__name__)

POLL_JOB = "poll"
FLOW_TALLY_JOB = "flow_tally"
RETENTION_JOB = "retention"


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


class CycleOutcome(str, Enum):
    """How a poll cycle ended."""

    MARKET_CLOSED = "market_closed"
    EMPTY = "empty"
    STALE = "stale"
    PROCESSED = "processed"


@dataclass
class CycleResult:
    """Counters for one poll cycle."""

    outcome: CycleOutcome
    fetched: int = 0
    normalized: int = 0
    persisted: int = 0
    duplicates: int = 0
    alerts_sent: int = 0
    errors: int = 0


@dataclass
class PipelineStats:
    """Statistics for the pipeline."""

    started_at: datetime | None = None
    cycles: int = 0
    trades_fetched: int = 0
    trades_normalized: int = 0
    trades_persisted: int = 0
    duplicates: int = 0
    alerts_sent: int = 0
    errors: int = 0
    last_cycle_outcome: CycleOutcome | None = None
    last_trade_time: datetime | None = None
    last_error: str | None = None

    def record(self, result: CycleResult) -> None:
        self.cycles += 1
        self.trades_fetched += result.fetched
        self.trades_normalized += result.normalized
        self.trades_persisted += result.persisted
        self.duplicates += result.duplicates
        self.alerts_sent += result.alerts_sent
        self.errors += result.errors
        self.last_cycle_outcome = result.outcome


class Pipeline:
    """Main pipeline orchestrator for the Options Flow Tracker.

    Pipeline flow:
        Feed poll → Normalizer → Deduplicator → Store → Classifier → Dispatcher

    Example:
        ```python
        from options_flow_tracker.config import get_settings
        from options_flow_tracker.pipeline import Pipeline

        settings = get_settings()
        pipeline = Pipeline(settings)

        await pipeline.start()
        # Pipeline runs until stop() is called
        await pipeline.stop()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        dry_run: bool | None = None,
        clock: Callable[[], datetime] | None = None,
        db_manager: DatabaseManager | None = None,
        feed_client: FlowFeedClient | None = None,
        channels: Mapping[Destination, AlertChannel] | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            dry_run: If True, skip sending alerts. Overrides settings.dry_run.
            clock: Source of "now" (UTC). Defaults to the wall clock.
            db_manager: Pre-built database manager.
            feed_client: Pre-built feed client.
            channels: Pre-built channels per destination, replacing the
                webhooks from settings.
        """
        self._settings = settings or get_settings()
        self._dry_run = dry_run if dry_run is not None else self._settings.dry_run
        self._clock = clock or (lambda: datetime.now(UTC))

        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()

        self._db_manager = db_manager
        self._owns_db_manager = db_manager is None
        self._feed_client = feed_client
        self._owns_feed_client = feed_client is None
        self._injected_channels = dict(channels) if channels is not None else None

        # Components (initialized in start())
        self._http_client: httpx.AsyncClient | None = None
        self._store: FlowStore | None = None
        self._context: PipelineContext | None = None
        self._deduplicator = Deduplicator()
        self._classifier: TradeClassifier | None = None
        self._dispatcher: AlertDispatcher | None = None
        self._aggregator: Aggregator | None = None
        self._remote_sink: RemoteSink | None = None
        self._market_hours: MarketHours | None = None
        self._scheduler: PeriodicScheduler | None = None

        self._stop_event: asyncio.Event | None = None
        self._cycle_lock = asyncio.Lock()

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def stats(self) -> PipelineStats:
        """Current pipeline statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        """Check if pipeline is running."""
        return self._state == PipelineState.RUNNING

    @property
    def context(self) -> PipelineContext | None:
        return self._context

    @property
    def aggregator(self) -> Aggregator | None:
        return self._aggregator

    @property
    def scheduler(self) -> PeriodicScheduler | None:
        return self._scheduler

    async def start(self, *, schedule_jobs: bool = True) -> None:
        """Start the pipeline.

        Initializes all components and, unless ``schedule_jobs`` is False,
        begins the poll and aggregation loops.

        Raises:
            RuntimeError: If pipeline is already running.
            Exception: If any component fails to initialize.
        """
        if self._state != PipelineState.STOPPED:
            raise RuntimeError(f"Cannot start pipeline in state {self._state}")

        self._state = PipelineState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting pipeline...")

        try:
            await self._initialize_components()
            if schedule_jobs:
                self._start_background_services()
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Pipeline started successfully")
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the pipeline gracefully.

        Stops all background services and cleans up resources.
        """
        if self._state == PipelineState.STOPPED:
            return

        self._state = PipelineState.STOPPING
        logger.info("Stopping pipeline...")

        if self._stop_event:
            self._stop_event.set()

        await self._stop_background_services()
        await self._cleanup()

        self._state = PipelineState.STOPPED
        logger.info("Pipeline stopped")

    async def _initialize_components(self) -> None:
        """Initialize all pipeline components."""
        settings = self._settings

        if self._db_manager is None:
            self._db_manager = DatabaseManager(settings.database.url)
        if is_sqlite_url(self._db_manager.database_url):
            await self._db_manager.init_schema_async()
        self._store = FlowStore(self._db_manager)

        if self._feed_client is None:
            api_key = settings.feed.api_key.get_secret_value() if settings.feed.api_key else None
            self._feed_client = FlowFeedClient(
                settings.feed.url,
                api_key,
                timeout=settings.feed.timeout_seconds,
                max_retries=settings.feed.max_retries,
                retry_base_delay=settings.feed.retry_base_delay_seconds,
            )

        cfg = settings.classifier
        self._classifier = TradeClassifier(
            ClassifierConfig(
                min_premium=cfg.min_premium,
                mega_whale_premium=cfg.mega_whale_premium,
                risky_biz_premium=cfg.risky_biz_premium,
                risky_biz_max_days=cfg.risky_biz_max_days,
                penny_whale_premium=cfg.penny_whale_premium,
                penny_whale_max_price=cfg.penny_whale_max_price,
            )
        )

        formatter = AlertFormatter(
            alert_role_id=settings.discord.alert_role_id,
            topdog_role_id=settings.discord.topdog_role_id,
        )
        self._dispatcher = AlertDispatcher(
            self._build_alert_channels(),
            formatter,
            min_interval=settings.dispatch.min_interval_seconds,
            max_message_chars=settings.dispatch.max_message_chars,
            interval_overrides={Destination.LOG: settings.dispatch.log_interval_seconds},
            chunk_overrides={Destination.LOG: settings.dispatch.log_max_chars},
            dry_run=self._dry_run,
        )

        sink: ProgressSink = TerminalSink()
        if self._dispatcher.is_configured(Destination.LOG):
            self._remote_sink = RemoteSink(
                self._dispatcher, max_queue_size=settings.dispatch.log_queue_size
            )
            sink = CompositeSink([sink, self._remote_sink])

        self._context = PipelineContext(
            store=self._store,
            sink=sink,
            session_cache=SessionDedupCache(settings.poller.session_cache_size),
        )
        watermark = await self._context.load_watermark()
        logger.info(
            "Resuming from watermark %s", watermark.isoformat() if watermark else "(none)"
        )

        hours = settings.market_hours
        self._market_hours = MarketHours(
            timezone=hours.timezone,
            open_time=hours.open_time,
            close_time=hours.close_time,
            always_open=hours.always_open,
        )
        self._aggregator = Aggregator(
            self._store,
            self._dispatcher,
            top_k=settings.aggregator.top_k,
            clock=self._clock,
        )
        self._scheduler = PeriodicScheduler()

    def _build_alert_channels(self) -> dict[Destination, AlertChannel]:
        """Build the channel map for configured destinations."""
        if self._injected_channels is not None:
            return dict(self._injected_channels)

        channels: dict[Destination, AlertChannel] = {}
        for name, url in self._settings.discord.webhook_urls().items():
            if url is None:
                continue
            if self._http_client is None:
                self._http_client = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT_SECONDS)
            channel = DiscordWebhookChannel(
                url.get_secret_value(),
                name=f"discord:{name}",
                client=self._http_client,
            )
            channels[Destination(name)] = channel
            logger.info("Discord destination %s enabled", name)

        if not channels:
            logger.warning("No alert channels configured")
        return channels

    def _market_open(self) -> bool:
        if self._market_hours is None:
            return False
        return self._market_hours.is_open(self._clock())

    def _start_background_services(self) -> None:
        """Register and start scheduled jobs."""
        if not self._scheduler or not self._aggregator:
            return
        settings = self._settings
        scheduler = self._scheduler

        scheduler.register(
            POLL_JOB,
            settings.poller.interval_seconds,
            self._poll,
            gate=self._market_open,
            run_immediately=True,
        )
        for window in settings.aggregator.windows_minutes:
            scheduler.register(
                f"top_movers_{window}m",
                window * 60,
                functools.partial(self._aggregator.post_top_movers, window),
                gate=self._market_open,
            )
        scheduler.register(
            FLOW_TALLY_JOB,
            settings.aggregator.tally_interval_minutes * 60,
            functools.partial(self._aggregator.post_flow_tally, settings.aggregator.tally_window_minutes),
            gate=self._market_open,
        )
        if settings.retention.enabled:
            scheduler.register(RETENTION_JOB, settings.retention.interval_seconds, self.prune_ledger)

        if self._remote_sink:
            self._remote_sink.start()
        scheduler.start()

    async def _stop_background_services(self) -> None:
        """Stop background services."""
        if self._scheduler:
            await self._scheduler.stop()
        if self._remote_sink:
            await self._remote_sink.stop()

    async def _cleanup(self) -> None:
        """Clean up resources."""
        if self._feed_client and self._owns_feed_client:
            await self._feed_client.close()
            self._feed_client = None

        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

        if self._db_manager and self._owns_db_manager:
            await self._db_manager.dispose_async()
            self._db_manager = None

        logger.debug("Resources cleaned up")

    async def poll_once(self) -> CycleResult:
        """Run one poll cycle outside the scheduler.

        Applies the same market-hours gate the scheduled poll job uses and
        reports a closed market as ``CycleOutcome.MARKET_CLOSED``.
        """
        if not self._context or not self._market_hours:
            raise RuntimeError("Pipeline not started")
        if not self._market_open():
            logger.debug("Market closed; skipping poll")
            result = CycleResult(outcome=CycleOutcome.MARKET_CLOSED)
            self._stats.record(result)
            return result
        return await self._poll()

    async def _poll(self) -> CycleResult:
        """Fetch and process one batch.

        Cycles never overlap; a tick arriving while one is in flight waits.
        """
        async with self._cycle_lock:
            result = await self._run_cycle()
        self._stats.record(result)
        if self._context and self._context.watermark:
            self._stats.last_trade_time = self._context.watermark
        return result

    async def _run_cycle(self) -> CycleResult:
        if not self._context or not self._feed_client or not self._market_hours:
            raise RuntimeError("Pipeline not started")
        ctx = self._context

        now = self._clock()
        records = await self._feed_client.fetch_batch()
        if not records:
            logger.info("No trades returned from feed")
            return CycleResult(outcome=CycleOutcome.EMPTY)

        times = [t for t in (record_trade_time(r) for r in records) if t is not None]
        newest = max(times) if times else None
        today = self._market_hours.local_date(now)
        if newest is None or self._market_hours.local_date(newest) != today:
            logger.info(
                "Stale feed: newest record %s is not from %s; skipping cycle",
                newest.isoformat() if newest else "(no timestamp)",
                today.isoformat(),
            )
            return CycleResult(outcome=CycleOutcome.STALE, fetched=len(records))

        trades = normalize_batch(records, source=self._settings.feed.source_name)
        if self._settings.feed.sort_ascending:
            trades.sort(key=lambda t: t.trade_time)

        result = CycleResult(
            outcome=CycleOutcome.PROCESSED, fetched=len(records), normalized=len(trades)
        )
        for trade in trades:
            await self._process_trade(ctx, trade, result)

        ctx.sink.report(
            CYCLE_SUMMARY,
            f"Cycle: fetched={result.fetched} new={result.persisted} "
            f"duplicates={result.duplicates} alerts={result.alerts_sent} errors={result.errors}",
        )
        return result

    async def _process_trade(self, ctx: PipelineContext, trade: Trade, result: CycleResult) -> None:
        """Dedup, persist, classify and dispatch one normalized trade."""
        if not self._classifier or not self._dispatcher:
            return

        if not self._deduplicator.admit(ctx, trade):
            result.duplicates += 1
            return

        try:
            inserted = await ctx.store.insert_if_new(trade)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Best-effort retry: a later cycle re-admits the trade unless a
            # newer insert has already moved the watermark past it.
            ctx.session_cache.discard(trade.dedup_key)
            result.errors += 1
            self._stats.last_error = str(e)
            ctx.sink.report(ERROR, f"DB insert error for {trade.external_id}: {e}")
            return

        if not inserted:
            result.duplicates += 1
            return

        result.persisted += 1
        ctx.sink.report(TRADE_SAVED, format_saved_trade(trade))

        try:
            await ctx.advance_watermark(trade.trade_time)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            result.errors += 1
            self._stats.last_error = str(e)
            logger.error("Failed to advance watermark to %s: %s", trade.trade_time.isoformat(), e)

        classified = self._classifier.classify(trade, now=self._clock())
        if not classified.should_alert:
            logger.debug("Trade %s matched no alert tier", trade.external_id)
            return

        dispatch = await self._dispatcher.dispatch(classified)
        result.alerts_sent += dispatch.success_count
        if dispatch.success_count and not self._dry_run:
            logger.info(
                "Alert sent: %s %s premium=%s tiers=%s",
                trade.ticker,
                trade.contract_type.value,
                trade.premium,
                ",".join(sorted(t.value for t in classified.tiers)),
            )

    async def flush_progress(self) -> int:
        """Deliver queued remote progress lines now."""
        if self._remote_sink is None:
            return 0
        return await self._remote_sink.drain()

    async def prune_ledger(self) -> int:
        """Delete ledger rows older than the retention window."""
        if not self._store or not self._settings.retention.enabled:
            return 0
        cutoff = self._clock() - timedelta(days=self._settings.retention.days)
        return await self._store.prune_before(cutoff)

    async def run(self) -> None:
        """Start the pipeline and run until interrupted.

        Example:
            ```python
            pipeline = Pipeline()
            try:
                await pipeline.run()
            except KeyboardInterrupt:
                pass
            ```
        """
        await self.start()

        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    def request_stop(self) -> None:
        """Ask a running ``run()`` to return."""
        if self._stop_event:
            self._stop_event.set()

    async def __aenter__(self) -> Pipeline:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()
