"""Shared per-process pipeline state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from options_flow_tracker.ingestor.dedup import SessionDedupCache

if TYPE_CHECKING:
    from options_flow_tracker.alerter.sinks import ProgressSink
    from options_flow_tracker.storage.store import FlowStore


@dataclass
class PipelineContext:
    """Watermark, session cache, store handle and progress sink.

    Passed explicitly to every component call that reads or advances
    ingestion progress. ``watermark`` mirrors the persisted value and is
    loaded once at startup.
    """

    store: FlowStore
    sink: ProgressSink
    session_cache: SessionDedupCache = field(default_factory=SessionDedupCache)
    watermark: datetime | None = None

    async def load_watermark(self) -> datetime | None:
        self.watermark = await self.store.get_watermark()
        return self.watermark

    async def advance_watermark(self, value: datetime) -> datetime:
        self.watermark = await self.store.set_watermark(value)
        return self.watermark
