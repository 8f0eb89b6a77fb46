"""Data ingestion layer - Options flow polling, normalization and dedup."""

from options_flow_tracker.ingestor.dedup import Deduplicator, SessionDedupCache
from options_flow_tracker.ingestor.feed_client import (
    FeedError,
    FeedTransientError,
    FlowFeedClient,
)
from options_flow_tracker.ingestor.models import (
    ContractType,
    FlowTally,
    LeaderboardRow,
    Trade,
)
from options_flow_tracker.ingestor.normalizer import normalize_batch, normalize_record

__all__ = [
    "ContractType",
    "Deduplicator",
    "FeedError",
    "FeedTransientError",
    "FlowFeedClient",
    "FlowTally",
    "LeaderboardRow",
    "SessionDedupCache",
    "Trade",
    "normalize_batch",
    "normalize_record",
]
