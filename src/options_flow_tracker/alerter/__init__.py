"""Alerting layer - Formatting, fan-out and progress sinks."""

from options_flow_tracker.alerter.dispatcher import (
    TIER_ROUTES,
    AlertChannel,
    AlertDispatcher,
    RateLimiter,
    chunk_text,
)
from options_flow_tracker.alerter.formatter import AlertFormatter
from options_flow_tracker.alerter.models import (
    AlertEmbed,
    AlertPayload,
    DeliveryResult,
    Destination,
    DispatchResult,
    EmbedField,
    OutboundMessage,
)
from options_flow_tracker.alerter.sinks import CompositeSink, ProgressSink, RemoteSink, TerminalSink

__all__ = [
    "TIER_ROUTES",
    "AlertChannel",
    "AlertDispatcher",
    "AlertEmbed",
    "AlertFormatter",
    "AlertPayload",
    "CompositeSink",
    "DeliveryResult",
    "Destination",
    "DispatchResult",
    "EmbedField",
    "OutboundMessage",
    "ProgressSink",
    "RateLimiter",
    "RemoteSink",
    "TerminalSink",
    "chunk_text",
]
