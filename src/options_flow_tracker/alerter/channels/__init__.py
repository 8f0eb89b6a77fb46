"""Alert delivery channels."""

from options_flow_tracker.alerter.channels.discord import (
    ChannelError,
    ChannelRateLimitedError,
    DiscordWebhookChannel,
)

__all__ = [
    "ChannelError",
    "ChannelRateLimitedError",
    "DiscordWebhookChannel",
]
