"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Options Flow Tracker application, loading and validating environment
variables at startup.
"""

from __future__ import annotations

import logging
from datetime import time
from decimal import Decimal
from functools import lru_cache
from typing import Annotated, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

DEFAULT_FEED_URL = "https://api.unusualwhales.com/api/option-trades/flow-alerts?is_put=false&limit=100"


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default="sqlite+aiosqlite:///./flow.db",
        alias="DATABASE_URL",
        description="PostgreSQL or SQLite connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or SQLite connection string")
        return v


class FeedSettings(BaseSettings):
    """Options flow feed settings."""

    model_config = SettingsConfigDict(env_prefix="FEED_", extra="ignore")

    url: str = Field(
        default=DEFAULT_FEED_URL,
        alias="FEED_URL",
        description="HTTP endpoint returning the latest flow records",
    )
    api_key: SecretStr | None = Field(
        default=None,
        alias="FEED_API_KEY",
        description="Bearer token for the flow feed",
    )
    source_name: str = Field(
        default="UW_API",
        alias="FEED_SOURCE_NAME",
        description="Source tag stored on every persisted trade",
    )
    timeout_seconds: float = Field(
        default=15.0,
        alias="FEED_TIMEOUT_SECONDS",
        gt=0,
        le=300,
        description="HTTP timeout per fetch attempt",
    )
    max_retries: int = Field(
        default=3,
        alias="FEED_MAX_RETRIES",
        ge=0,
        le=20,
        description="Retries after the first failed fetch before degrading to an empty batch",
    )
    retry_base_delay_seconds: float = Field(
        default=2.0,
        alias="FEED_RETRY_BASE_DELAY_SECONDS",
        ge=0,
        le=120,
        description="Delay before retry N is N times this value",
    )
    sort_ascending: bool = Field(
        default=False,
        alias="FEED_SORT_ASCENDING",
        description="Process each batch oldest-first instead of in feed order",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("FEED_URL must be an HTTP(S) endpoint")
        return v


class PollerSettings(BaseSettings):
    """Poll loop settings."""

    model_config = SettingsConfigDict(env_prefix="POLL_", extra="ignore")

    interval_seconds: float = Field(
        default=30.0,
        alias="POLL_INTERVAL_SECONDS",
        ge=1,
        le=3600,
        description="Seconds between poll cycles",
    )
    session_cache_size: int = Field(
        default=5000,
        alias="POLL_SESSION_CACHE_SIZE",
        ge=1,
        le=1_000_000,
        description="Capacity of the in-process dedup cache",
    )


class MarketHoursSettings(BaseSettings):
    """Exchange trading-hours gate settings."""

    model_config = SettingsConfigDict(env_prefix="MARKET_", extra="ignore")

    timezone: str = Field(
        default="America/New_York",
        alias="MARKET_TIMEZONE",
        description="IANA timezone of the exchange",
    )
    open_time: time = Field(
        default=time(9, 30),
        alias="MARKET_OPEN_TIME",
        description="Session open (exchange-local, inclusive)",
    )
    close_time: time = Field(
        default=time(16, 30),
        alias="MARKET_CLOSE_TIME",
        description="Session close (exchange-local, inclusive)",
    )
    always_open: bool = Field(
        default=False,
        alias="MARKET_ALWAYS_OPEN",
        description="Disable the trading-hours gate",
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown MARKET_TIMEZONE: {v}") from e
        return v


class ClassifierSettings(BaseSettings):
    """Alert tier thresholds."""

    model_config = SettingsConfigDict(env_prefix="CLASSIFIER_", extra="ignore")

    min_premium: Decimal = Field(
        default=Decimal("50000"),
        alias="MIN_PREMIUM",
        ge=0,
        description="Premium floor for FlowAlert / PutFlowAlert",
    )
    mega_whale_premium: Decimal = Field(
        default=Decimal("1000000"),
        alias="CLASSIFIER_MEGA_WHALE_PREMIUM",
        ge=0,
    )
    risky_biz_premium: Decimal = Field(
        default=Decimal("300000"),
        alias="CLASSIFIER_RISKY_BIZ_PREMIUM",
        ge=0,
    )
    risky_biz_max_days: int = Field(
        default=10,
        alias="CLASSIFIER_RISKY_BIZ_MAX_DAYS",
        ge=1,
        le=365,
    )
    penny_whale_premium: Decimal = Field(
        default=Decimal("100000"),
        alias="CLASSIFIER_PENNY_WHALE_PREMIUM",
        ge=0,
    )
    penny_whale_max_price: Decimal = Field(
        default=Decimal("1.00"),
        alias="CLASSIFIER_PENNY_WHALE_MAX_PRICE",
        gt=0,
    )


class DispatchSettings(BaseSettings):
    """Outbound message pacing."""

    model_config = SettingsConfigDict(env_prefix="DISPATCH_", extra="ignore")

    min_interval_seconds: float = Field(
        default=0.5,
        alias="DISPATCH_MIN_INTERVAL_SECONDS",
        ge=0,
        le=60,
        description="Minimum spacing between two sends to the same destination",
    )
    max_message_chars: int = Field(
        default=1990,
        alias="DISPATCH_MAX_MESSAGE_CHARS",
        ge=100,
        le=2000,
        description="Text longer than this is split into ordered chunks",
    )
    log_interval_seconds: float = Field(
        default=1.0,
        alias="DISPATCH_LOG_INTERVAL_SECONDS",
        ge=0,
        le=60,
        description="Spacing of mirrored progress lines on the log destination",
    )
    log_max_chars: int = Field(
        default=1900,
        alias="DISPATCH_LOG_MAX_CHARS",
        ge=100,
        le=2000,
    )
    log_queue_size: int = Field(
        default=1000,
        alias="DISPATCH_LOG_QUEUE_SIZE",
        ge=1,
        le=100_000,
        description="Mirrored progress lines beyond this backlog are dropped",
    )


class DiscordSettings(BaseSettings):
    """Discord notification settings (one webhook per destination)."""

    model_config = SettingsConfigDict(env_prefix="DISCORD_", extra="ignore")

    flow_alerts_webhook_url: SecretStr | None = Field(
        default=None,
        alias="DISCORD_FLOW_ALERTS_WEBHOOK_URL",
        description="Webhook for FlowAlert, MegaWhale and RiskyBiz alerts",
    )
    put_flow_webhook_url: SecretStr | None = Field(
        default=None,
        alias="DISCORD_PUT_FLOW_WEBHOOK_URL",
        description="Webhook for PutFlowAlert (defaults to the flow alerts webhook)",
    )
    top_dogs_webhook_url: SecretStr | None = Field(
        default=None,
        alias="DISCORD_TOP_DOGS_WEBHOOK_URL",
        description="Webhook for MegaWhale alerts and leaderboards",
    )
    risky_biz_webhook_url: SecretStr | None = Field(
        default=None,
        alias="DISCORD_RISKY_BIZ_WEBHOOK_URL",
    )
    penny_whales_webhook_url: SecretStr | None = Field(
        default=None,
        alias="DISCORD_PENNY_WHALES_WEBHOOK_URL",
    )
    flow_log_webhook_url: SecretStr | None = Field(
        default=None,
        alias="DISCORD_FLOW_LOG_WEBHOOK_URL",
        description="Webhook for call/put flow tallies",
    )
    log_webhook_url: SecretStr | None = Field(
        default=None,
        alias="DISCORD_LOG_WEBHOOK_URL",
        description="Webhook mirroring saved-trade progress lines",
    )
    alert_role_id: str | None = Field(
        default=None,
        alias="DISCORD_ALERT_ROLE_ID",
        description="Role mentioned on flow alerts",
    )
    topdog_role_id: str | None = Field(
        default=None,
        alias="DISCORD_TOPDOG_ROLE_ID",
        description="Role mentioned on leaderboards",
    )

    @property
    def enabled(self) -> bool:
        """Check if any Discord destination is configured."""
        return any(url is not None for url in self.webhook_urls().values())

    def webhook_urls(self) -> dict[str, SecretStr | None]:
        """Webhook per destination name."""
        return {
            "flow_alerts": self.flow_alerts_webhook_url,
            "put_flow": self.put_flow_webhook_url or self.flow_alerts_webhook_url,
            "top_dogs": self.top_dogs_webhook_url,
            "risky_biz": self.risky_biz_webhook_url,
            "penny_whales": self.penny_whales_webhook_url,
            "flow_log": self.flow_log_webhook_url,
            "log": self.log_webhook_url,
        }


class AggregatorSettings(BaseSettings):
    """Leaderboard and flow tally settings."""

    model_config = SettingsConfigDict(env_prefix="AGGREGATOR_", extra="ignore")

    windows_minutes: Annotated[tuple[int, ...], NoDecode] = Field(
        default=(10, 30, 60),
        alias="AGGREGATOR_WINDOWS_MINUTES",
        description="Trailing leaderboard windows (comma-separated), each posted every window minutes",
    )
    top_k: int = Field(
        default=5,
        alias="AGGREGATOR_TOP_K",
        ge=1,
        le=50,
    )
    tally_window_minutes: int = Field(
        default=30,
        alias="AGGREGATOR_TALLY_WINDOW_MINUTES",
        ge=1,
        le=24 * 60,
    )
    tally_interval_minutes: int = Field(
        default=30,
        alias="AGGREGATOR_TALLY_INTERVAL_MINUTES",
        ge=1,
        le=24 * 60,
    )

    @field_validator("windows_minutes", mode="before")
    @classmethod
    def _parse_windows(cls, v: object) -> object:
        if isinstance(v, int):
            return (v,)
        if isinstance(v, str):
            return tuple(int(part) for part in v.split(",") if part.strip())
        return v

    @field_validator("windows_minutes")
    @classmethod
    def validate_windows(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        if not v:
            raise ValueError("AGGREGATOR_WINDOWS_MINUTES must list at least one window")
        if any(w <= 0 for w in v):
            raise ValueError("AGGREGATOR_WINDOWS_MINUTES entries must be positive")
        return v


class RetentionSettings(BaseSettings):
    """Ledger retention settings."""

    model_config = SettingsConfigDict(env_prefix="RETENTION_", extra="ignore")

    days: int = Field(
        default=0,
        alias="RETENTION_DAYS",
        ge=0,
        le=3650,
        description="Delete ledger rows older than this many days (0 disables pruning)",
    )
    interval_seconds: int = Field(
        default=3600,
        alias="RETENTION_INTERVAL_SECONDS",
        ge=60,
        le=7 * 24 * 3600,
    )

    @property
    def enabled(self) -> bool:
        return self.days > 0


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from options_flow_tracker.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # Nested configuration groups
    #
    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    feed: FeedSettings = Field(
        default_factory=lambda: FeedSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    poller: PollerSettings = Field(
        default_factory=lambda: PollerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    market_hours: MarketHoursSettings = Field(
        default_factory=lambda: MarketHoursSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    classifier: ClassifierSettings = Field(
        default_factory=lambda: ClassifierSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    dispatch: DispatchSettings = Field(
        default_factory=lambda: DispatchSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    discord: DiscordSettings = Field(
        default_factory=lambda: DiscordSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    aggregator: AggregatorSettings = Field(
        default_factory=lambda: AggregatorSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    retention: RetentionSettings = Field(
        default_factory=lambda: RetentionSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Run without sending actual alerts",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "feed": {
                "url": self.feed.url,
                "api_key": "(set)" if self.feed.api_key else "(not set)",
                "max_retries": str(self.feed.max_retries),
                "sort_ascending": str(self.feed.sort_ascending),
            },
            "poller": {
                "interval_seconds": str(self.poller.interval_seconds),
                "session_cache_size": str(self.poller.session_cache_size),
            },
            "market_hours": {
                "timezone": self.market_hours.timezone,
                "open_time": self.market_hours.open_time.isoformat(timespec="minutes"),
                "close_time": self.market_hours.close_time.isoformat(timespec="minutes"),
                "always_open": str(self.market_hours.always_open),
            },
            "classifier": {
                "min_premium": str(self.classifier.min_premium),
            },
            "aggregator": {
                "windows_minutes": ",".join(str(w) for w in self.aggregator.windows_minutes),
                "top_k": str(self.aggregator.top_k),
            },
            "discord": {
                name: "(set)" if url else "(not set)" for name, url in self.discord.webhook_urls().items()
            },
            "retention_days": str(self.retention.days),
            "log_level": self.log_level,
            "dry_run": str(self.dry_run),
        }

    def validate_requirements(
        self, *, command: Literal["run", "poll-once", "top-movers", "init-db"]
    ) -> None:
        """Validate command-specific requirements.

        Commands that hit the feed refuse to start without credentials.
        """
        if command in ("run", "poll-once") and self.feed.api_key is None:
            raise ValueError("FEED_API_KEY is required to poll the flow feed")
        if command == "run" and not self.dry_run and not self.discord.enabled:
            raise ValueError("At least one DISCORD_*_WEBHOOK_URL is required unless DRY_RUN=true")

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
