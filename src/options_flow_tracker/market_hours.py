"""Exchange trading-hours gate."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "America/New_York"
WEEKDAYS = frozenset({0, 1, 2, 3, 4})


@dataclass(frozen=True)
class MarketHours:
    """Weekday session window in the exchange's local time.

    Both ends are inclusive. DST follows the IANA zone. Exchange holidays
    are not modelled.
    """

    timezone: str = DEFAULT_TIMEZONE
    open_time: time = time(9, 30)
    close_time: time = time(16, 30)
    trading_days: frozenset[int] = WEEKDAYS
    always_open: bool = False
    _zone: ZoneInfo = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_zone", ZoneInfo(self.timezone))

    def local(self, moment: datetime) -> datetime:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)
        return moment.astimezone(self._zone)

    def local_date(self, moment: datetime) -> date:
        """Exchange-local calendar date of ``moment``."""
        return self.local(moment).date()

    def is_open(self, now: datetime | None = None) -> bool:
        if self.always_open:
            return True
        local = self.local(now or datetime.now(UTC))
        if local.weekday() not in self.trading_days:
            return False
        # Whole minutes: the closing minute stays open through its last second.
        current = local.time().replace(second=0, microsecond=0, tzinfo=None)
        return self.open_time <= current <= self.close_time
