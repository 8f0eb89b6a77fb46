"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

import pytest

from options_flow_tracker.alerter.models import OutboundMessage
from options_flow_tracker.config import clear_settings_cache
from options_flow_tracker.ingestor.models import ContractType, Trade
from options_flow_tracker.storage.database import DatabaseManager
from options_flow_tracker.storage.store import FlowStore

# Tuesday, during the regular session in New York (EDT, UTC-4).
SESSION_NOW = datetime(2026, 10, 20, 15, 0, tzinfo=UTC)


def make_trade(**overrides: Any) -> Trade:
    """Build a Trade with sensible defaults."""
    values: dict[str, Any] = {
        "external_id": "trade-1",
        "ticker": "AAPL",
        "contract_type": ContractType.CALL,
        "strike": Decimal("150"),
        "expiration": date(2026, 10, 25),
        "avg_price": Decimal("2.50"),
        "contracts": 400,
        "open_interest": 1200,
        "premium": Decimal("100000"),
        "implied_vol": Decimal("0.45"),
        "trade_time": SESSION_NOW,
        "source": "UW_API",
    }
    values.update(overrides)
    return Trade(**values)


def make_record(**overrides: Any) -> dict[str, Any]:
    """Build a raw feed record as the flow endpoint returns it."""
    record: dict[str, Any] = {
        "id": "rec-1",
        "ticker": "AAPL",
        "type": "call",
        "strike": "150",
        "expiry": "2026-10-25",
        "price": "2.50",
        "total_size": 400,
        "open_interest": 1200,
        "total_premium": "100000",
        "iv_start": "0.45",
        "created_at": "2026-10-20T14:59:00Z",
    }
    record.update(overrides)
    return record


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def session_now() -> datetime:
    """A moment inside the regular trading session."""
    return SESSION_NOW


@pytest.fixture
def sample_trade() -> Trade:
    return make_trade()


@pytest.fixture
def sample_record() -> dict[str, Any]:
    return make_record()


@pytest.fixture
async def db_manager(tmp_path):
    """File-backed SQLite database with the schema created."""
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'flow.db'}")
    await manager.init_schema_async()
    yield manager
    await manager.dispose_async()


@pytest.fixture
async def store(db_manager: DatabaseManager) -> FlowStore:
    return FlowStore(db_manager)


class FakeChannel:
    """Alert channel that records messages; optionally fails every send."""

    def __init__(self, name: str, *, fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.sent: list[OutboundMessage] = []

    async def send(self, message: OutboundMessage) -> None:
        if self.fail:
            raise RuntimeError(f"{self.name} is down")
        self.sent.append(message)
