"""Storage layer - Trade ledger, watermark and repositories."""

from options_flow_tracker.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from options_flow_tracker.storage.models import Base, OptionTradeModel, PipelineStateModel
from options_flow_tracker.storage.repos import (
    OptionTradeDTO,
    OptionTradeRepository,
    PipelineStateRepository,
)
from options_flow_tracker.storage.store import FlowStore, StoreError

__all__ = [
    "Base",
    "DatabaseManager",
    "FlowStore",
    "OptionTradeDTO",
    "OptionTradeModel",
    "OptionTradeRepository",
    "PipelineStateModel",
    "PipelineStateRepository",
    "StoreError",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
