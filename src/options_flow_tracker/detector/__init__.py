"""Detection layer - Alert tier classification."""

from options_flow_tracker.detector.classifier import (
    ClassifierConfig,
    TradeClassifier,
    classify,
    days_to_expiry,
    per_contract_price,
)
from options_flow_tracker.detector.models import AlertTier, ClassifiedTrade

__all__ = [
    "AlertTier",
    "ClassifiedTrade",
    "ClassifierConfig",
    "TradeClassifier",
    "classify",
    "days_to_expiry",
    "per_contract_price",
]
