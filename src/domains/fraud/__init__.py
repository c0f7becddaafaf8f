"""Fraud scoring domain."""

from .config import FraudConfig, default_config
from .models import (
    Alert,
    Case,
    Customer,
    FraudReport,
    RecommendedAction,
    RiskScore,
    RuleResult,
    Transaction,
)
from .rules import ALL_RULES
from .rules_engine import RulesEngine, analyze

__all__ = [
    "ALL_RULES",
    "Alert",
    "Case",
    "Customer",
    "FraudConfig",
    "FraudReport",
    "RecommendedAction",
    "RiskScore",
    "RuleResult",
    "RulesEngine",
    "Transaction",
    "analyze",
    "default_config",
]
