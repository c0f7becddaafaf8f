"""Fraud scoring rules package.

Exports ALL_RULES (list of all rule instances, in evaluation order) and the
individual rule classes for direct use. Evaluation order is also the order of
the reasons in the resulting FraudReport.
"""

from .amount import HighAmountRule
from .base import FraudRule, ScoringInput
from .geo import CrossBorderRule, DeviceChangeRule, MultiCountryRule, home_country
from .patterns import (
    AmbiguousMerchantRule,
    DisputeHistoryRule,
    RecurringChargeRule,
    RiskyMccRule,
)
from .velocity import VelocityWindowRule

# All rule instances in evaluation order
ALL_RULES: list[FraudRule] = [
    HighAmountRule(),
    VelocityWindowRule("5m"),
    VelocityWindowRule("1h"),
    VelocityWindowRule("24h"),
    DeviceChangeRule(),
    MultiCountryRule(),
    RiskyMccRule(),
    CrossBorderRule(),
    DisputeHistoryRule(),
    RecurringChargeRule(),
    AmbiguousMerchantRule(),
]

__all__ = [
    "ALL_RULES",
    "FraudRule",
    "ScoringInput",
    "home_country",
    # Amount
    "HighAmountRule",
    # Velocity
    "VelocityWindowRule",
    # Geo
    "DeviceChangeRule",
    "MultiCountryRule",
    "CrossBorderRule",
    # Patterns
    "RiskyMccRule",
    "DisputeHistoryRule",
    "RecurringChargeRule",
    "AmbiguousMerchantRule",
]
