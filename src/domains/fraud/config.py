"""Fraud scoring configuration with sensible defaults.

The numeric thresholds are inherited as-is from the production rule set. They
were never calibrated against labelled outcomes, so changing them needs a
labelled dataset rather than intuition.
"""

import os
from dataclasses import dataclass, field


@dataclass
class AmountThresholds:
    high_amount_cents: int = 100_000
    high_amount_points: int = 30


@dataclass
class VelocityThresholds:
    # (window label, window seconds, count must exceed, points)
    windows: tuple[tuple[str, int, int, int], ...] = (
        ("5m", 5 * 60, 3, 50),
        ("1h", 60 * 60, 10, 35),
        ("24h", 24 * 60 * 60, 30, 20),
    )


@dataclass
class GeoThresholds:
    device_lookback_count: int = 5
    device_change_points: int = 35
    multi_country_window_hours: int = 24
    multi_country_min: int = 3
    multi_country_points: int = 40
    cross_border_points: int = 20
    # Used only when the transaction window is empty; None disables the rule
    default_home_country: str | None = None


@dataclass
class PatternThresholds:
    risky_mccs: dict[str, str] = field(
        default_factory=lambda: {
            "7995": "Gambling",
            "7800": "Government-owned lottery",
            "5967": "Direct marketing - inbound telemarketing",
        }
    )
    risky_mcc_points: int = 25
    dispute_case_type: str = "DISPUTE"
    dispute_lookback_days: int = 90
    dispute_heavy_count: int = 3
    dispute_heavy_points: int = 40
    dispute_light_points: int = 15
    recurring_min_count: int = 3
    recurring_tolerance_pct: float = 0.10
    ambiguous_merchant_fragments: tuple[str, ...] = (
        "PAYPAL",
        "SQUARE",
        "STRIPE",
        "VENMO",
        "*TEMP*",
        "PENDING",
    )
    ambiguous_merchant_points: int = 15


@dataclass
class ScoringThresholds:
    high_min: int = 60
    medium_min: int = 30
    # MEDIUM tally at or above this opens a dispute instead of freezing
    medium_dispute_min: int = 40
    card_absent_fraud_code: str = "10.4"
    cancelled_recurring_code: str = "13.7"
    # Engine sleeps this long when a transaction asks to simulate a hung service
    simulated_hang_seconds: float = 30.0


@dataclass
class FraudConfig:
    amount: AmountThresholds = field(default_factory=AmountThresholds)
    velocity: VelocityThresholds = field(default_factory=VelocityThresholds)
    geo: GeoThresholds = field(default_factory=GeoThresholds)
    patterns: PatternThresholds = field(default_factory=PatternThresholds)
    scoring: ScoringThresholds = field(default_factory=ScoringThresholds)

    @classmethod
    def from_env(cls) -> "FraudConfig":
        """Load config with env var overrides. Env vars use FRAUD_ prefix."""
        config = cls()

        if v := os.getenv("FRAUD_HIGH_AMOUNT_CENTS"):
            config.amount.high_amount_cents = int(v)
        if v := os.getenv("FRAUD_MULTI_COUNTRY_MIN"):
            config.geo.multi_country_min = int(v)
        if v := os.getenv("FRAUD_DEFAULT_HOME_COUNTRY"):
            config.geo.default_home_country = v
        if v := os.getenv("FRAUD_DISPUTE_LOOKBACK_DAYS"):
            config.patterns.dispute_lookback_days = int(v)

        if v := os.getenv("FRAUD_HIGH_MIN"):
            config.scoring.high_min = int(v)
        if v := os.getenv("FRAUD_MEDIUM_MIN"):
            config.scoring.medium_min = int(v)
        if v := os.getenv("FRAUD_SIMULATED_HANG_SECONDS"):
            config.scoring.simulated_hang_seconds = float(v)

        return config


# Module-level default instance
default_config = FraudConfig()
