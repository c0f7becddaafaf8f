"""Triage pipeline configuration with sensible defaults."""

import os
from dataclasses import dataclass, field


@dataclass
class GuardrailSettings:
    stage_timeout_ms: int = 1000


@dataclass
class KnowledgeSettings:
    pre_auth_query: str = "pre-auth"
    dispute_query: str = "dispute"
    pre_auth_anchor: str = "disputes:pre-auth-vs-capture"
    dispute_anchor_prefix: str = "disputes:"


@dataclass
class DecisionSettings:
    # Two charges at one merchant closer than this are treated as an auth/capture pair
    duplicate_tolerance_cents: int = 100
    ride_share_mcc: str = "4121"
    freeze_policy_caveat: str = " (Policy: OTP may be required for unfreeze)"


@dataclass
class TriageConfig:
    guardrails: GuardrailSettings = field(default_factory=GuardrailSettings)
    knowledge: KnowledgeSettings = field(default_factory=KnowledgeSettings)
    decision: DecisionSettings = field(default_factory=DecisionSettings)

    @classmethod
    def from_env(cls) -> "TriageConfig":
        """Load config with env var overrides. Env vars use TRIAGE_ prefix."""
        config = cls()

        if v := os.getenv("TRIAGE_STAGE_TIMEOUT_MS"):
            config.guardrails.stage_timeout_ms = int(v)
        if v := os.getenv("TRIAGE_DUPLICATE_TOLERANCE_CENTS"):
            config.decision.duplicate_tolerance_cents = int(v)
        if v := os.getenv("TRIAGE_PRE_AUTH_ANCHOR"):
            config.knowledge.pre_auth_anchor = v

        return config


# Module-level default instance
default_triage_config = TriageConfig()
