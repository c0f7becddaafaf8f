"""Velocity-based fraud scoring rules.

Three independent windows ending at the subject's timestamp. Each window has
its own count threshold; they are not nested, so a burst can trigger all
three.
"""

from datetime import timedelta

from ..config import FraudConfig
from ..models import RuleResult
from .base import FraudRule, ScoringInput

_REASON_TEMPLATES = {
    "5m": "High velocity attack: {count} txns in 5 min",
    "1h": "High velocity: {count} txns in 1 hour",
    "24h": "Unusual daily velocity: {count} txns today",
}


class VelocityWindowRule(FraudRule):
    """Triggers when the transaction count in one window exceeds its threshold."""

    category = "velocity"

    def __init__(self, window: str) -> None:
        self.window = window
        self.rule_id = f"velocity_{window}"

    def evaluate(self, ctx: ScoringInput, config: FraudConfig) -> RuleResult:
        window_def = next((w for w in config.velocity.windows if w[0] == self.window), None)
        if window_def is None:
            return self._not_triggered()

        _, seconds, max_count, points = window_def
        count = len(ctx.in_window(timedelta(seconds=seconds)))
        if count <= max_count:
            return self._not_triggered()

        template = _REASON_TEMPLATES.get(self.window, "High velocity: {count} txns in {window}")
        return self._triggered(
            points=points,
            reason=template.format(count=count, window=self.window),
            evidence={"count": count, "threshold": max_count, "window": self.window},
        )
