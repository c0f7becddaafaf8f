"""Amount-based fraud scoring rules."""

from ..config import FraudConfig
from ..models import RuleResult
from .base import FraudRule, ScoringInput


class HighAmountRule(FraudRule):
    """Triggers when the subject amount exceeds the fixed cents threshold."""

    rule_id = "high_amount"
    category = "amount"

    def evaluate(self, ctx: ScoringInput, config: FraudConfig) -> RuleResult:
        threshold = config.amount.high_amount_cents
        amount = ctx.subject.amount_cents
        if amount <= threshold:
            return self._not_triggered()

        return self._triggered(
            points=config.amount.high_amount_points,
            reason="High transaction amount",
            evidence={"amount_cents": amount, "threshold_cents": threshold},
        )
