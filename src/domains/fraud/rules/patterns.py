"""Merchant, history and recurring-pattern fraud scoring rules."""

from datetime import timedelta

from ..config import FraudConfig
from ..models import RuleResult
from .base import FraudRule, ScoringInput


class RiskyMccRule(FraudRule):
    """Triggers for merchant category codes on the high-risk denylist."""

    rule_id = "risky_mcc"
    category = "patterns"

    def evaluate(self, ctx: ScoringInput, config: FraudConfig) -> RuleResult:
        label = config.patterns.risky_mccs.get(ctx.subject.mcc)
        if label is None:
            return self._not_triggered()

        return self._triggered(
            points=config.patterns.risky_mcc_points,
            reason=f"Unusual MCC: {label}",
            evidence={"mcc": ctx.subject.mcc},
        )


class DisputeHistoryRule(FraudRule):
    """Tiered contribution from the customer's recent dispute cases.

    The lookback is anchored on the subject transaction's timestamp so the
    outcome does not depend on when the triage runs.
    """

    rule_id = "dispute_history"
    category = "patterns"

    def evaluate(self, ctx: ScoringInput, config: FraudConfig) -> RuleResult:
        cfg = config.patterns
        cutoff = ctx.now - timedelta(days=cfg.dispute_lookback_days)
        recent = [
            c
            for c in ctx.dispute_history
            if c.type == cfg.dispute_case_type and c.created_at > cutoff
        ]
        count = len(recent)
        if count == 0:
            return self._not_triggered()

        if count >= cfg.dispute_heavy_count:
            return self._triggered(
                points=cfg.dispute_heavy_points,
                reason=f"Customer has {count} chargebacks in last {cfg.dispute_lookback_days} days",
                evidence={"count": count},
            )
        return self._triggered(
            points=cfg.dispute_light_points,
            reason=f"Customer has chargeback history ({count} cases)",
            evidence={"count": count},
        )


class RecurringChargeRule(FraudRule):
    """Flags a likely subscription: repeated charges at one merchant, similar amounts.

    Contributes no points. The engine consults it when choosing the action
    for low-risk transactions.
    """

    rule_id = "recurring_charge"
    category = "patterns"

    def evaluate(self, ctx: ScoringInput, config: FraudConfig) -> RuleResult:
        cfg = config.patterns
        history = [t for t in ctx.transactions if t.merchant == ctx.subject.merchant]
        if len(history) < cfg.recurring_min_count:
            return self._not_triggered()

        mean = sum(t.amount_cents for t in history) / len(history)
        if abs(ctx.subject.amount_cents - mean) >= mean * cfg.recurring_tolerance_pct:
            return self._not_triggered()

        return self._triggered(
            points=0,
            reason=f"Potential subscription charge from {ctx.subject.merchant}",
            evidence={"count": len(history), "mean_amount_cents": round(mean, 2)},
        )


class AmbiguousMerchantRule(FraudRule):
    """Triggers when the merchant name is a payment intermediary or placeholder."""

    rule_id = "ambiguous_merchant"
    category = "patterns"

    def evaluate(self, ctx: ScoringInput, config: FraudConfig) -> RuleResult:
        merchant = ctx.subject.merchant.upper()
        matched = [f for f in config.patterns.ambiguous_merchant_fragments if f in merchant]
        if not matched:
            return self._not_triggered()

        return self._triggered(
            points=config.patterns.ambiguous_merchant_points,
            reason="Ambiguous merchant name - difficult to verify legitimacy",
            evidence={"fragments": matched},
        )
