"""Deterministic rule-based fraud scoring engine with an additive integer tally."""

import asyncio

import structlog

from .config import FraudConfig, default_config
from .models import (
    Case,
    Customer,
    FraudReport,
    RecommendedAction,
    RiskScore,
    RuleResult,
    Transaction,
)
from .rules import ALL_RULES, FraudRule, ScoringInput

logger = structlog.get_logger()

NO_ISSUES_REASON = "No issues found."


class RulesEngine:
    """Scores a subject transaction against its recent history.

    Scoring:
    1. Run every rule in ALL_RULES order -> list[RuleResult]
    2. Tally = sum of points of triggered rules
    3. Reasons = reasons of triggered rules, in rule order
    4. Tally -> score tier and recommended action (see ``_classify``)
    """

    def __init__(
        self,
        config: FraudConfig | None = None,
        rules: list[FraudRule] | None = None,
    ) -> None:
        self._rules = list(rules if rules is not None else ALL_RULES)
        self._config = config or default_config
        logger.debug("rules_engine_initialized", rule_count=len(self._rules))

    async def analyze(
        self,
        transactions: list[Transaction],
        subject: Transaction,
        customer: Customer,
        dispute_history: list[Case] | None = None,
    ) -> FraudReport:
        """Score ``subject``. Only suspends when a hung service is being simulated."""
        if subject.simulates_risk_timeout:
            # Hang past any sane stage budget; the caller's guardrail owns the fallback
            logger.info("risk_timeout_simulated", transaction_id=subject.id)
            await asyncio.sleep(self._config.scoring.simulated_hang_seconds)

        return self.score(transactions, subject, customer, dispute_history or [])

    def score(
        self,
        transactions: list[Transaction],
        subject: Transaction,
        customer: Customer,
        dispute_history: list[Case],
    ) -> FraudReport:
        cfg = self._config
        ctx = ScoringInput(
            transactions=list(transactions),
            subject=subject,
            customer=customer,
            dispute_history=list(dispute_history),
        )

        results: list[RuleResult] = []
        for rule in self._rules:
            try:
                results.append(rule.evaluate(ctx, cfg))
            except Exception:
                # Surfaces to the stage guardrail, which substitutes the fallback report
                logger.exception("rule_evaluation_error", rule_id=rule.rule_id)
                raise

        triggered = [r for r in results if r.triggered]
        tally = sum(r.points for r in triggered)
        reasons = [r.reason for r in triggered] or [NO_ISSUES_REASON]
        recurring = any(r.rule_name == "recurring_charge" for r in triggered)

        report = self._classify(tally, subject, reasons, recurring)

        logger.info(
            "fraud_rules_evaluated",
            transaction_id=subject.id,
            tally=tally,
            score=report.score.value,
            recommended_action=report.recommended_action,
            triggered=[r.rule_name for r in triggered],
        )
        return report

    def _classify(
        self,
        tally: int,
        subject: Transaction,
        reasons: list[str],
        recurring: bool,
    ) -> FraudReport:
        scoring = self._config.scoring

        if tally >= scoring.high_min:
            return FraudReport(
                score=RiskScore.HIGH,
                reasons=reasons,
                recommended_action=RecommendedAction.FREEZE_CARD,
            )

        if tally >= scoring.medium_min:
            opens_dispute = (
                subject.amount_cents > self._config.amount.high_amount_cents
                or tally >= scoring.medium_dispute_min
            )
            return FraudReport(
                score=RiskScore.MEDIUM,
                reasons=reasons,
                recommended_action=(
                    RecommendedAction.OPEN_DISPUTE if opens_dispute else RecommendedAction.FREEZE_CARD
                ),
                reason_code=scoring.card_absent_fraud_code,
            )

        return FraudReport(
            score=RiskScore.LOW,
            reasons=reasons,
            recommended_action=RecommendedAction.OPEN_DISPUTE if recurring else RecommendedAction.NONE,
            reason_code=scoring.cancelled_recurring_code if recurring else None,
        )


_default_engine: RulesEngine | None = None


async def analyze(
    transactions: list[Transaction],
    subject: Transaction,
    customer: Customer,
    dispute_history: list[Case] | None = None,
) -> FraudReport:
    """Score with the module-level default engine."""
    global _default_engine
    if _default_engine is None:
        _default_engine = RulesEngine()
    return await _default_engine.analyze(transactions, subject, customer, dispute_history)
