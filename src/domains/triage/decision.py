"""Final decision synthesis from the fraud report, KB hits and duplicate detection."""

import structlog

from src.domains.fraud.models import FraudReport, RecommendedAction, Transaction

from .config import DecisionSettings, KnowledgeSettings, default_triage_config
from .models import Decision, KBHit

logger = structlog.get_logger()

DEFAULT_REASON = "No issues found."


def find_near_duplicates(
    subject: Transaction | None,
    transactions: list[Transaction],
    tolerance_cents: int = 100,
) -> list[Transaction]:
    """Other transactions at the subject's merchant with an almost equal amount.

    No time bound: a pre-authorization and its capture may be days apart.
    """
    if subject is None:
        return []
    return [
        t
        for t in transactions
        if t.merchant == subject.merchant
        and abs(t.amount_cents - subject.amount_cents) < tolerance_cents
        and t.id != subject.id
    ]


def _pre_auth_reason(subject: Transaction | None, settings: DecisionSettings) -> str:
    merchant = subject.merchant if subject else "the merchant"
    kind = "ride-sharing" if subject and subject.mcc == settings.ride_share_mcc else "this type of"
    return (
        f"Two transactions detected: pre-authorization hold and final capture at {merchant}. "
        f"This is normal for {kind} merchant. Not fraudulent."
    )


def _is_dispute_hit(hit: KBHit, knowledge: KnowledgeSettings) -> bool:
    return hit.anchor.startswith(knowledge.dispute_anchor_prefix) or "dispute" in hit.title.lower()


def synthesize_decision(
    fraud_report: FraudReport | None,
    kb_hits: list[KBHit],
    duplicates: list[Transaction],
    subject: Transaction | None,
    decision_settings: DecisionSettings | None = None,
    knowledge_settings: KnowledgeSettings | None = None,
) -> Decision:
    """Combine already-fetched results into the final recommendation.

    Rules, first match wins:
    1. Near-duplicates plus the pre-auth-vs-capture KB article -> NONE, cite it.
    2. OPEN_DISPUTE with dispute-related KB hits -> cite those hits.
    3. FREEZE_CARD -> append the OTP policy caveat to the reason.
    4. Otherwise carry the fraud report through unchanged.
    """
    settings = decision_settings or default_triage_config.decision
    knowledge = knowledge_settings or default_triage_config.knowledge

    action = RecommendedAction.NONE
    reason = DEFAULT_REASON
    reason_code = None
    if fraud_report is not None:
        action = fraud_report.recommended_action or RecommendedAction.NONE
        reason = fraud_report.reasons[0] if fraud_report.reasons else DEFAULT_REASON
        reason_code = fraud_report.reason_code

    pre_auth_hit = next((h for h in kb_hits if h.anchor == knowledge.pre_auth_anchor), None)
    if duplicates and pre_auth_hit is not None:
        related = [t for t in [subject, *duplicates] if t is not None]
        logger.info(
            "pre_auth_override_applied",
            subject_id=subject.id if subject else None,
            related_count=len(related),
        )
        return Decision(
            action=RecommendedAction.NONE,
            reason=_pre_auth_reason(subject, settings),
            reason_code=reason_code,
            citations=[pre_auth_hit],
            related_transactions=related,
        )

    citations: list[KBHit] = []
    if action == RecommendedAction.OPEN_DISPUTE:
        citations = [h for h in kb_hits if _is_dispute_hit(h, knowledge)]

    if action == RecommendedAction.FREEZE_CARD:
        reason += settings.freeze_policy_caveat

    return Decision(
        action=action,
        reason=reason,
        reason_code=reason_code,
        citations=citations,
    )
