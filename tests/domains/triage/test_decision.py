"""Tests for near-duplicate detection and final decision synthesis."""

from datetime import timedelta

from src.domains.fraud.models import FraudReport, RecommendedAction, RiskScore
from src.domains.triage.decision import find_near_duplicates, synthesize_decision
from tests.conftest import DISPUTE_HIT, MERCHANT_HIT, NOW, PRE_AUTH_HIT, make_txn


def _report(action: RecommendedAction | None, reasons=None, score=RiskScore.MEDIUM, code=None):
    return FraudReport(
        score=score,
        reasons=reasons or ["High transaction amount"],
        recommended_action=action,
        reason_code=code,
    )


class TestFindNearDuplicates:
    def test_same_merchant_close_amount(self):
        subject = make_txn(id="s", merchant="Uber", amount_cents=45_000)
        other = make_txn(id="o", merchant="Uber", amount_cents=45_050, ts=NOW - timedelta(days=3))
        assert find_near_duplicates(subject, [subject, other]) == [other]

    def test_tolerance_is_exclusive(self):
        subject = make_txn(id="s", merchant="Uber", amount_cents=45_000)
        other = make_txn(id="o", merchant="Uber", amount_cents=45_100)
        assert find_near_duplicates(subject, [subject, other]) == []

    def test_other_merchant_ignored(self):
        subject = make_txn(id="s", merchant="Uber", amount_cents=45_000)
        other = make_txn(id="o", merchant="Ola", amount_cents=45_000)
        assert find_near_duplicates(subject, [other]) == []

    def test_no_subject(self):
        assert find_near_duplicates(None, [make_txn()]) == []


class TestSynthesizeDecision:
    def test_pre_auth_override(self):
        subject = make_txn(id="s", merchant="Uber", mcc="4121", amount_cents=45_000)
        duplicate = make_txn(id="d", merchant="Uber", mcc="4121", amount_cents=45_000)
        decision = synthesize_decision(
            _report(RecommendedAction.OPEN_DISPUTE, code="10.4"),
            [MERCHANT_HIT, PRE_AUTH_HIT, DISPUTE_HIT],
            [duplicate],
            subject,
        )
        assert decision.action == RecommendedAction.NONE
        assert decision.citations == [PRE_AUTH_HIT]
        assert [t.id for t in decision.related_transactions] == ["s", "d"]
        assert "ride-sharing merchant" in decision.reason
        assert "Uber" in decision.reason

    def test_pre_auth_generic_phrasing(self):
        subject = make_txn(id="s", merchant="Hotel Taj", mcc="7011")
        decision = synthesize_decision(
            _report(RecommendedAction.FREEZE_CARD), [PRE_AUTH_HIT], [make_txn(id="d")], subject
        )
        assert "this type of merchant" in decision.reason
        assert "Policy" not in decision.reason

    def test_duplicates_without_pre_auth_hit(self):
        decision = synthesize_decision(
            _report(RecommendedAction.NONE, score=RiskScore.LOW),
            [MERCHANT_HIT],
            [make_txn(id="d")],
            make_txn(id="s"),
        )
        assert decision.action == RecommendedAction.NONE
        assert decision.related_transactions is None

    def test_dispute_citations(self):
        decision = synthesize_decision(
            _report(RecommendedAction.OPEN_DISPUTE, code="10.4"),
            [MERCHANT_HIT, DISPUTE_HIT],
            [],
            make_txn(),
        )
        assert decision.action == RecommendedAction.OPEN_DISPUTE
        assert decision.citations == [DISPUTE_HIT]
        assert decision.reason_code == "10.4"
        assert decision.reason == "High transaction amount"

    def test_freeze_caveat(self):
        decision = synthesize_decision(
            _report(RecommendedAction.FREEZE_CARD, ["High velocity attack: 6 txns in 5 min"]),
            [],
            [],
            make_txn(),
        )
        assert decision.reason == (
            "High velocity attack: 6 txns in 5 min (Policy: OTP may be required for unfreeze)"
        )
        assert decision.citations == []

    def test_missing_action_defaults_to_none(self):
        decision = synthesize_decision(_report(None), [], [], make_txn())
        assert decision.action == RecommendedAction.NONE

    def test_no_report(self):
        decision = synthesize_decision(None, [], [], None)
        assert decision.action == RecommendedAction.NONE
        assert decision.reason == "No issues found."
