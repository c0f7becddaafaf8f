"""Unit tests for the rules engine tally and tier classification."""

import asyncio
from datetime import timedelta

import pytest
from pydantic import ValidationError

from src.domains.fraud.config import FraudConfig
from src.domains.fraud.models import Case, RecommendedAction, RiskScore, RuleResult
from src.domains.fraud.rules.base import FraudRule
from src.domains.fraud.rules_engine import NO_ISSUES_REASON, RulesEngine
from tests.conftest import NOW, make_customer, make_dispute, make_txn

CONFIG = FraudConfig()


class _FixedPointsRule(FraudRule):
    category = "test"

    def __init__(self, rule_id: str, points: int) -> None:
        self.rule_id = rule_id
        self.points = points

    def evaluate(self, ctx, config) -> RuleResult:
        return self._triggered(points=self.points, reason=f"{self.rule_id} fired")


class _BrokenRule(FraudRule):
    rule_id = "broken"
    category = "test"

    def evaluate(self, ctx, config) -> RuleResult:
        raise RuntimeError("boom")


def _score(engine: RulesEngine, subject, history=None, disputes=None):
    transactions = [*(history or []), subject]
    return engine.score(transactions, subject, make_customer(), disputes or [])


class TestRulesEngine:
    def test_clean_transaction(self):
        report = _score(RulesEngine(config=CONFIG), make_txn())
        assert report.score == RiskScore.LOW
        assert report.recommended_action == RecommendedAction.NONE
        assert report.reasons == [NO_ISSUES_REASON]
        assert report.reason_code is None

    def test_high_amount_alone_is_medium_dispute(self):
        report = _score(RulesEngine(config=CONFIG), make_txn(amount_cents=150_000))
        assert report.score == RiskScore.MEDIUM
        assert report.recommended_action == RecommendedAction.OPEN_DISPUTE
        assert report.reason_code == "10.4"
        assert report.reasons == ["High transaction amount"]

    def test_burst_with_new_device_is_high(self):
        history = [
            make_txn(id=f"h{i}", ts=NOW - timedelta(seconds=30 * (i + 1)), device_id="device-1")
            for i in range(5)
        ]
        subject = make_txn(id="s", ts=NOW, device_id="device-new")
        report = _score(RulesEngine(config=CONFIG), subject, history)
        assert report.score == RiskScore.HIGH
        assert report.recommended_action == RecommendedAction.FREEZE_CARD
        assert report.reasons[0] == "High velocity attack: 6 txns in 5 min"

    def test_burst_alone_is_medium_dispute(self):
        # 50 points from the 5-minute window is below the HIGH cut-off
        history = [make_txn(id=f"h{i}", ts=NOW - timedelta(seconds=30 * (i + 1))) for i in range(5)]
        report = _score(RulesEngine(config=CONFIG), make_txn(id="s"), history)
        assert report.score == RiskScore.MEDIUM
        assert report.recommended_action == RecommendedAction.OPEN_DISPUTE

    def test_medium_below_dispute_min_freezes(self):
        engine = RulesEngine(config=CONFIG, rules=[_FixedPointsRule("r", 35)])
        report = _score(engine, make_txn(amount_cents=1_000))
        assert report.score == RiskScore.MEDIUM
        assert report.recommended_action == RecommendedAction.FREEZE_CARD
        assert report.reason_code == "10.4"

    @pytest.mark.parametrize(
        "points, expected",
        [(0, RiskScore.LOW), (29, RiskScore.LOW), (30, RiskScore.MEDIUM), (59, RiskScore.MEDIUM), (60, RiskScore.HIGH)],
    )
    def test_tier_boundaries(self, points, expected):
        engine = RulesEngine(config=CONFIG, rules=[_FixedPointsRule("r", points)])
        assert _score(engine, make_txn()).score == expected

    def test_adding_points_never_lowers_tier(self):
        order = [RiskScore.LOW, RiskScore.MEDIUM, RiskScore.HIGH]
        previous = RiskScore.LOW
        for points in range(0, 120, 5):
            engine = RulesEngine(config=CONFIG, rules=[_FixedPointsRule("r", points)])
            tier = _score(engine, make_txn()).score
            assert order.index(tier) >= order.index(previous)
            previous = tier

    def test_reasons_follow_rule_order(self):
        rules = [_FixedPointsRule("first", 5), _FixedPointsRule("second", 5)]
        report = _score(RulesEngine(config=CONFIG, rules=rules), make_txn())
        assert report.reasons == ["first fired", "second fired"]

    def test_recurring_low_risk_opens_dispute(self):
        history = [
            make_txn(
                id=f"h{i}",
                merchant="StreamFlix",
                amount_cents=49_900,
                ts=NOW - timedelta(days=7 * (i + 1)),
            )
            for i in range(3)
        ]
        subject = make_txn(id="s", merchant="StreamFlix", amount_cents=49_900)
        report = _score(RulesEngine(config=CONFIG), subject, history)
        assert report.score == RiskScore.LOW
        assert report.recommended_action == RecommendedAction.OPEN_DISPUTE
        assert report.reason_code == "13.7"

    def test_dispute_history_contributes(self):
        disputes = [make_dispute(f"c{i}", days_ago=i + 1) for i in range(3)]
        report = _score(RulesEngine(config=CONFIG), make_txn(), disputes=disputes)
        assert report.score == RiskScore.MEDIUM
        assert report.recommended_action == RecommendedAction.OPEN_DISPUTE

    def test_broken_rule_propagates(self):
        rules = [_FixedPointsRule("ok", 30), _BrokenRule()]
        with pytest.raises(RuntimeError, match="boom"):
            _score(RulesEngine(config=CONFIG, rules=rules), make_txn())

    def test_naive_timestamps_are_rejected(self):
        with pytest.raises(ValidationError):
            make_txn(ts=NOW.replace(tzinfo=None))
        with pytest.raises(ValidationError):
            Case.model_validate(
                {"id": "c1", "customer_id": "cust-1", "type": "DISPUTE", "created_at": "2026-01-14T10:00:00"}
            )

    def test_deterministic(self):
        engine = RulesEngine(config=CONFIG)
        subject = make_txn(amount_cents=150_000, country="US", mcc="7995")
        history = [make_txn(id=f"h{i}") for i in range(3)]
        assert _score(engine, subject, history) == _score(engine, subject, history)


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_analyze_matches_score(self):
        engine = RulesEngine(config=CONFIG)
        subject = make_txn(amount_cents=150_000)
        report = await engine.analyze([subject], subject, make_customer(), [])
        assert report == _score(engine, subject)

    @pytest.mark.asyncio
    async def test_simulated_timeout_hangs(self):
        config = FraudConfig()
        config.scoring.simulated_hang_seconds = 5.0
        engine = RulesEngine(config=config)
        subject = make_txn(metadata={"simulate_risk_timeout": True})

        with pytest.raises(TimeoutError):
            await asyncio.wait_for(
                engine.analyze([subject], subject, make_customer(), []), timeout=0.05
            )

    @pytest.mark.asyncio
    async def test_non_true_flag_does_not_hang(self):
        engine = RulesEngine(config=CONFIG)
        subject = make_txn(metadata={"simulate_risk_timeout": "yes"})
        report = await asyncio.wait_for(
            engine.analyze([subject], subject, make_customer(), []), timeout=1.0
        )
        assert report.score == RiskScore.LOW

    @pytest.mark.asyncio
    async def test_module_level_analyze(self):
        from src.domains.fraud import analyze

        subject = make_txn(amount_cents=150_000)
        report = await analyze([subject], subject, make_customer())
        assert report.score == RiskScore.MEDIUM
        assert report.reason_code == "10.4"
