"""Triage pipeline: context -> risk scoring -> KB lookup -> decision -> finalize.

One orchestrator owns one run. Stages execute strictly in order; every stage
that calls out to a collaborator goes through ``run_agent``, which is the only
place that times stages, records traces and publishes ``tool_update`` events.
The run always ends in ``_finalize``, exactly once, which publishes the single
``decision_finalized`` event.
"""

import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from src.domains.fraud.models import (
    FraudReport,
    RecommendedAction,
    RiskScore,
    Transaction,
)
from src.domains.fraud.rules_engine import RulesEngine
from src.shared.redaction import redact

from .config import TriageConfig, default_triage_config
from .decision import find_near_duplicates, synthesize_decision
from .errors import InvalidTransitionError
from .guardrails import guarded_call
from .models import KBHit, TriageContext, TriageState, TriageStatus
from .ports import EventPublisher, KnowledgeLookup, RunStore, TraceRecorder

logger = structlog.get_logger()

T = TypeVar("T")

STEP_LOAD_CONTEXT = "load_context"
STEP_RISK_SIGNALS = "risk_signals"
STEP_KB_LOOKUP = "kb_lookup"

EVENT_TOOL_UPDATE = "tool_update"
EVENT_DECISION_FINALIZED = "decision_finalized"

_PIPELINE_ORDER = [
    TriageStatus.CREATED,
    TriageStatus.CONTEXT_LOADED,
    TriageStatus.RISK_SCORED,
    TriageStatus.KB_SEARCHED,
    TriageStatus.DECIDED,
    TriageStatus.FINALIZED,
]

_KB_HITS_ADAPTER = TypeAdapter(list[KBHit])


def _risk_unavailable_report() -> FraudReport:
    return FraudReport(
        score=RiskScore.MEDIUM,
        reasons=[
            "Risk service unavailable - using fallback heuristics",
            "Transaction amount review recommended",
        ],
        recommended_action=RecommendedAction.OPEN_DISPUTE,
        fallback_used=True,
    )


def _validation_failed_report() -> FraudReport:
    return FraudReport(
        score=RiskScore.MEDIUM,
        reasons=["risk_validation_failed (fallback)"],
        fallback_used=True,
    )


def _no_transaction_report() -> FraudReport:
    return FraudReport(
        score=RiskScore.LOW,
        reasons=["No transaction data available"],
        recommended_action=RecommendedAction.NONE,
        fallback_used=True,
    )


class TriageOrchestrator:
    """Drives one triage run through its linear state machine."""

    def __init__(
        self,
        run_id: str,
        context: TriageContext,
        *,
        trace_recorder: TraceRecorder,
        publisher: EventPublisher,
        knowledge: KnowledgeLookup,
        run_store: RunStore,
        engine: RulesEngine | None = None,
        config: TriageConfig | None = None,
    ) -> None:
        self.run_id = run_id
        self.state = TriageState(context=context)
        self.fallback_used = False
        self._seq = 0
        self._trace_recorder = trace_recorder
        self._publisher = publisher
        self._knowledge = knowledge
        self._run_store = run_store
        self._engine = engine or RulesEngine()
        self._config = config or default_triage_config
        self._duplicates: list[Transaction] = []
        self._log = logger.bind(run_id=run_id, alert_id=context.alert.id)

    async def run(self) -> TriageState:
        """Execute the pipeline. Re-raises unexpected errors after finalizing."""
        self._log.info("triage_run_started")
        try:
            await self._load_context()
            subject = await self._score_risk()
            await self._search_knowledge(subject)
            self._decide(subject)
        except Exception as exc:
            self._log.exception("triage_run_failed", status=self.state.status.value)
            try:
                await self._finalize(error=exc)
            except Exception:
                # The pipeline error is what the caller sees
                self._log.exception("triage_finalize_failed")
            raise

        await self._finalize()
        return self.state

    # --- stages -------------------------------------------------------------

    async def _load_context(self) -> None:
        ctx = self.state.context
        await self._trace_step(
            STEP_LOAD_CONTEXT,
            {
                "customer_id": ctx.customer.id,
                "alert_id": ctx.alert.id,
                "txn_id": ctx.alert.suspect_txn_id,
            },
            ok=True,
        )
        self._advance(TriageStatus.CONTEXT_LOADED)

    def _subject_transaction(self) -> Transaction | None:
        ctx = self.state.context
        if ctx.alert.suspect_txn is not None:
            return ctx.alert.suspect_txn
        if ctx.recent_transactions:
            return max(ctx.recent_transactions, key=lambda t: t.ts)
        return None

    async def _score_risk(self) -> Transaction | None:
        ctx = self.state.context
        subject = self._subject_transaction()

        if subject is None:
            self._log.warning("triage_no_subject_transaction")
            self.state.fraud_report = _no_transaction_report()
            self.fallback_used = True
            await self._trace_step(STEP_RISK_SIGNALS, {"error": "No transaction data"}, ok=False)
            self._advance(TriageStatus.RISK_SCORED)
            return None

        raw = await self.run_agent(
            STEP_RISK_SIGNALS,
            lambda: self._engine.analyze(
                ctx.recent_transactions, subject, ctx.customer, ctx.dispute_history
            ),
            _risk_unavailable_report(),
        )

        report = self._validate_fraud_report(raw)
        if report is None:
            report = _validation_failed_report()
            self.fallback_used = True
        elif report.fallback_used is True:
            self.fallback_used = True

        self.state.fraud_report = report
        self._advance(TriageStatus.RISK_SCORED)
        return subject

    async def _search_knowledge(self, subject: Transaction | None) -> None:
        knowledge = self._config.knowledge
        hits: list[KBHit] = []

        if subject is not None and subject.merchant:
            merchant = subject.merchant
            hits += await self.run_agent(
                STEP_KB_LOOKUP, lambda: self._knowledge.search(merchant), []
            )

        self._duplicates = find_near_duplicates(
            subject,
            self.state.context.recent_transactions,
            self._config.decision.duplicate_tolerance_cents,
        )
        if self._duplicates:
            self._log.info("near_duplicates_found", count=len(self._duplicates))
            hits += await self.run_agent(
                STEP_KB_LOOKUP, lambda: self._knowledge.search(knowledge.pre_auth_query), []
            )

        report = self.state.fraud_report
        if report is not None and report.recommended_action == RecommendedAction.OPEN_DISPUTE:
            hits += await self.run_agent(
                STEP_KB_LOOKUP, lambda: self._knowledge.search(knowledge.dispute_query), []
            )

        self.state.kb_hits = _KB_HITS_ADAPTER.validate_python(
            [h.model_dump() if isinstance(h, BaseModel) else h for h in hits]
        )
        self._advance(TriageStatus.KB_SEARCHED)

    def _decide(self, subject: Transaction | None) -> None:
        self.state.final_decision = synthesize_decision(
            self.state.fraud_report,
            self.state.kb_hits,
            self._duplicates,
            subject,
            decision_settings=self._config.decision,
            knowledge_settings=self._config.knowledge,
        )
        self._advance(TriageStatus.DECIDED)

    # --- guardrail choke point ---------------------------------------------

    async def run_agent(self, step: str, fn: Callable[[], Awaitable[T]], fallback: T) -> T:
        """Run one guarded stage call, then trace it and publish ``tool_update``."""
        start = time.perf_counter()
        guard = await guarded_call(fn, self._config.guardrails.stage_timeout_ms, fallback)
        duration_ms = round((time.perf_counter() - start) * 1000)

        result = guard.value
        ok = result is not fallback
        if ok:
            detail: dict[str, Any] = {"output": result}
        else:
            self.fallback_used = True
            detail = {
                "output": fallback,
                "fallback_triggered": True,
                "failure": guard.failure,
                "error": guard.message or "Agent timed out or failed.",
            }

        await self._trace_step(step, detail, ok=ok, duration_ms=duration_ms)
        await self._publish(
            EVENT_TOOL_UPDATE,
            {
                "step": step,
                "ok": ok,
                "duration_ms": duration_ms,
                "detail": redact(detail) if ok else None,
            },
        )
        return result

    # --- helpers --------------------------------------------------------------

    def _validate_fraud_report(self, raw: Any) -> FraudReport | None:
        data = raw.model_dump() if isinstance(raw, BaseModel) else raw
        try:
            return FraudReport.model_validate(data)
        except ValidationError as exc:
            self._log.warning(
                "fraud_report_validation_failed",
                error_count=exc.error_count(),
                error=str(exc),
            )
            return None

    def _advance(self, to: TriageStatus) -> None:
        current = self.state.status
        if (
            current not in _PIPELINE_ORDER
            or to not in _PIPELINE_ORDER
            or _PIPELINE_ORDER.index(to) != _PIPELINE_ORDER.index(current) + 1
        ):
            raise InvalidTransitionError(f"Cannot move triage run from {current} to {to}")
        self.state.status = to

    async def _trace_step(
        self,
        step: str,
        detail: Any,
        ok: bool,
        duration_ms: int = 0,
    ) -> None:
        self._seq += 1
        await self._trace_recorder.append(
            self.run_id, self._seq, step, ok, duration_ms, redact(detail)
        )
        self._log.info(
            "triage_step_completed",
            seq=self._seq,
            step=step,
            ok=ok,
            duration_ms=duration_ms,
        )

    async def _publish(self, event: str, payload: dict) -> None:
        await self._publisher.publish(self.run_id, event, redact(payload))

    async def _finalize(self, error: Exception | None = None) -> None:
        ended_at = datetime.now(UTC)
        report = self.state.fraud_report

        try:
            run = await self._run_store.get_run(self.run_id)
            latency_ms = 0
            if run is not None:
                started_at = run.started_at
                if started_at.tzinfo is None:
                    started_at = started_at.replace(tzinfo=UTC)
                latency_ms = max(round((ended_at - started_at).total_seconds() * 1000), 0)

            await self._run_store.finalize_run(
                self.run_id,
                ended_at=ended_at,
                latency_ms=latency_ms,
                fallback_used=self.fallback_used,
                risk=report.score if report else RiskScore.LOW,
                reasons=redact(report.reasons if report else []),
            )
        finally:
            if error is not None:
                payload: dict[str, Any] = {"error": "Triage run failed", "reason": str(error)}
            else:
                payload = {
                    "decision": self.state.final_decision,
                    "risk": report.score.value if report else None,
                }
            await self._publish(EVENT_DECISION_FINALIZED, payload)

            if error is not None:
                self.state.status = TriageStatus.FAILED
            else:
                self._advance(TriageStatus.FINALIZED)

        self._log.info(
            "triage_run_finalized",
            status=self.state.status.value,
            fallback_used=self.fallback_used,
            risk=report.score.value if report else None,
            action=(
                self.state.final_decision.action.value if self.state.final_decision else None
            ),
        )


async def start_run(
    run_id: str,
    context: TriageContext,
    *,
    trace_recorder: TraceRecorder,
    publisher: EventPublisher,
    knowledge: KnowledgeLookup,
    run_store: RunStore,
    engine: RulesEngine | None = None,
    config: TriageConfig | None = None,
) -> TriageState:
    """Run the triage pipeline for ``run_id`` and return its final state."""
    orchestrator = TriageOrchestrator(
        run_id,
        context,
        trace_recorder=trace_recorder,
        publisher=publisher,
        knowledge=knowledge,
        run_store=run_store,
        engine=engine,
        config=config,
    )
    return await orchestrator.run()
