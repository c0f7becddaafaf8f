"""Pydantic models for triage runs."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from src.domains.fraud.models import (
    Alert,
    Case,
    Customer,
    FraudReport,
    RecommendedAction,
    RiskScore,
    Transaction,
)


class TriageStatus(StrEnum):
    CREATED = "created"
    CONTEXT_LOADED = "context_loaded"
    RISK_SCORED = "risk_scored"
    KB_SEARCHED = "kb_searched"
    DECIDED = "decided"
    FINALIZED = "finalized"
    FAILED = "failed"


class KBHit(BaseModel):
    doc_id: str
    title: str
    anchor: str
    extract: str


class TriageContext(BaseModel):
    """Inputs for one run, loaded once at start and never modified."""

    alert: Alert
    customer: Customer
    recent_transactions: list[Transaction] = []
    dispute_history: list[Case] = []


class Decision(BaseModel):
    action: RecommendedAction
    reason: str
    reason_code: str | None = None
    citations: list[KBHit] = []
    related_transactions: list[Transaction] | None = None


class TriageState(BaseModel):
    """Working state for a single run, owned by one orchestrator."""

    context: TriageContext
    status: TriageStatus = TriageStatus.CREATED
    fraud_report: FraudReport | None = None
    kb_hits: list[KBHit] = []
    final_decision: Decision | None = None


class TriageRun(BaseModel):
    id: str
    alert_id: str
    started_at: datetime
    ended_at: datetime | None = None
    risk: RiskScore = RiskScore.MEDIUM
    reasons: list[str] = Field(default_factory=list)
    fallback_used: bool = False
    latency_ms: int | None = None


class TraceEntry(BaseModel):
    run_id: str
    seq: int = Field(ge=1)
    step: str
    ok: bool
    duration_ms: int = Field(ge=0)
    detail: dict | list | str | None = None
