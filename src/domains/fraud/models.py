"""Pydantic models for the fraud domain."""

from datetime import datetime
from enum import StrEnum

from pydantic import AwareDatetime, BaseModel, Field


class RiskScore(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RecommendedAction(StrEnum):
    FREEZE_CARD = "FREEZE_CARD"
    OPEN_DISPUTE = "OPEN_DISPUTE"
    NONE = "NONE"


class Transaction(BaseModel):
    id: str
    customer_id: str
    card_id: str
    mcc: str
    merchant: str
    amount_cents: int
    currency: str = "INR"
    ts: AwareDatetime
    device_id: str | None = None
    country: str
    city: str | None = None
    metadata: dict | None = None

    @property
    def simulates_risk_timeout(self) -> bool:
        return bool(self.metadata) and self.metadata.get("simulate_risk_timeout") is True


class Customer(BaseModel):
    id: str
    name: str
    email_masked: str = ""
    kyc_level: str = "LVL_1"


class Case(BaseModel):
    """A prior case (dispute, chargeback, ...) opened for the customer."""

    id: str
    customer_id: str
    type: str
    status: str = "OPEN"
    reason_code: str | None = None
    created_at: AwareDatetime
    txn_id: str | None = None


class Alert(BaseModel):
    id: str
    customer_id: str
    suspect_txn_id: str | None = None
    suspect_txn: Transaction | None = None
    risk: str = "MEDIUM"
    status: str = "NEW"
    created_at: datetime | None = None


class RuleResult(BaseModel):
    rule_name: str
    triggered: bool
    points: int = 0
    reason: str = ""
    category: str = ""
    evidence: dict = Field(default_factory=dict)


class FraudReport(BaseModel):
    score: RiskScore
    reasons: list[str]
    recommended_action: RecommendedAction | None = None
    # Card-network dispute reason code, e.g. "10.4"
    reason_code: str | None = None
    fallback_used: bool | None = None
