"""Abstract base class for deterministic fraud scoring rules."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..config import FraudConfig
from ..models import Case, Customer, RuleResult, Transaction


@dataclass(frozen=True)
class ScoringInput:
    """Everything a rule may look at. Rules never mutate it."""

    transactions: list[Transaction]
    subject: Transaction
    customer: Customer
    dispute_history: list[Case] = field(default_factory=list)

    @property
    def now(self) -> datetime:
        return self.subject.ts

    def in_window(self, window: timedelta) -> list[Transaction]:
        """Window transactions with ``now - window <= ts <= now``."""
        start = self.now - window
        return [t for t in self.transactions if start <= t.ts <= self.now]


class FraudRule(ABC):
    """Base class for all fraud rules.

    Rules are pure: they read a ScoringInput and config and return a
    RuleResult carrying the integer points to add to the tally and the
    human-readable reason.
    """

    rule_id: str
    category: str  # "amount" | "velocity" | "geo" | "patterns"

    @abstractmethod
    def evaluate(self, ctx: ScoringInput, config: FraudConfig) -> RuleResult:
        """Evaluate this rule and return a RuleResult."""
        ...

    def _not_triggered(self) -> RuleResult:
        """Convenience: return a non-triggered result for this rule."""
        return RuleResult(
            rule_name=self.rule_id,
            triggered=False,
            category=self.category,
        )

    def _triggered(
        self,
        points: int,
        reason: str,
        evidence: dict | None = None,
    ) -> RuleResult:
        """Convenience: return a triggered result for this rule."""
        return RuleResult(
            rule_name=self.rule_id,
            triggered=True,
            points=points,
            reason=reason,
            evidence=evidence or {},
            category=self.category,
        )
