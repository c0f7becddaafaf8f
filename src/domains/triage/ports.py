"""Collaborator interfaces consumed by the triage orchestrator.

Implementations live in ``src.db.repositories`` (SQL) and
``src.shared.events`` (Redis/Kafka). Tests use in-memory fakes.
"""

from datetime import datetime
from typing import Any, Protocol

from src.domains.fraud.models import RiskScore

from .models import KBHit, TriageContext, TriageRun


class ContextLoader(Protocol):
    async def load_context(self, alert_id: str) -> TriageContext: ...


class TraceRecorder(Protocol):
    async def append(
        self,
        run_id: str,
        seq: int,
        step: str,
        ok: bool,
        duration_ms: int,
        detail: Any,
    ) -> None: ...


class EventPublisher(Protocol):
    async def publish(self, run_id: str, event: str, payload: dict) -> None: ...


class KnowledgeLookup(Protocol):
    async def search(self, query: str) -> list[KBHit]: ...


class RunStore(Protocol):
    async def get_run(self, run_id: str) -> TriageRun | None: ...

    async def finalize_run(
        self,
        run_id: str,
        *,
        ended_at: datetime,
        latency_ms: int,
        fallback_used: bool,
        risk: RiskScore,
        reasons: list[str],
    ) -> None: ...
