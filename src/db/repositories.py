"""SQL implementations of the triage collaborator interfaces.

Each repository takes an ``async_sessionmaker`` and opens a short-lived
session per call, so one instance can be shared by concurrent runs.
"""

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domains.fraud.models import Alert, Case, Customer, RiskScore, Transaction
from src.domains.triage.errors import ContextNotFoundError
from src.domains.triage.models import KBHit, TraceEntry, TriageContext, TriageRun

from .models import (
    AgentTraceDB,
    AlertDB,
    CaseDB,
    CustomerDB,
    KbDocDB,
    TransactionDB,
    TriageRunDB,
)

logger = structlog.get_logger()

KB_RESULT_LIMIT = 3
KB_EXTRACT_CHARS = 150


def _to_transaction(row: TransactionDB) -> Transaction:
    return Transaction(
        id=row.id,
        customer_id=row.customer_id,
        card_id=row.card_id,
        mcc=row.mcc,
        merchant=row.merchant,
        amount_cents=row.amount_cents,
        currency=row.currency,
        ts=row.ts,
        device_id=row.device_id,
        country=row.country,
        city=row.city,
        metadata=row.metadata_json,
    )


def _to_run(row: TriageRunDB) -> TriageRun:
    return TriageRun(
        id=row.id,
        alert_id=row.alert_id,
        started_at=row.started_at,
        ended_at=row.ended_at,
        risk=RiskScore(row.risk),
        reasons=row.reasons if isinstance(row.reasons, list) else [],
        fallback_used=row.fallback_used,
        latency_ms=row.latency_ms,
    )


class SqlContextLoader:
    """Loads alert, customer, recent transactions and case history for a run."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        window_days: int = 30,
        window_limit: int = 100,
    ) -> None:
        self._session_factory = session_factory
        self._window_days = window_days
        self._window_limit = window_limit

    async def load_context(self, alert_id: str) -> TriageContext:
        async with self._session_factory() as session:
            alert_row = await session.get(AlertDB, alert_id)
            if alert_row is None:
                raise ContextNotFoundError(f"Alert not found: {alert_id}")

            customer_row = await session.get(CustomerDB, alert_row.customer_id)
            if customer_row is None:
                raise ContextNotFoundError(f"Customer not found: {alert_row.customer_id}")

            suspect = None
            if alert_row.suspect_txn_id:
                suspect_row = await session.get(TransactionDB, alert_row.suspect_txn_id)
                suspect = _to_transaction(suspect_row) if suspect_row else None

            cutoff = datetime.now(UTC) - timedelta(days=self._window_days)
            txn_result = await session.execute(
                select(TransactionDB)
                .where(TransactionDB.customer_id == customer_row.id, TransactionDB.ts >= cutoff)
                .order_by(TransactionDB.ts.desc())
                .limit(self._window_limit)
            )
            recent = [_to_transaction(r) for r in txn_result.scalars().all()]

            case_result = await session.execute(
                select(CaseDB)
                .where(CaseDB.customer_id == customer_row.id)
                .order_by(CaseDB.created_at.desc())
            )
            cases = [
                Case(
                    id=c.id,
                    customer_id=c.customer_id,
                    type=c.type,
                    status=c.status,
                    reason_code=c.reason_code,
                    created_at=c.created_at,
                    txn_id=c.txn_id,
                )
                for c in case_result.scalars().all()
            ]

        logger.info(
            "triage_context_loaded",
            alert_id=alert_id,
            customer_id=customer_row.id,
            recent_count=len(recent),
            case_count=len(cases),
        )
        return TriageContext(
            alert=Alert(
                id=alert_row.id,
                customer_id=alert_row.customer_id,
                suspect_txn_id=alert_row.suspect_txn_id,
                suspect_txn=suspect,
                risk=alert_row.risk,
                status=alert_row.status,
                created_at=alert_row.created_at,
            ),
            customer=Customer(
                id=customer_row.id,
                name=customer_row.name,
                email_masked=customer_row.email_masked,
                kyc_level=customer_row.kyc_level,
            ),
            recent_transactions=recent,
            dispute_history=cases,
        )


class SqlTraceRecorder:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(
        self,
        run_id: str,
        seq: int,
        step: str,
        ok: bool,
        duration_ms: int,
        detail: Any,
    ) -> None:
        entry = TraceEntry(
            run_id=run_id, seq=seq, step=step, ok=ok, duration_ms=duration_ms, detail=detail
        )
        async with self._session_factory() as session:
            session.add(
                AgentTraceDB(
                    run_id=entry.run_id,
                    seq=entry.seq,
                    step=entry.step,
                    ok=entry.ok,
                    duration_ms=entry.duration_ms,
                    detail_json=entry.detail,
                )
            )
            await session.commit()


class SqlRunStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_run(self, alert_id: str, run_id: str | None = None) -> TriageRun:
        row = TriageRunDB(
            id=run_id or str(uuid.uuid4()),
            alert_id=alert_id,
            started_at=datetime.now(UTC),
            risk=RiskScore.MEDIUM.value,
            fallback_used=False,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
        logger.info("triage_run_created", run_id=row.id, alert_id=alert_id)
        return _to_run(row)

    async def get_run(self, run_id: str) -> TriageRun | None:
        async with self._session_factory() as session:
            row = await session.get(TriageRunDB, run_id)
            return _to_run(row) if row else None

    async def finalize_run(
        self,
        run_id: str,
        *,
        ended_at: datetime,
        latency_ms: int,
        fallback_used: bool,
        risk: RiskScore,
        reasons: list[str],
    ) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(TriageRunDB)
                .where(TriageRunDB.id == run_id)
                .values(
                    ended_at=ended_at,
                    latency_ms=latency_ms,
                    fallback_used=fallback_used,
                    risk=RiskScore(risk).value,
                    reasons=list(reasons),
                )
            )
            await session.commit()


class SqlKnowledgeLookup:
    """Case-insensitive substring search over KB document titles and bodies."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def search(self, query: str) -> list[KBHit]:
        pattern = f"%{query}%"
        async with self._session_factory() as session:
            result = await session.execute(
                select(KbDocDB)
                .where(or_(KbDocDB.title.ilike(pattern), KbDocDB.content_text.ilike(pattern)))
                .limit(KB_RESULT_LIMIT)
            )
            docs = result.scalars().all()

        return [
            KBHit(
                doc_id=doc.id,
                title=doc.title,
                anchor=doc.anchor,
                extract=doc.content_text[:KB_EXTRACT_CHARS] + "...",
            )
            for doc in docs
        ]
