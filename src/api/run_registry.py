"""Handoff table between ``POST /triage`` and the SSE stream that starts the run.

A run is registered as CREATED when the caller asks for it, and only begins
once a subscriber is listening: the first stream connection claims it and
moves it to STARTED. Later connections (reconnects) find it STARTED and only
re-subscribe. Entries expire on their own: unclaimed runs after a TTL, started
runs after a short grace period.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

import structlog

from src.domains.triage.models import TriageContext

logger = structlog.get_logger()


class RunPhase(StrEnum):
    CREATED = "created"
    STARTED = "started"


@dataclass
class PendingRun:
    run_id: str
    context: TriageContext
    phase: RunPhase
    expires_at: float


class PendingRunRegistry:
    def __init__(
        self,
        created_ttl_seconds: float = 300.0,
        started_grace_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._created_ttl = created_ttl_seconds
        self._started_grace = started_grace_seconds
        self._clock = clock
        self._entries: dict[str, PendingRun] = {}

    def __len__(self) -> int:
        self.purge()
        return len(self._entries)

    def register(self, run_id: str, context: TriageContext) -> None:
        self.purge()
        self._entries[run_id] = PendingRun(
            run_id=run_id,
            context=context,
            phase=RunPhase.CREATED,
            expires_at=self._clock() + self._created_ttl,
        )
        logger.info("triage_run_registered", run_id=run_id)

    def claim(self, run_id: str) -> TriageContext | None:
        """Move a CREATED run to STARTED and hand back its context, once."""
        self.purge()
        entry = self._entries.get(run_id)
        if entry is None:
            logger.info("triage_run_claim_missed", run_id=run_id)
            return None
        if entry.phase is RunPhase.STARTED:
            logger.info("triage_run_already_started", run_id=run_id)
            return None

        entry.phase = RunPhase.STARTED
        entry.expires_at = self._clock() + self._started_grace
        logger.info("triage_run_claimed", run_id=run_id)
        return entry.context

    def phase(self, run_id: str) -> RunPhase | None:
        self.purge()
        entry = self._entries.get(run_id)
        return entry.phase if entry else None

    def purge(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self._clock()
        expired = [run_id for run_id, e in self._entries.items() if e.expires_at <= now]
        for run_id in expired:
            entry = self._entries.pop(run_id)
            if entry.phase is RunPhase.CREATED:
                logger.warning("triage_run_expired_unclaimed", run_id=run_id)
        return len(expired)
