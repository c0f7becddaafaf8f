"""Process-wide triage collaborators, built once in the app lifespan."""

from dataclasses import dataclass

from fastapi import Request
from redis import asyncio as aioredis

from src.api.run_registry import PendingRunRegistry
from src.config import settings
from src.db.repositories import (
    SqlContextLoader,
    SqlKnowledgeLookup,
    SqlRunStore,
    SqlTraceRecorder,
)
from src.domains.fraud.config import FraudConfig
from src.domains.fraud.rules_engine import RulesEngine
from src.domains.triage.config import TriageConfig
from src.domains.triage.ports import EventPublisher


@dataclass
class TriageServices:
    redis: aioredis.Redis
    publisher: EventPublisher
    context_loader: SqlContextLoader
    run_store: SqlRunStore
    trace_recorder: SqlTraceRecorder
    knowledge: SqlKnowledgeLookup
    engine: RulesEngine
    config: TriageConfig
    registry: PendingRunRegistry


def build_services(session_factory, redis_client: aioredis.Redis, publisher: EventPublisher) -> TriageServices:
    triage_config = TriageConfig.from_env()
    triage_config.guardrails.stage_timeout_ms = settings.triage_stage_timeout_ms
    return TriageServices(
        redis=redis_client,
        publisher=publisher,
        context_loader=SqlContextLoader(
            session_factory,
            window_days=settings.recent_window_days,
            window_limit=settings.recent_window_limit,
        ),
        run_store=SqlRunStore(session_factory),
        trace_recorder=SqlTraceRecorder(session_factory),
        knowledge=SqlKnowledgeLookup(session_factory),
        engine=RulesEngine(config=FraudConfig.from_env()),
        config=triage_config,
        registry=PendingRunRegistry(
            created_ttl_seconds=settings.pending_run_ttl_seconds,
            started_grace_seconds=settings.started_run_grace_seconds,
        ),
    )


def get_services(request: Request) -> TriageServices:
    return request.app.state.triage
