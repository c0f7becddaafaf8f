"""Triage API: create a run, then stream its events over SSE.

The run does not start on ``POST``. It starts when the first stream client has
subscribed to the run's channel, so no event is published before someone is
listening.
"""

import asyncio
import json
from collections.abc import AsyncIterator

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from src.api.services import TriageServices, get_services
from src.domains.triage.models import TriageContext
from src.domains.triage.orchestrator import EVENT_DECISION_FINALIZED, start_run
from src.shared.events import channel_for, format_sse

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/triage", tags=["triage"])

EVENT_PLAN_BUILT = "plan_built"
_POLL_TIMEOUT_SECONDS = 1.0

# Strong references so background runs are not garbage-collected mid-flight
_background_runs: set[asyncio.Task] = set()


class TriageRequest(BaseModel):
    alert_id: str = Field(min_length=1)


class TriageCreated(BaseModel):
    run_id: str
    alert_id: str


@router.post("", status_code=202, response_model=TriageCreated)
async def create_triage(
    body: TriageRequest,
    services: TriageServices = Depends(get_services),
) -> TriageCreated:
    context = await services.context_loader.load_context(body.alert_id)
    run = await services.run_store.create_run(body.alert_id)
    services.registry.register(run.id, context)

    return TriageCreated(run_id=run.id, alert_id=body.alert_id)


@router.get("/{run_id}/stream")
async def stream_triage(
    run_id: str,
    request: Request,
    services: TriageServices = Depends(get_services),
) -> StreamingResponse:
    pubsub = services.redis.pubsub()
    await pubsub.subscribe(channel_for(run_id))

    context = services.registry.claim(run_id)
    if context is not None:
        _launch_run(run_id, context, services)
    else:
        phase = services.registry.phase(run_id)
        logger.info(
            "triage_stream_reattached",
            run_id=run_id,
            phase=phase.value if phase else "unknown",
        )

    return StreamingResponse(
        _relay_events(run_id, pubsub, request),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


def _launch_run(run_id: str, context: TriageContext, services: TriageServices) -> None:
    async def _run() -> None:
        try:
            await start_run(
                run_id,
                context,
                trace_recorder=services.trace_recorder,
                publisher=services.publisher,
                knowledge=services.knowledge,
                run_store=services.run_store,
                engine=services.engine,
                config=services.config,
            )
        except Exception:
            # Already finalized and published as decision_finalized
            logger.exception("triage_background_run_failed", run_id=run_id)

    task = asyncio.create_task(_run())
    _background_runs.add(task)
    task.add_done_callback(_background_runs.discard)


async def _relay_events(run_id: str, pubsub, request: Request) -> AsyncIterator[str]:
    """Forward channel messages as SSE frames until the run is finalized."""
    channel = channel_for(run_id)
    try:
        yield format_sse(EVENT_PLAN_BUILT, {"message": "Triage plan initiated."})

        while True:
            if await request.is_disconnected():
                logger.info("triage_stream_client_disconnected", run_id=run_id)
                break

            message = await pubsub.get_message(
                ignore_subscribe_messages=True, timeout=_POLL_TIMEOUT_SECONDS
            )
            if message is None:
                continue

            try:
                envelope = json.loads(message["data"])
            except (TypeError, json.JSONDecodeError):
                logger.warning("triage_stream_bad_message", run_id=run_id)
                continue

            yield format_sse(envelope["event"], envelope["data"])
            if envelope["event"] == EVENT_DECISION_FINALIZED:
                break
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
        logger.info("triage_stream_closed", run_id=run_id)
