"""Triage event fan-out to stream subscribers (Redis pub/sub or Kafka)."""

import json

import jsonschema
import structlog
from aiokafka import AIOKafkaProducer
from redis import asyncio as aioredis

from src.config import settings
from src.shared.redaction import redact
from src.shared.schemas import validate_event

logger = structlog.get_logger()


def channel_for(run_id: str) -> str:
    """Pub/sub channel carrying one run's events."""
    return f"triage:{run_id}"


def encode_message(event: str, payload: dict) -> str:
    return json.dumps({"event": event, "data": payload}, default=str)


def format_sse(event: str, data: dict) -> str:
    """Render one Server-Sent Events frame."""
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


def _prepare(event: str, payload: dict) -> dict:
    safe = redact(payload)
    try:
        validate_event(event, safe)
    except (ValueError, jsonschema.ValidationError) as exc:
        logger.error("event_contract_violation", event_name=event, error=str(exc))
    return safe


class RedisEventPublisher:
    """Publishes each event on the run's Redis channel as ``{"event", "data"}`` JSON."""

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    async def publish(self, run_id: str, event: str, payload: dict) -> None:
        channel = channel_for(run_id)
        message = encode_message(event, _prepare(event, payload))
        try:
            await self._client.publish(channel, message)
            logger.debug("event_published", channel=channel, event_name=event)
        except Exception:
            logger.exception("event_publish_failed", channel=channel, event_name=event)


class KafkaEventPublisher:
    """Publishes events to one Kafka topic keyed by run id, preserving per-run order."""

    def __init__(self, producer: AIOKafkaProducer, topic: str) -> None:
        self._producer = producer
        self._topic = topic

    async def publish(self, run_id: str, event: str, payload: dict) -> None:
        message = {"run_id": run_id, "event": event, "data": _prepare(event, payload)}
        try:
            await self._producer.send_and_wait(
                self._topic,
                value=json.dumps(message, default=str).encode("utf-8"),
                key=run_id.encode("utf-8"),
            )
            logger.debug("event_published", topic=self._topic, event_name=event)
        except Exception:
            logger.exception("event_publish_failed", topic=self._topic, event_name=event)

    async def stop(self) -> None:
        await self._producer.stop()


async def create_producer(bootstrap_servers: str) -> AIOKafkaProducer:
    """Create and start a Kafka producer."""
    producer = AIOKafkaProducer(bootstrap_servers=bootstrap_servers)
    await producer.start()
    logger.info("kafka_producer_started", bootstrap_servers=bootstrap_servers)
    return producer


def create_redis_client() -> aioredis.Redis:
    return aioredis.from_url(settings.redis_url, decode_responses=True)


class FanOutEventPublisher:
    """Sends every event to each wrapped publisher, in order."""

    def __init__(self, publishers: list) -> None:
        self._publishers = list(publishers)

    async def publish(self, run_id: str, event: str, payload: dict) -> None:
        for publisher in self._publishers:
            await publisher.publish(run_id, event, payload)

    async def stop(self) -> None:
        for publisher in self._publishers:
            if hasattr(publisher, "stop"):
                await publisher.stop()


async def create_event_publisher(
    redis_client: aioredis.Redis,
) -> RedisEventPublisher | FanOutEventPublisher:
    """Redis publisher, mirrored to Kafka when ``kafka_events_enabled`` is set."""
    redis_publisher = RedisEventPublisher(redis_client)
    if not settings.kafka_events_enabled:
        return redis_publisher

    producer = await create_producer(settings.kafka_bootstrap_servers)
    return FanOutEventPublisher(
        [redis_publisher, KafkaEventPublisher(producer, settings.triage_events_topic)]
    )
