"""Incident notifications — best-effort fan-out to the plan's stakeholders.

The dispatcher is constructed once in the FastAPI lifespan and injected
into request handlers (``app.state.notifier``); there is no module-level
client.  ``dispatch`` never blocks and never raises: delivery runs as a
background task and publish failures are logged and dropped.

Publishers:
    RedisEventPublisher  JSON message on ``settings.event_channel``
    LogEventPublisher    writes the event to the log (local dev, tests)
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from typing import Protocol

import redis.asyncio as redis

from freightlink.utils.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IncidentEvent:
    type: str
    plan_id: str
    description: str
    timestamp: str = field(default_factory=lambda: utcnow().isoformat())
    incident_id: str | None = None
    id: str = field(default_factory=lambda: f"incident-{uuid.uuid4().hex[:12]}")

    @classmethod
    def from_incident(cls, incident) -> IncidentEvent:
        incident_type = getattr(incident.type, "value", incident.type)
        return cls(
            type=incident_type,
            plan_id=incident.plan_id,
            description=incident.description,
            incident_id=incident.id,
        )

    def to_dict(self) -> dict:
        return asdict(self)


class EventPublisher(Protocol):
    async def publish(self, event: IncidentEvent, target_user_ids: list[str]) -> None: ...

    async def close(self) -> None: ...


class RedisEventPublisher:
    """Publish events as JSON on a Redis pub/sub channel."""

    def __init__(self, redis_url: str, channel: str):
        self.channel = channel
        self._client = redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
        )

    async def publish(self, event: IncidentEvent, target_user_ids: list[str]) -> None:
        payload = {"event": event.to_dict(), "targets": list(target_user_ids)}
        receivers = await self._client.publish(self.channel, json.dumps(payload))
        logger.debug(f"Published {event.type} for plan {event.plan_id} to {receivers} subscriber(s)")

    async def close(self) -> None:
        await self._client.aclose()


class LogEventPublisher:
    async def publish(self, event: IncidentEvent, target_user_ids: list[str]) -> None:
        logger.info(
            "Incident event %s for plan %s -> %s: %s",
            event.type, event.plan_id, target_user_ids, event.description,
        )

    async def close(self) -> None:
        return None


def build_publisher(settings) -> EventPublisher:
    if settings.publisher_backend == "redis":
        return RedisEventPublisher(settings.redis_url, settings.event_channel)
    if settings.publisher_backend == "log":
        return LogEventPublisher()
    raise ValueError(f"Unknown publisher_backend: {settings.publisher_backend!r}")


class NotificationDispatcher:
    """Fire-and-forget wrapper around an EventPublisher with an explicit lifecycle."""

    def __init__(self, publisher: EventPublisher):
        self.publisher = publisher
        self._pending: set[asyncio.Task] = set()

    def dispatch(self, event: IncidentEvent, target_user_ids: list[str]) -> None:
        if not target_user_ids:
            logger.debug(f"No targets for {event.type} on plan {event.plan_id}; skipping")
            return
        task = asyncio.create_task(self._deliver(event, list(target_user_ids)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def notify_incident(self, incident, plan) -> None:
        """Tell the freighter who owns ``plan`` about ``incident``."""
        self.dispatch(IncidentEvent.from_incident(incident), incident_targets(plan))

    async def _deliver(self, event: IncidentEvent, targets: list[str]) -> None:
        try:
            await self.publisher.publish(event, targets)
        except Exception:
            logger.warning(
                "Failed to publish %s event for plan %s",
                event.type, event.plan_id,
                exc_info=True,
            )

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await self.publisher.close()


def incident_targets(plan) -> list[str]:
    # The freighter who created the plan is always notified
    return [plan.created_by] if plan is not None and plan.created_by else []
