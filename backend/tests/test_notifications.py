"""Notification dispatcher tests."""

import logging
from types import SimpleNamespace

import pytest

from freightlink.models.incident import IncidentType
from freightlink.services.notifications import (
    IncidentEvent,
    LogEventPublisher,
    NotificationDispatcher,
    RedisEventPublisher,
    build_publisher,
    incident_targets,
)

from conftest import FailingPublisher, RecordingPublisher


def _incident():
    return SimpleNamespace(
        id="incident-1",
        type=IncidentType.IMBALANCE,
        plan_id="plan-1",
        description="Unit count mismatch",
    )


def _plan(created_by="freighter-1"):
    return SimpleNamespace(id="plan-1", created_by=created_by)


@pytest.mark.unit
class TestIncidentEvent:
    def test_from_incident(self):
        event = IncidentEvent.from_incident(_incident())
        payload = event.to_dict()

        assert payload["type"] == "IMBALANCE"
        assert payload["plan_id"] == "plan-1"
        assert payload["incident_id"] == "incident-1"
        assert payload["timestamp"]
        assert payload["id"].startswith("incident-")

    def test_targets_are_the_plan_owner(self):
        assert incident_targets(_plan()) == ["freighter-1"]
        assert incident_targets(_plan(created_by=None)) == []
        assert incident_targets(None) == []

    def test_build_publisher(self):
        assert isinstance(
            build_publisher(SimpleNamespace(publisher_backend="log")), LogEventPublisher,
        )
        redis_publisher = build_publisher(SimpleNamespace(
            publisher_backend="redis",
            redis_url="redis://localhost:6379/0",
            event_channel="freightlink:incidents",
        ))
        assert isinstance(redis_publisher, RedisEventPublisher)
        assert redis_publisher.channel == "freightlink:incidents"
        with pytest.raises(ValueError):
            build_publisher(SimpleNamespace(publisher_backend="carrier-pigeon"))


@pytest.mark.unit
@pytest.mark.asyncio
class TestNotificationDispatcher:
    """Fire-and-forget delivery."""

    async def test_notify_incident_publishes_to_owner(self):
        publisher = RecordingPublisher()
        notifier = NotificationDispatcher(publisher)

        notifier.notify_incident(_incident(), _plan())
        await notifier.drain()

        assert len(publisher.events) == 1
        event, targets = publisher.events[0]
        assert event.type == "IMBALANCE"
        assert targets == ["freighter-1"]

    async def test_no_targets_skips_publish(self):
        publisher = RecordingPublisher()
        notifier = NotificationDispatcher(publisher)

        notifier.dispatch(IncidentEvent.from_incident(_incident()), [])
        await notifier.drain()

        assert publisher.events == []

    async def test_publish_failure_is_logged_and_swallowed(self, caplog):
        notifier = NotificationDispatcher(FailingPublisher())

        with caplog.at_level(logging.WARNING, logger="freightlink.services.notifications"):
            notifier.notify_incident(_incident(), _plan())
            await notifier.drain()

        assert "Failed to publish IMBALANCE event for plan plan-1" in caplog.text

    async def test_close_drains_and_closes_publisher(self):
        publisher = RecordingPublisher()
        notifier = NotificationDispatcher(publisher)

        notifier.notify_incident(_incident(), _plan())
        await notifier.close()

        assert len(publisher.events) == 1
        assert publisher.closed

    async def test_log_publisher(self, caplog):
        with caplog.at_level(logging.INFO, logger="freightlink.services.notifications"):
            await LogEventPublisher().publish(IncidentEvent.from_incident(_incident()), ["u-1"])
        assert "plan-1" in caplog.text
