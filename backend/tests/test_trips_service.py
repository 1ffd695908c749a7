"""Trip acceptance and refusal service tests."""

import pytest

from freightlink.middleware.exceptions import (
    InvalidTransitionError,
    PermissionDeniedError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from freightlink.models.incident import IncidentType
from freightlink.models.plan import PlanStatus
from freightlink.models.trip import TripStatus
from freightlink.services.notifications import NotificationDispatcher
from freightlink.services.plans import propose_plan
from freightlink.services.trips import accept_trip, refuse_trip

from conftest import FREIGHTER_ID, FailingPublisher


@pytest.fixture
def proposed(repo):
    plan = repo.add_plan(status=PlanStatus.PROPOSED, version=2)
    trip = repo.add_trip(plan.id, "carrier-cheap", total_cost=4000)
    return plan, trip


@pytest.mark.unit
@pytest.mark.asyncio
class TestAcceptTrip:
    async def test_owner_accepts(self, repo, proposed):
        _, trip = proposed

        updated = await accept_trip(repo, trip.id, "carrier-cheap")

        assert updated.status == TripStatus.ACCEPTED
        assert updated.accepted_at is not None
        assert updated.version == 2

    async def test_accept_is_idempotent(self, repo, proposed):
        _, trip = proposed
        await accept_trip(repo, trip.id, "carrier-cheap")

        again = await accept_trip(repo, trip.id, "carrier-cheap")

        assert again.status == TripStatus.ACCEPTED
        assert again.version == 2

    async def test_other_carrier_forbidden(self, repo, proposed):
        _, trip = proposed
        with pytest.raises(PermissionDeniedError):
            await accept_trip(repo, trip.id, "carrier-mid")
        assert trip.status == TripStatus.PROPOSED

    async def test_cancelled_trip_cannot_be_accepted(self, repo, proposed):
        _, trip = proposed
        trip.status = TripStatus.CANCELLED
        with pytest.raises(InvalidTransitionError):
            await accept_trip(repo, trip.id, "carrier-cheap")

    async def test_missing_trip(self, repo):
        with pytest.raises(ResourceNotFoundError):
            await accept_trip(repo, "nope", "carrier-cheap")


@pytest.mark.unit
@pytest.mark.asyncio
class TestRefuseTrip:
    """Trip cancellation and REFUSAL incident commit together."""

    async def test_refusal_cancels_trip_and_opens_incident(
        self, repo, notifier, publisher, proposed,
    ):
        plan, trip = proposed

        result = await refuse_trip(repo, notifier, trip.id, "carrier-cheap", "No driver")
        repo.commit()
        await notifier.drain()

        assert result.trip.status == TripStatus.CANCELLED
        assert result.trip.refusal_reason == "No driver"
        assert result.trip.refused_at is not None
        assert result.incident.type == IncidentType.REFUSAL
        assert result.incident.severity == "critical"
        assert result.incident.carrier_id == "carrier-cheap"
        assert [p.carrier_id for p in result.alternatives] == ["carrier-mid", "carrier-fast"]

        event, targets = publisher.events[0]
        assert event.type == "REFUSAL"
        assert targets == [FREIGHTER_ID]

    async def test_retry_returns_existing_refusal(self, repo, notifier, publisher, proposed):
        _, trip = proposed
        first = await refuse_trip(repo, notifier, trip.id, "carrier-cheap", "No driver")

        second = await refuse_trip(repo, notifier, trip.id, "carrier-cheap", "No driver")
        repo.commit()
        await notifier.drain()

        assert second.incident.id == first.incident.id
        assert second.trip.version == first.trip.version
        assert len(repo.incidents) == 1
        assert len(publisher.events) == 1

    async def test_incident_failure_rolls_back_trip(self, repo, notifier, proposed):
        _, trip = proposed
        repo.fail_next_incident = RuntimeError("database went away")

        with pytest.raises(RuntimeError):
            await refuse_trip(repo, notifier, trip.id, "carrier-cheap", "No driver")

        assert trip.status == TripStatus.PROPOSED
        assert trip.refused_at is None
        assert trip.version == 1
        assert repo.incidents == {}

    async def test_publish_failure_does_not_undo_refusal(self, repo, proposed):
        notifier = NotificationDispatcher(FailingPublisher())
        _, trip = proposed

        result = await refuse_trip(repo, notifier, trip.id, "carrier-cheap")
        repo.commit()
        await notifier.drain()

        assert result.trip.status == TripStatus.CANCELLED
        assert result.incident.description == "Carrier refused trip"

    async def test_reason_too_long(self, repo, notifier, proposed):
        _, trip = proposed
        with pytest.raises(ValidationFailedError):
            await refuse_trip(repo, notifier, trip.id, "carrier-cheap", "x" * 501)
        assert trip.status == TripStatus.PROPOSED

    async def test_other_carrier_forbidden(self, repo, notifier, proposed):
        _, trip = proposed
        with pytest.raises(PermissionDeniedError):
            await refuse_trip(repo, notifier, trip.id, "carrier-mid", "nope")

    async def test_notification_waits_for_commit(self, repo, notifier, publisher, proposed):
        _, trip = proposed

        await refuse_trip(repo, notifier, trip.id, "carrier-cheap", "No driver")
        await notifier.drain()
        assert publisher.events == []

        repo.commit()
        await notifier.drain()
        assert len(publisher.events) == 1

    async def test_rolled_back_refusal_is_never_notified(
        self, repo, notifier, publisher, proposed,
    ):
        _, trip = proposed

        await refuse_trip(repo, notifier, trip.id, "carrier-cheap", "No driver")
        repo.rollback()
        repo.commit()
        await notifier.drain()

        assert publisher.events == []


@pytest.mark.unit
@pytest.mark.asyncio
class TestReproposeAfterRefusal:
    """A refused plan goes back to a carrier through propose_plan."""

    async def test_refused_plan_can_be_offered_to_an_alternative(self, repo, notifier, proposed):
        plan, trip = proposed
        refusal = await refuse_trip(repo, notifier, trip.id, "carrier-cheap", "No driver")

        result = await propose_plan(
            repo, plan.id, plan.version, carrier_id=refusal.alternatives[0].carrier_id,
        )

        assert result.plan.status == PlanStatus.PROPOSED
        assert result.plan.version == 3
        assert result.trip.carrier_id == "carrier-mid"
        assert result.trip.status == TripStatus.PROPOSED
        statuses = sorted(t.status.value for t in await repo.list_trips(plan.id))
        assert statuses == ["CANCELLED", "PROPOSED"]

    async def test_plan_with_live_offer_cannot_be_reproposed(self, repo, proposed):
        plan, _ = proposed
        with pytest.raises(InvalidTransitionError):
            await propose_plan(repo, plan.id, plan.version, carrier_id="carrier-mid")
        assert len(repo.trips) == 1
