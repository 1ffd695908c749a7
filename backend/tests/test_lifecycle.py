"""Plan lifecycle state machine tests."""

import pytest

from freightlink.middleware.exceptions import (
    ConflictError,
    InvalidTransitionError,
    ResourceNotFoundError,
)
from freightlink.models.plan import PlanStatus
from freightlink.models.trip import TripStatus
from freightlink.services.lifecycle import (
    PLAN_TRANSITIONS,
    TRIP_TRANSITIONS,
    allowed_transitions,
    can_transition,
    can_transition_trip,
    is_terminal,
    transition_plan,
)


@pytest.mark.unit
class TestTransitionTables:
    def test_every_status_has_an_entry(self):
        assert set(PLAN_TRANSITIONS) == set(PlanStatus)
        assert set(TRIP_TRANSITIONS) == set(TripStatus)

    @pytest.mark.parametrize("current,target", [
        ("DRAFT", "PROPOSED"),
        ("PROPOSED", "ACCEPTED"),
        ("ACCEPTED", "IN_TRANSIT"),
        ("IN_TRANSIT", "DELIVERED"),
        ("DRAFT", "CANCELLED"),
        ("PROPOSED", "CANCELLED"),
        ("ACCEPTED", "CANCELLED"),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        ("DRAFT", "ACCEPTED"),
        ("DRAFT", "DELIVERED"),
        ("PROPOSED", "IN_TRANSIT"),
        ("IN_TRANSIT", "CANCELLED"),
        ("DELIVERED", "CANCELLED"),
        ("CANCELLED", "DRAFT"),
        ("ACCEPTED", "PROPOSED"),
        ("DRAFT", "DRAFT"),
    ])
    def test_rejected(self, current, target):
        assert not can_transition(current, target)

    def test_terminal_states(self):
        assert is_terminal(PlanStatus.DELIVERED)
        assert is_terminal(PlanStatus.CANCELLED)
        assert not is_terminal(PlanStatus.IN_TRANSIT)
        assert allowed_transitions("CANCELLED") == frozenset()

    def test_trip_transitions(self):
        assert can_transition_trip("PROPOSED", "ACCEPTED")
        assert can_transition_trip("PROPOSED", "CANCELLED")
        assert can_transition_trip("ACCEPTED", "CANCELLED")
        assert not can_transition_trip("CANCELLED", "ACCEPTED")
        assert not can_transition_trip("ACCEPTED", "PROPOSED")


@pytest.mark.unit
@pytest.mark.asyncio
class TestTransitionPlan:
    """Versioned status writes."""

    async def test_transition_bumps_version(self, repo):
        plan = repo.add_plan(status=PlanStatus.DRAFT, version=3)

        updated = await transition_plan(repo, plan.id, PlanStatus.PROPOSED, 3)

        assert updated.status == PlanStatus.PROPOSED
        assert updated.version == 4

    async def test_stale_version_writes_nothing(self, repo):
        plan = repo.add_plan(status=PlanStatus.DRAFT, version=2)

        with pytest.raises(ConflictError) as exc_info:
            await transition_plan(repo, plan.id, "CANCELLED", 1)

        assert exc_info.value.current_version == 2
        assert plan.status == PlanStatus.DRAFT
        assert plan.version == 2

    async def test_invalid_transition_writes_nothing(self, repo):
        plan = repo.add_plan(status=PlanStatus.DRAFT)

        with pytest.raises(InvalidTransitionError):
            await transition_plan(repo, plan.id, PlanStatus.DELIVERED, 1)

        assert plan.status == PlanStatus.DRAFT
        assert plan.version == 1

    async def test_in_transit_cannot_be_cancelled(self, repo):
        plan = repo.add_plan(status=PlanStatus.IN_TRANSIT)
        with pytest.raises(InvalidTransitionError):
            await transition_plan(repo, plan.id, PlanStatus.CANCELLED, 1)

    async def test_extra_fields_written_with_transition(self, repo):
        plan = repo.add_plan(status=PlanStatus.PROPOSED)

        updated = await transition_plan(
            repo, plan.id, PlanStatus.CANCELLED, 1,
            extra={"notes": "customer cancelled", "version": 99},
        )

        assert updated.notes == "customer cancelled"
        assert updated.version == 2

    async def test_missing_plan(self, repo):
        with pytest.raises(ResourceNotFoundError):
            await transition_plan(repo, "nope", PlanStatus.PROPOSED, 1)

    async def test_soft_deleted_plan_is_missing(self, repo):
        plan = repo.add_plan(is_deleted=True)
        with pytest.raises(ResourceNotFoundError):
            await transition_plan(repo, plan.id, PlanStatus.PROPOSED, 1)
