"""Plan lifecycle state machine — the only writer of ``TransportPlan.status``.

    DRAFT ──► PROPOSED ──► ACCEPTED ──► IN_TRANSIT ──► DELIVERED
      │           │            │
      └───────────┴────────────┴──────► CANCELLED

DELIVERED and CANCELLED are terminal.  Every transition is conditioned
on the version the caller read; a mismatch raises ConflictError and
writes nothing.
"""

import logging
from typing import Any

from freightlink.middleware.exceptions import (
    ConflictError,
    InvalidTransitionError,
    ResourceNotFoundError,
)
from freightlink.models.plan import PlanStatus, TransportPlan
from freightlink.models.trip import TripStatus

logger = logging.getLogger(__name__)

PLAN_TRANSITIONS: dict[PlanStatus, frozenset[PlanStatus]] = {
    PlanStatus.DRAFT: frozenset({PlanStatus.PROPOSED, PlanStatus.CANCELLED}),
    PlanStatus.PROPOSED: frozenset({PlanStatus.ACCEPTED, PlanStatus.CANCELLED}),
    PlanStatus.ACCEPTED: frozenset({PlanStatus.IN_TRANSIT, PlanStatus.CANCELLED}),
    PlanStatus.IN_TRANSIT: frozenset({PlanStatus.DELIVERED}),
    PlanStatus.DELIVERED: frozenset(),
    PlanStatus.CANCELLED: frozenset(),
}

TRIP_TRANSITIONS: dict[TripStatus, frozenset[TripStatus]] = {
    TripStatus.PROPOSED: frozenset({TripStatus.ACCEPTED, TripStatus.CANCELLED}),
    TripStatus.ACCEPTED: frozenset({TripStatus.CANCELLED}),
    TripStatus.CANCELLED: frozenset(),
}

for _enum, _table in ((PlanStatus, PLAN_TRANSITIONS), (TripStatus, TRIP_TRANSITIONS)):
    _missing = set(_enum) - set(_table)
    if _missing:
        raise RuntimeError(f"No transitions declared for {sorted(_missing)}")


def allowed_transitions(status: PlanStatus | str) -> frozenset[PlanStatus]:
    return PLAN_TRANSITIONS[PlanStatus(status)]


def is_terminal(status: PlanStatus | str) -> bool:
    return not PLAN_TRANSITIONS[PlanStatus(status)]


def can_transition(current: PlanStatus | str, target: PlanStatus | str) -> bool:
    return PlanStatus(target) in PLAN_TRANSITIONS[PlanStatus(current)]


def can_transition_trip(current: TripStatus | str, target: TripStatus | str) -> bool:
    return TripStatus(target) in TRIP_TRANSITIONS[TripStatus(current)]


async def transition_plan(
    repo,
    plan_id: str,
    target: PlanStatus | str,
    expected_version: int,
    extra: dict[str, Any] | None = None,
) -> TransportPlan:
    """Move a plan to ``target`` and commit the new version.

    ``extra`` lets the caller persist fields that belong to the same
    transition (never ``status`` or ``version``).

    Raises:
        ResourceNotFoundError   plan absent or soft-deleted
        ConflictError           expected_version is stale
        InvalidTransitionError  target is not reachable from the current status
    """
    target = PlanStatus(target)
    plan = await repo.get_plan(plan_id)
    if plan is None:
        raise ResourceNotFoundError("Plan", plan_id)

    if plan.version != expected_version:
        raise ConflictError(
            expected_version=expected_version,
            current_version=plan.version,
        )

    current = PlanStatus(plan.status)
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)

    patch = dict(extra or {})
    patch.pop("version", None)
    patch["status"] = target

    updated = await repo.update_plan(plan_id, patch, expected_version)
    logger.info(
        "Plan %s: %s -> %s (version %d)",
        plan_id, current.value, target.value, updated.version,
    )
    return updated
