"""Plan modification governor — which fields may change, and what a change invalidates.

Three questions are answered here, all without touching storage:

    can_modify_field       may this field be written in this status?
    validate_modification  are the new values acceptable?
    get_changed_fields     which requested values actually differ?

The field → derived-artifact graph (FIELD_INVALIDATES) drives
re-proposal: every mutable field must declare what it invalidates, so
adding a field without wiring it in fails at import time.
"""

from __future__ import annotations

import enum
from datetime import datetime, timedelta
from typing import Any, Mapping

from freightlink.middleware.exceptions import FieldError
from freightlink.models.plan import PlanStatus
from freightlink.services.temporal import (
    DEFAULT_ROUTE_PROFILE,
    MAX_DELIVERY_WINDOW,
    RouteProfile,
    validate_temporal_constraints,
)
from freightlink.utils.clock import as_utc

MIN_UNIT_COUNT = 1
MAX_UNIT_COUNT = 1000

# Order here is the order changed fields are reported in
MUTABLE_FIELDS = ("unit_count", "planned_loading_time", "destination_id", "notes")

MODIFIABLE_FIELDS: dict[PlanStatus, frozenset[str]] = {
    PlanStatus.DRAFT: frozenset(MUTABLE_FIELDS),
    PlanStatus.PROPOSED: frozenset({"notes"}),
    PlanStatus.ACCEPTED: frozenset(),
    PlanStatus.IN_TRANSIT: frozenset(),
    PlanStatus.DELIVERED: frozenset(),
    PlanStatus.CANCELLED: frozenset(),
}


class DerivedArtifact(str, enum.Enum):
    SCHEDULE = "schedule"                    # estimated hub / delivery times
    CARRIER_PROPOSALS = "carrier_proposals"  # priced proposals issued to carriers


FIELD_INVALIDATES: dict[str, frozenset[DerivedArtifact]] = {
    "unit_count": frozenset({DerivedArtifact.CARRIER_PROPOSALS}),
    "planned_loading_time": frozenset({
        DerivedArtifact.SCHEDULE,
        DerivedArtifact.CARRIER_PROPOSALS,
    }),
    "destination_id": frozenset({DerivedArtifact.CARRIER_PROPOSALS}),
    "notes": frozenset(),
}

_missing_statuses = set(PlanStatus) - set(MODIFIABLE_FIELDS)
if _missing_statuses:
    raise RuntimeError(f"MODIFIABLE_FIELDS has no entry for {sorted(_missing_statuses)}")
_unwired = set(MUTABLE_FIELDS) ^ set(FIELD_INVALIDATES)
if _unwired:
    raise RuntimeError(f"FIELD_INVALIDATES out of sync with MUTABLE_FIELDS: {sorted(_unwired)}")


def can_modify_field(field_name: str, current_status: PlanStatus | str) -> bool:
    return field_name in MODIFIABLE_FIELDS[PlanStatus(current_status)]


def validate_modification(
    plan,
    changes: Mapping[str, Any],
    *,
    route_profile: RouteProfile = DEFAULT_ROUTE_PROFILE,
    now: datetime | None = None,
    max_window: timedelta = MAX_DELIVERY_WINDOW,
) -> list[FieldError]:
    """Check every requested value; returns all failures, never just the first."""
    errors: list[FieldError] = []

    if "unit_count" in changes:
        value = changes["unit_count"]
        if (
            not isinstance(value, int)
            or isinstance(value, bool)
            or not MIN_UNIT_COUNT <= value <= MAX_UNIT_COUNT
        ):
            errors.append(FieldError(
                "unit_count",
                f"Unit count must be between {MIN_UNIT_COUNT} and {MAX_UNIT_COUNT}",
            ))

    if "planned_loading_time" in changes:
        value = changes["planned_loading_time"]
        if not isinstance(value, datetime):
            errors.append(FieldError("planned_loading_time", "Loading time must be a timestamp"))
        else:
            result = validate_temporal_constraints(
                value, route_profile, now=now, max_window=max_window,
            )
            if not result.is_valid:
                errors.extend(result.error.errors)

    if "destination_id" in changes:
        value = changes["destination_id"]
        if not isinstance(value, str) or not value.strip():
            errors.append(FieldError("destination_id", "Destination ID is required"))
        elif value == plan.supplier_id:
            errors.append(FieldError(
                "destination_id", "Destination must differ from the supplier location",
            ))

    return errors


def _comparable(value):
    if isinstance(value, datetime):
        return as_utc(value)
    return value


def get_changed_fields(plan, changes: Mapping[str, Any]) -> list[str]:
    """Fields present in ``changes`` whose value differs from the plan's."""
    return [
        name for name in MUTABLE_FIELDS
        if name in changes
        and _comparable(changes[name]) != _comparable(getattr(plan, name))
    ]


def invalidated_artifacts(changed_fields) -> set[DerivedArtifact]:
    artifacts: set[DerivedArtifact] = set()
    for name in changed_fields:
        artifacts |= FIELD_INVALIDATES.get(name, frozenset())
    return artifacts


def needs_re_proposal(changed_fields) -> bool:
    return DerivedArtifact.CARRIER_PROPOSALS in invalidated_artifacts(changed_fields)
