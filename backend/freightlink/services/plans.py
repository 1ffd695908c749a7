"""Plan orchestration — create, modify, and propose transport plans.

These functions tie the pure components together around the repository:

    create_draft_plan   locations + governor checks → temporal validator → DRAFT v1
    modify_plan         governor → temporal validator → update_plan(version)
                        → carrier proposal generator (if proposals went stale)
    generate_proposals  repository candidate lookup → carrier proposal generator
    propose_plan        PROPOSED trip + DRAFT → PROPOSED, atomically; a PROPOSED
                        plan whose trips were all refused can be re-proposed
    change_plan_status  every other status change (the state machine)
    list_plans          one page of the caller's own plans

Every write is conditioned on the version the caller read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Any, Mapping

from freightlink.config import Settings, settings
from freightlink.middleware.exceptions import (
    ConflictError,
    FieldError,
    FieldNotModifiableError,
    InvalidTransitionError,
    PermissionDeniedError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from freightlink.models.location import LocationType
from freightlink.models.plan import PlanStatus, TransportPlan
from freightlink.models.trip import Trip, TripStatus
from freightlink.repository import DEFAULT_PLAN_SORT, PLAN_SORTS
from freightlink.services.carrier_proposal import CarrierProposal, propose_carriers
from freightlink.services.lifecycle import can_transition, transition_plan
from freightlink.services.plan_modification import (
    MUTABLE_FIELDS,
    can_modify_field,
    get_changed_fields,
    needs_re_proposal,
    validate_modification,
)
from freightlink.services.temporal import RouteProfile, validate_temporal_constraints
from freightlink.utils.locks import get_plan_locks

logger = logging.getLogger(__name__)

# Which location type each route leg must point at
_SUPPLIER_LEG = ("supplier_id", LocationType.SUPPLIER, True)
_DESTINATION_LEG = ("destination_id", LocationType.STORE, True)
_HUB_LEG = ("hub_id", LocationType.HUB, False)
_ROUTE_LOCATION_TYPES = (_SUPPLIER_LEG, _DESTINATION_LEG, _HUB_LEG)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass
class ModificationResult:
    plan: TransportPlan
    changed_fields: list[str] = field(default_factory=list)
    proposals: list[CarrierProposal] = field(default_factory=list)
    re_proposed: bool = False


@dataclass
class ProposalResult:
    plan: TransportPlan
    trip: Trip
    proposal: CarrierProposal


@dataclass
class PlanPage:
    plans: list[TransportPlan]
    total: int
    page: int
    limit: int


def _max_window(cfg: Settings) -> timedelta:
    return timedelta(hours=cfg.max_delivery_window_hours)


# ── Create ───────────────────────────────────────────────────


async def _route_errors(
    repo, data: Mapping[str, Any], legs=_ROUTE_LOCATION_TYPES,
) -> list[FieldError]:
    errors: list[FieldError] = []
    for name, expected_type, required in legs:
        location_id = data.get(name)
        if not location_id:
            if required:
                errors.append(FieldError(name, f"{name} is required"))
            continue
        location = await repo.get_location(location_id)
        if location is None:
            errors.append(FieldError(name, f"Location not found: {location_id}"))
        elif LocationType(location.type) is not expected_type:
            errors.append(FieldError(
                name, f"Location {location_id} is not a {expected_type.value}",
            ))
    return errors


async def create_draft_plan(
    repo,
    data: Mapping[str, Any],
    created_by: str,
    *,
    now: datetime | None = None,
    cfg: Settings = settings,
) -> TransportPlan:
    """Validate a new plan and store it as DRAFT, version 1.

    All field problems are collected and raised together as
    ValidationFailedError.
    """
    errors = await _route_errors(repo, data)

    # supplier ≠ destination and unit-count range use the governor's rules
    draft = SimpleNamespace(supplier_id=data.get("supplier_id"))
    checks = {"unit_count": data.get("unit_count")}
    if data.get("destination_id"):
        checks["destination_id"] = data["destination_id"]
    errors.extend(validate_modification(draft, checks))

    profile = RouteProfile.from_settings(cfg, data.get("hub_id"))
    loading = data.get("planned_loading_time")
    schedule = None
    if not isinstance(loading, datetime):
        errors.append(FieldError("planned_loading_time", "Loading time must be a timestamp"))
    else:
        schedule = validate_temporal_constraints(
            loading, profile, now=now, max_window=_max_window(cfg),
        )
        if not schedule.is_valid:
            errors.extend(schedule.error.errors)

    if errors:
        raise ValidationFailedError(errors)

    plan = await repo.create_plan({
        "supplier_id": data["supplier_id"],
        "destination_id": data["destination_id"],
        "hub_id": data.get("hub_id"),
        "unit_count": data["unit_count"],
        "planned_loading_time": loading,
        "estimated_hub_time": schedule.estimated_hub_time,
        "estimated_delivery_time": schedule.estimated_delivery_time,
        "status": PlanStatus.DRAFT,
        "version": 1,
        "notes": data.get("notes"),
        "created_by": created_by,
    })
    logger.info(f"Created plan {plan.id} ({plan.unit_count} units) for {created_by}")
    return plan


# ── Modify ───────────────────────────────────────────────────


def _blocked_fields(plan, changes: Mapping[str, Any]) -> list[str]:
    return [
        name for name in changes
        if name not in MUTABLE_FIELDS or not can_modify_field(name, plan.status)
    ]


async def modify_plan(
    repo,
    plan_id: str,
    changes: Mapping[str, Any],
    expected_version: int,
    *,
    now: datetime | None = None,
    cfg: Settings = settings,
) -> ModificationResult:
    """Apply a field-level modification to a plan.

    Order of checks: existence, version, field permission, values.  A
    request whose values all match the stored plan is a no-op and does
    not bump the version.

    Raises:
        ResourceNotFoundError    plan absent or soft-deleted
        ConflictError            expected_version is stale
        FieldNotModifiableError  a field is locked under the current status
        ValidationFailedError    one or more values are invalid
    """
    plan = await repo.get_plan(plan_id)
    if plan is None:
        raise ResourceNotFoundError("Plan", plan_id)

    if plan.version != expected_version:
        raise ConflictError(expected_version=expected_version, current_version=plan.version)

    blocked = _blocked_fields(plan, changes)
    if blocked:
        lock = get_plan_locks(plan).check_update(blocked)
        raise FieldNotModifiableError(
            blocked,
            PlanStatus(plan.status).value,
            reason=lock.reason if lock else None,
        )

    profile = RouteProfile.from_settings(cfg, plan.hub_id)
    errors = validate_modification(
        plan, changes, route_profile=profile, now=now, max_window=_max_window(cfg),
    )
    # A new destination must be an existing STORE, as on create
    if "destination_id" in changes and not any(e.field == "destination_id" for e in errors):
        errors.extend(await _route_errors(repo, changes, legs=(_DESTINATION_LEG,)))
    if errors:
        raise ValidationFailedError(errors)

    changed = get_changed_fields(plan, changes)
    if not changed:
        logger.debug(f"Plan {plan_id}: modification changes nothing")
        return ModificationResult(plan=plan)

    patch = {name: changes[name] for name in changed}
    if "planned_loading_time" in patch:
        schedule = validate_temporal_constraints(
            patch["planned_loading_time"], profile, now=now, max_window=_max_window(cfg),
        )
        patch["estimated_hub_time"] = schedule.estimated_hub_time
        patch["estimated_delivery_time"] = schedule.estimated_delivery_time

    updated = await repo.update_plan(plan_id, patch, expected_version)

    proposals: list[CarrierProposal] = []
    re_proposed = needs_re_proposal(changed)
    if re_proposed:
        proposals = await generate_proposals(repo, updated, cfg=cfg)

    logger.info(
        "Plan %s modified: %s (version %d -> %d, %d proposal(s))",
        plan_id, ", ".join(changed), expected_version, updated.version, len(proposals),
    )
    return ModificationResult(
        plan=updated,
        changed_fields=changed,
        proposals=proposals,
        re_proposed=re_proposed,
    )


# ── Proposals ────────────────────────────────────────────────


async def generate_proposals(
    repo,
    plan: TransportPlan,
    *,
    limit: int | None = None,
    exclude_carrier_ids=(),
    carrier_ids=None,
    cfg: Settings = settings,
) -> list[CarrierProposal]:
    """Fresh, ranked carrier proposals for ``plan``'s current values.

    With ``carrier_ids`` only those carriers are ranked, and every one of
    them that qualifies is returned; otherwise at most ``limit``
    (default ``proposal_limit``).
    """
    candidates = await repo.find_carrier_candidates(
        plan.unit_count, plan.planned_loading_time, plan.destination_id,
    )
    excluded = set(exclude_carrier_ids)
    candidates = [c for c in candidates if c.carrier_id not in excluded]
    if carrier_ids is not None:
        wanted = set(carrier_ids)
        candidates = [c for c in candidates if c.carrier_id in wanted]
        limit = len(candidates)
    return propose_carriers(
        plan.unit_count,
        plan.planned_loading_time,
        plan.destination_id,
        limit or cfg.proposal_limit,
        candidates=candidates,
    )


async def _has_live_trip(repo, plan_id: str) -> bool:
    return any(
        TripStatus(trip.status) is not TripStatus.CANCELLED
        for trip in await repo.list_trips(plan_id)
    )


async def propose_plan(
    repo,
    plan_id: str,
    expected_version: int,
    carrier_id: str | None = None,
    *,
    cfg: Settings = settings,
) -> ProposalResult:
    """Offer the plan to one carrier: create its trip and move DRAFT → PROPOSED.

    Without ``carrier_id`` the cheapest proposal is used.  A PROPOSED
    plan whose trips have all been refused may be offered again; it stays
    PROPOSED and its version is bumped.  The trip and the plan write
    commit together.
    """
    plan = await repo.get_plan(plan_id)
    if plan is None:
        raise ResourceNotFoundError("Plan", plan_id)
    if plan.version != expected_version:
        raise ConflictError(expected_version=expected_version, current_version=plan.version)

    current = PlanStatus(plan.status)
    re_offer = current is PlanStatus.PROPOSED and not await _has_live_trip(repo, plan_id)
    if not re_offer and not can_transition(current, PlanStatus.PROPOSED):
        raise InvalidTransitionError(current.value, PlanStatus.PROPOSED.value)

    if carrier_id is not None:
        proposals = await generate_proposals(repo, plan, carrier_ids=[carrier_id], cfg=cfg)
    else:
        proposals = await generate_proposals(repo, plan, limit=1, cfg=cfg)
    if not proposals:
        message = (
            f"Carrier {carrier_id} is not available for this plan"
            if carrier_id else "No carrier is available for this plan"
        )
        raise ValidationFailedError([FieldError("carrier_id", message)])
    chosen = proposals[0]

    async with repo.atomic():
        trip = await repo.create_trip({
            "plan_id": plan.id,
            "carrier_id": chosen.carrier_id,
            "total_cost": chosen.total_cost,
            "estimated_eta": chosen.estimated_eta,
            "status": TripStatus.PROPOSED,
            "version": 1,
        })
        if re_offer:
            updated = await repo.update_plan(plan_id, {}, expected_version)
        else:
            updated = await transition_plan(repo, plan_id, PlanStatus.PROPOSED, expected_version)

    logger.info(
        "Plan %s %s to carrier %s (trip %s)",
        plan_id, "re-proposed" if re_offer else "proposed", chosen.carrier_id, trip.id,
    )
    return ProposalResult(plan=updated, trip=trip, proposal=chosen)


async def change_plan_status(
    repo,
    plan_id: str,
    target: PlanStatus | str,
    expected_version: int,
) -> TransportPlan:
    """Status changes requested by the freighter.

    PROPOSED is refused here: a plan only becomes PROPOSED together with
    its carrier trip, through ``propose_plan``.
    """
    if PlanStatus(target) is PlanStatus.PROPOSED:
        raise ValidationFailedError([FieldError(
            "status", "Use propose to offer a plan to a carrier",
        )])
    return await transition_plan(repo, plan_id, target, expected_version)


# ── Access ───────────────────────────────────────────────────


async def get_owned_plan(repo, plan_id: str, user_id: str) -> TransportPlan:
    """Load a plan the caller created; anyone else gets PermissionDeniedError."""
    plan = await repo.get_plan(plan_id)
    if plan is None:
        raise ResourceNotFoundError("Plan", plan_id)
    if plan.created_by != user_id:
        raise PermissionDeniedError("You can only access your own plans")
    return plan


async def list_plans(
    repo,
    created_by: str,
    *,
    status: PlanStatus | None = None,
    sort: str = DEFAULT_PLAN_SORT,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> PlanPage:
    """One page of ``created_by``'s plans.

    Out-of-range paging is clamped (page ≥ 1, 1 ≤ limit ≤ 100) and an
    unknown sort key falls back to newest first.
    """
    page = max(1, page)
    limit = min(MAX_PAGE_SIZE, max(1, limit))
    if sort not in PLAN_SORTS:
        sort = DEFAULT_PLAN_SORT

    plans, total = await repo.list_plans(
        created_by, status=status, sort=sort, offset=(page - 1) * limit, limit=limit,
    )
    return PlanPage(plans=plans, total=total, page=page, limit=limit)
