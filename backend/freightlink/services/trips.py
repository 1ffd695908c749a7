"""Carrier responses to a proposed trip.

A carrier may only answer for its own trips, and answers once:

    accept_trip   PROPOSED → ACCEPTED      (repeat accept returns the trip)
    refuse_trip   PROPOSED → CANCELLED     + REFUSAL incident, atomically
                                           (repeat refuse returns both)

Refusal also returns fresh carrier proposals that exclude the refusing
carrier, so the freighter can re-propose right away (``propose_plan``
accepts a PROPOSED plan whose trips are all cancelled).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial

from freightlink.middleware.exceptions import (
    FieldError,
    InvalidTransitionError,
    PermissionDeniedError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from freightlink.models.incident import Incident, IncidentType
from freightlink.models.trip import Trip, TripStatus
from freightlink.services.carrier_proposal import CarrierProposal
from freightlink.services.incidents import open_incident, refusal_incident
from freightlink.services.lifecycle import can_transition_trip
from freightlink.services.plans import generate_proposals
from freightlink.utils.clock import utcnow

logger = logging.getLogger(__name__)

MAX_REFUSAL_REASON_LENGTH = 500


@dataclass
class RefusalResult:
    trip: Trip
    incident: Incident | None
    alternatives: list[CarrierProposal] = field(default_factory=list)


async def _owned_trip(repo, trip_id: str, carrier_id: str) -> Trip:
    trip = await repo.get_trip(trip_id)
    if trip is None:
        raise ResourceNotFoundError("Trip", trip_id)
    if trip.carrier_id != carrier_id:
        raise PermissionDeniedError("You can only respond to your own trips")
    return trip


async def accept_trip(
    repo,
    trip_id: str,
    carrier_id: str,
    *,
    now: datetime | None = None,
) -> Trip:
    trip = await _owned_trip(repo, trip_id, carrier_id)

    status = TripStatus(trip.status)
    if status is TripStatus.ACCEPTED:
        logger.info(f"Trip {trip_id} already accepted by {carrier_id}")
        return trip
    if not can_transition_trip(status, TripStatus.ACCEPTED):
        raise InvalidTransitionError(status.value, TripStatus.ACCEPTED.value)

    updated = await repo.update_trip(
        trip_id,
        {"status": TripStatus.ACCEPTED, "accepted_at": now or utcnow()},
        trip.version,
    )
    logger.info(f"Trip {trip_id} accepted by carrier {carrier_id} (plan {trip.plan_id})")
    return updated


async def refuse_trip(
    repo,
    notifier,
    trip_id: str,
    carrier_id: str,
    reason: str | None = None,
    *,
    now: datetime | None = None,
) -> RefusalResult:
    """Cancel the carrier's trip and record a REFUSAL incident.

    The trip update and the incident insert commit together or not at
    all.  The freighter is notified once the refusal commits; a failed
    notification never undoes it.
    """
    if reason is not None and len(reason) > MAX_REFUSAL_REASON_LENGTH:
        raise ValidationFailedError([FieldError(
            "reason",
            f"Refusal reason must not exceed {MAX_REFUSAL_REASON_LENGTH} characters",
        )])

    trip = await _owned_trip(repo, trip_id, carrier_id)
    plan = await repo.get_plan(trip.plan_id)

    status = TripStatus(trip.status)
    if status is TripStatus.CANCELLED and trip.refused_at is not None:
        logger.info(f"Trip {trip_id} already refused by {carrier_id}")
        incident = await repo.find_incident(trip.plan_id, IncidentType.REFUSAL, carrier_id)
        return RefusalResult(
            trip=trip,
            incident=incident,
            alternatives=await _alternatives(repo, plan, carrier_id),
        )
    if not can_transition_trip(status, TripStatus.CANCELLED):
        raise InvalidTransitionError(status.value, TripStatus.CANCELLED.value)

    async with repo.atomic():
        updated = await repo.update_trip(
            trip_id,
            {
                "status": TripStatus.CANCELLED,
                "refused_at": now or utcnow(),
                "refusal_reason": reason or None,
            },
            trip.version,
        )
        incident, created = await open_incident(
            repo, refusal_incident(trip.plan_id, carrier_id, reason),
        )

    logger.info(
        "Trip %s refused by carrier %s (plan %s, incident %s)",
        trip_id, carrier_id, trip.plan_id, incident.id,
    )
    if created:
        repo.on_commit(partial(notifier.notify_incident, incident, plan))

    return RefusalResult(
        trip=updated,
        incident=incident,
        alternatives=await _alternatives(repo, plan, carrier_id),
    )


async def _alternatives(repo, plan, refusing_carrier_id: str) -> list[CarrierProposal]:
    if plan is None:
        return []
    return await generate_proposals(repo, plan, exclude_carrier_ids=[refusing_carrier_id])
