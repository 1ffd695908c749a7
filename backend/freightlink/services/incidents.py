"""Incident policy — when to open an incident, and never twice.

Detectors (imbalance, delay, carrier refusal) produce an IncidentDraft;
``open_incident`` persists it unless an OPEN incident of the same type
already exists for the plan, in which case the existing one is returned.
The (plan_id, type) dedup key is also enforced by a partial unique index,
so a concurrent duplicate insert surfaces as ConflictError and is
resolved to the winner's row.

Severity:
    - REFUSAL:   always critical
    - DELAY:     critical above CRITICAL_DELAY_MINUTES, otherwise medium
    - IMBALANCE: critical above CRITICAL_IMBALANCE_UNITS, otherwise by %
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from freightlink.middleware.exceptions import ConflictError
from freightlink.models.incident import Incident, IncidentStatus, IncidentType
from freightlink.services.delay import calculate_delay_minutes, generate_delay_description
from freightlink.services.imbalance import (
    calculate_imbalance_details,
    generate_imbalance_description,
    get_imbalance_severity,
)

logger = logging.getLogger(__name__)

CRITICAL_IMBALANCE_UNITS = 10
CRITICAL_DELAY_MINUTES = 120


@dataclass(frozen=True)
class IncidentDraft:
    type: IncidentType
    plan_id: str
    description: str
    severity: str = "medium"
    carrier_id: str | None = None
    warehouse_id: str | None = None


# ── Drafts from detector output ──────────────────────────────


def refusal_incident(plan_id: str, carrier_id: str, reason: str | None) -> IncidentDraft:
    return IncidentDraft(
        type=IncidentType.REFUSAL,
        plan_id=plan_id,
        carrier_id=carrier_id,
        severity="critical",
        description=f"Carrier refused trip: {reason}" if reason else "Carrier refused trip",
    )


def delay_incident(plan, now: datetime | None = None) -> IncidentDraft:
    delay = calculate_delay_minutes(plan, now)
    return IncidentDraft(
        type=IncidentType.DELAY,
        plan_id=plan.id,
        severity="critical" if delay > CRITICAL_DELAY_MINUTES else "medium",
        description=generate_delay_description(plan, now),
    )


def imbalance_incident(
    plan_id: str,
    planned_units: int,
    actual_units: int,
    warehouse_id: str | None = None,
) -> IncidentDraft:
    details = calculate_imbalance_details(planned_units, actual_units)
    if details.difference > CRITICAL_IMBALANCE_UNITS:
        severity = "critical"
    else:
        severity = get_imbalance_severity(details.percentage_difference)
    return IncidentDraft(
        type=IncidentType.IMBALANCE,
        plan_id=plan_id,
        warehouse_id=warehouse_id,
        severity=severity,
        description=generate_imbalance_description(planned_units, actual_units),
    )


# ── Policy ───────────────────────────────────────────────────


def should_open_incident(incident_type: IncidentType | str, existing_open_incident) -> bool:
    """True iff no OPEN incident of ``incident_type`` exists for the plan."""
    if existing_open_incident is None:
        return True
    return not (
        IncidentType(existing_open_incident.type) is IncidentType(incident_type)
        and IncidentStatus(existing_open_incident.status) is IncidentStatus.OPEN
    )


async def open_incident(repo, draft: IncidentDraft) -> tuple[Incident, bool]:
    """Persist ``draft`` unless it duplicates an OPEN incident.

    Returns ``(incident, created)``; ``created`` is False when an existing
    OPEN incident for (plan_id, type) was returned instead.
    """
    existing = await repo.find_open_incident(draft.plan_id, draft.type)
    if not should_open_incident(draft.type, existing):
        logger.info(
            "Open %s incident already exists for plan %s (%s); not creating another",
            draft.type.value, draft.plan_id, existing.id,
        )
        return existing, False

    try:
        incident = await repo.create_incident(draft)
    except ConflictError:
        # Lost a race against a concurrent insert of the same (plan, type)
        existing = await repo.find_open_incident(draft.plan_id, draft.type)
        if existing is None:
            raise
        return existing, False

    logger.info(
        "Opened %s incident %s for plan %s (severity=%s)",
        draft.type.value, incident.id, draft.plan_id, draft.severity,
    )
    return incident, True


# ── Triage helpers ───────────────────────────────────────────


def is_incident_critical(incident) -> bool:
    return incident.severity == "critical"


RESOLUTION_ACTIONS = {
    IncidentType.REFUSAL: "Propose alternative carrier or adjust plan parameters",
    IncidentType.DELAY: "Monitor progress or accept delay with store notification",
    IncidentType.IMBALANCE: "Investigate with warehouse and adjust CMR or proceed with variance",
}


def suggest_resolution_action(incident_type: IncidentType | str) -> str:
    return RESOLUTION_ACTIONS[IncidentType(incident_type)]
