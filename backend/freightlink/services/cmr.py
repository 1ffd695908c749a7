"""CMR submission — record what actually arrived and flag imbalances.

Flow: validate counts → imbalance detector → incident policy → notifier
(the notification goes out only once the submission commits).
Submitting the same CMR again reuses the OPEN IMBALANCE incident.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial

from freightlink.config import Settings, settings
from freightlink.middleware.exceptions import (
    FieldError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from freightlink.models.incident import Incident
from freightlink.services.imbalance import detect_imbalance, validate_unit_counts
from freightlink.services.incidents import imbalance_incident, open_incident

logger = logging.getLogger(__name__)


@dataclass
class CMRResult:
    plan_id: str
    planned_units: int
    actual_units: int
    imbalance_detected: bool
    incident: Incident | None = None
    incident_created: bool = False


async def submit_cmr(
    repo,
    notifier,
    plan_id: str,
    received_count: int,
    warehouse_id: str | None = None,
    *,
    cfg: Settings = settings,
) -> CMRResult:
    plan = await repo.get_plan(plan_id)
    if plan is None:
        raise ResourceNotFoundError("Plan", plan_id)

    problems = validate_unit_counts(plan.unit_count, received_count)
    if problems:
        raise ValidationFailedError(
            [FieldError("received_count", p) for p in problems],
            message="Invalid unit counts",
        )

    result = CMRResult(
        plan_id=plan_id,
        planned_units=plan.unit_count,
        actual_units=received_count,
        imbalance_detected=detect_imbalance(
            plan.unit_count, received_count, cfg.imbalance_tolerance,
        ),
    )
    if not result.imbalance_detected:
        logger.info(f"CMR for plan {plan_id}: {received_count}/{plan.unit_count} units, balanced")
        return result

    draft = imbalance_incident(plan_id, plan.unit_count, received_count, warehouse_id)
    result.incident, result.incident_created = await open_incident(repo, draft)
    if result.incident_created:
        repo.on_commit(partial(notifier.notify_incident, result.incident, plan))

    logger.info(
        "CMR for plan %s: %d/%d units, imbalance incident %s",
        plan_id, received_count, plan.unit_count, result.incident.id,
    )
    return result
