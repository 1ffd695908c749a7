"""Delay detection for plans that are on the road.

A plan qualifies for a DELAY incident once it is IN_TRANSIT and its
estimated delivery time has passed by more than DELAY_THRESHOLD_MINUTES.
All functions take ``now`` explicitly so results are reproducible.
"""

from datetime import datetime

from freightlink.models.plan import PlanStatus
from freightlink.utils.clock import as_utc, utcnow

DELAY_THRESHOLD_MINUTES = 30


def calculate_delay_minutes(plan, now: datetime | None = None) -> int:
    """Whole minutes past the estimated delivery time; 0 if on time or no ETA."""
    if not plan.estimated_delivery_time:
        return 0
    now = as_utc(now) if now is not None else utcnow()
    late = now - as_utc(plan.estimated_delivery_time)
    return max(0, int(late.total_seconds() // 60))


def should_trigger_delay_incident(
    plan,
    threshold_minutes: int = DELAY_THRESHOLD_MINUTES,
    now: datetime | None = None,
) -> bool:
    """True iff the plan is IN_TRANSIT and late by more than the threshold."""
    if PlanStatus(plan.status) is not PlanStatus.IN_TRANSIT:
        return False
    return calculate_delay_minutes(plan, now) > threshold_minutes


def check_for_delay(plan, now: datetime | None = None) -> bool:
    return should_trigger_delay_incident(plan, DELAY_THRESHOLD_MINUTES, now)


def generate_delay_description(plan, now: datetime | None = None) -> str:
    now = as_utc(now) if now is not None else utcnow()
    delay = calculate_delay_minutes(plan, now)
    hours, minutes = divmod(delay, 60)
    eta = as_utc(plan.estimated_delivery_time).isoformat() if plan.estimated_delivery_time else "unknown"

    if hours:
        head = f"Estimated delay: {hours}h {minutes}m ({delay} minutes)."
    else:
        head = f"Estimated delay: {delay} minutes."
    return f"{head} Expected: {eta}, Actual: {now.isoformat()}"
