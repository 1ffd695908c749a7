"""Temporal validator — derives and checks the loading → hub → delivery schedule.

A plan's schedule is fully determined by its planned loading time and
the route profile:

    estimated_hub_time      = planned_loading_time + hub_duration
    estimated_delivery_time = estimated_hub_time + transit_duration

Direct routes (no hub) skip the hub leg entirely:

    estimated_delivery_time = planned_loading_time + transit_duration

Rules:
    - planned_loading_time must be strictly after ``now``
    - delivery - loading must not exceed MAX_DELIVERY_WINDOW (40h)

Everything here is pure: ``now`` is a parameter, nothing is persisted.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from freightlink.middleware.exceptions import (
    PastSchedulingError,
    ValidationFailedError,
    WindowExceededError,
)
from freightlink.utils.clock import as_utc, utcnow

# ── Defaults (overridable per route / via settings) ─────────
DEFAULT_HUB_DURATION = timedelta(hours=2)
DEFAULT_TRANSIT_DURATION = timedelta(hours=4)
MAX_DELIVERY_WINDOW = timedelta(hours=40)

LOADING_WINDOW = timedelta(hours=1)    # ± around planned loading
DELIVERY_WINDOW = timedelta(minutes=30)  # ± around estimated delivery


@dataclass(frozen=True)
class RouteProfile:
    """Timing characteristics of a route."""
    hub_duration: timedelta = DEFAULT_HUB_DURATION
    transit_duration: timedelta = DEFAULT_TRANSIT_DURATION
    uses_hub: bool = True

    def __post_init__(self):
        if self.transit_duration <= timedelta(0):
            raise ValueError("transit_duration must be positive")
        if self.uses_hub and self.hub_duration <= timedelta(0):
            raise ValueError("hub_duration must be positive on hub routes")

    @classmethod
    def from_settings(cls, settings, hub_id: str | None = None) -> RouteProfile:
        """Build the profile for a plan; ``hub_id`` decides hub vs. direct routing."""
        return cls(
            hub_duration=timedelta(minutes=settings.hub_duration_minutes),
            transit_duration=timedelta(minutes=settings.transit_duration_minutes),
            uses_hub=hub_id is not None,
        )


DEFAULT_ROUTE_PROFILE = RouteProfile()


@dataclass
class TemporalValidationResult:
    is_valid: bool
    error: ValidationFailedError | None = None
    estimated_hub_time: datetime | None = None
    estimated_delivery_time: datetime | None = None


def validate_temporal_constraints(
    planned_loading_time: datetime,
    route_profile: RouteProfile = DEFAULT_ROUTE_PROFILE,
    *,
    now: datetime | None = None,
    max_window: timedelta = MAX_DELIVERY_WINDOW,
) -> TemporalValidationResult:
    """Derive the hub/delivery estimates for a loading time and check the rules.

    Returns a result object rather than raising; ``error`` holds a
    PastSchedulingError or WindowExceededError the caller may raise.
    """
    now = as_utc(now) if now is not None else utcnow()
    loading = as_utc(planned_loading_time)

    if loading <= now:
        return TemporalValidationResult(is_valid=False, error=PastSchedulingError())

    if route_profile.uses_hub:
        estimated_hub_time = loading + route_profile.hub_duration
        estimated_delivery_time = estimated_hub_time + route_profile.transit_duration
    else:
        estimated_hub_time = None
        estimated_delivery_time = loading + route_profile.transit_duration

    if estimated_delivery_time - loading > max_window:
        return TemporalValidationResult(
            is_valid=False,
            error=WindowExceededError(max_window.total_seconds() / 3600),
        )

    return TemporalValidationResult(
        is_valid=True,
        estimated_hub_time=estimated_hub_time,
        estimated_delivery_time=estimated_delivery_time,
    )


# ── Journey timeline ────────────────────────────────────────


class JourneyStageName(str, enum.Enum):
    LOADING = "LOADING"
    HUB_PROCESSING = "HUB_PROCESSING"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERY = "DELIVERY"


@dataclass(frozen=True)
class JourneyStage:
    stage: JourneyStageName
    description: str
    start_time: datetime
    end_time: datetime

    @property
    def duration_minutes(self) -> int:
        return _minutes(self.end_time - self.start_time)


@dataclass(frozen=True)
class JourneyTimeline:
    stages: list[JourneyStage] = field(default_factory=list)
    total_duration_minutes: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None


def _minutes(delta: timedelta) -> int:
    return round(delta.total_seconds() / 60)


def build_journey_timeline(plan) -> JourneyTimeline:
    """Lay out the journey stages for a plan snapshot.

    Stage presence follows the plan's timestamps exactly:
        LOADING          always
        HUB_PROCESSING   iff estimated_hub_time is set
        IN_TRANSIT       iff both estimated_hub_time and estimated_delivery_time are set
        DELIVERY         iff estimated_delivery_time is set
    """
    loading = as_utc(plan.planned_loading_time)
    hub = as_utc(plan.estimated_hub_time) if plan.estimated_hub_time else None
    delivery = as_utc(plan.estimated_delivery_time) if plan.estimated_delivery_time else None

    stages = [
        JourneyStage(
            stage=JourneyStageName.LOADING,
            description="Pickup and loading at supplier location",
            start_time=loading - LOADING_WINDOW,
            end_time=loading + LOADING_WINDOW,
        )
    ]

    if hub is not None:
        stages.append(JourneyStage(
            stage=JourneyStageName.HUB_PROCESSING,
            description="Processing at hub facility",
            start_time=loading,
            end_time=hub,
        ))

    if hub is not None and delivery is not None:
        stages.append(JourneyStage(
            stage=JourneyStageName.IN_TRANSIT,
            description="Transportation to destination store",
            start_time=hub,
            end_time=delivery,
        ))

    if delivery is not None:
        stages.append(JourneyStage(
            stage=JourneyStageName.DELIVERY,
            description="Unloading at destination store",
            start_time=delivery - DELIVERY_WINDOW,
            end_time=delivery + DELIVERY_WINDOW,
        ))

    start = stages[0].start_time
    end = stages[-1].end_time
    return JourneyTimeline(
        stages=stages,
        total_duration_minutes=_minutes(end - start),
        start_time=start,
        end_time=end,
    )
