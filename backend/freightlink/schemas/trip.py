"""Pydantic schemas for carrier trip responses."""

from datetime import datetime

from pydantic import BaseModel

from freightlink.models.trip import TripStatus
from freightlink.schemas.incident import IncidentOut
from freightlink.schemas.plan import PlanOut, ProposalOut


class TripOut(BaseModel):
    id: str
    plan_id: str
    carrier_id: str
    total_cost: float | None
    estimated_eta: datetime | None
    status: TripStatus
    version: int
    accepted_at: datetime | None
    refused_at: datetime | None
    refusal_reason: str | None

    model_config = {"from_attributes": True}


class RefuseRequest(BaseModel):
    # Length limit is enforced by the trip service (400, not 422)
    reason: str | None = None


class RefusalOut(BaseModel):
    trip: TripOut
    incident: IncidentOut | None
    alternatives: list[ProposalOut]

    model_config = {"from_attributes": True}


class ProposeOut(BaseModel):
    """Result of proposing a plan to a carrier."""
    plan: PlanOut
    trip: TripOut
    proposal: ProposalOut

    model_config = {"from_attributes": True}
