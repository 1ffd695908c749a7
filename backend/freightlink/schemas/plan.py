"""Pydantic schemas for transport plan endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from freightlink.models.plan import PlanStatus
from freightlink.services.temporal import JourneyStageName
from freightlink.utils.clock import as_utc


class PlanCreate(BaseModel):
    supplier_id: str
    destination_id: str
    hub_id: str | None = None
    # Range is checked by the plan service so every field error is reported together
    unit_count: int
    planned_loading_time: datetime
    notes: str | None = None

    @field_validator("planned_loading_time")
    @classmethod
    def loading_time_as_utc(cls, value):
        return as_utc(value) if isinstance(value, datetime) else value


class PlanModify(BaseModel):
    """Partial update.  Only fields that are sent are considered.

    Unknown fields are kept so the service can reject them as not
    modifiable instead of silently dropping them.
    """
    version: int = Field(..., ge=1)
    unit_count: int | None = None
    planned_loading_time: datetime | None = None
    destination_id: str | None = None
    notes: str | None = None

    model_config = ConfigDict(extra="allow")

    @field_validator("planned_loading_time")
    @classmethod
    def loading_time_as_utc(cls, value):
        return as_utc(value) if isinstance(value, datetime) else value

    def changes(self) -> dict:
        data = self.model_dump(exclude_unset=True)
        data.pop("version", None)
        return data


class PlanOut(BaseModel):
    id: str
    supplier_id: str
    destination_id: str
    hub_id: str | None
    unit_count: int
    planned_loading_time: datetime
    estimated_hub_time: datetime | None
    estimated_delivery_time: datetime | None
    status: PlanStatus
    version: int
    notes: str | None
    created_by: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class JourneyStageOut(BaseModel):
    stage: JourneyStageName
    description: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int

    model_config = {"from_attributes": True}


class JourneyTimelineOut(BaseModel):
    stages: list[JourneyStageOut]
    total_duration_minutes: int
    start_time: datetime | None
    end_time: datetime | None

    model_config = {"from_attributes": True}


class CostBreakdownOut(BaseModel):
    base_carrier_cost: float
    hub_fee: float
    subtotal: float
    tax: float
    total: float


class FieldLockOut(BaseModel):
    field: str
    reason: str
    blocker_status: str
    unlock_hint: str

    model_config = {"from_attributes": True}


class PlanDetail(PlanOut):
    """Plan plus its derived views: timeline, costs and field locks."""
    timeline: JourneyTimelineOut
    costs: CostBreakdownOut | None = None
    locked_fields: list[FieldLockOut] = []


class ProposalOut(BaseModel):
    carrier_id: str
    carrier_name: str
    capacity: int
    cost_per_unit: float
    total_cost: float
    estimated_eta: datetime
    destination_id: str

    model_config = {"from_attributes": True}


class ModificationOut(BaseModel):
    plan: PlanOut
    changed_fields: list[str]
    re_proposed: bool
    proposals: list[ProposalOut]

    model_config = {"from_attributes": True}


class TransitionRequest(BaseModel):
    status: PlanStatus
    version: int = Field(..., ge=1)


class ProposeRequest(BaseModel):
    version: int = Field(..., ge=1)
    carrier_id: str | None = None


class PlanPageOut(BaseModel):
    """One page of the caller's plans."""
    items: list[PlanOut]
    total: int
    page: int
    limit: int
