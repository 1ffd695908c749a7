"""Pydantic schemas for CMR (consignment note) submission."""

from pydantic import BaseModel

from freightlink.schemas.incident import IncidentOut


class CMRSubmit(BaseModel):
    plan_id: str
    # Negative counts are reported by the imbalance validator
    received_count: int


class CMRResultOut(BaseModel):
    plan_id: str
    planned_units: int
    actual_units: int
    imbalance_detected: bool
    incident: IncidentOut | None
    incident_created: bool

    model_config = {"from_attributes": True}
