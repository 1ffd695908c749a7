"""Pydantic schemas for incident API responses."""

from datetime import datetime

from pydantic import BaseModel

from freightlink.models.incident import IncidentStatus, IncidentType


class IncidentOut(BaseModel):
    """Single incident."""
    id: str
    plan_id: str
    type: IncidentType
    severity: str
    description: str
    carrier_id: str | None
    warehouse_id: str | None
    status: IncidentStatus
    resolved_at: datetime | None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
