"""Incident router: read-only list with filters."""

from fastapi import APIRouter, Depends, Query

from freightlink.deps import get_repository
from freightlink.models.incident import IncidentStatus, IncidentType
from freightlink.repository import Repository
from freightlink.schemas.incident import IncidentOut

router = APIRouter()


@router.get("/", response_model=list[IncidentOut])
async def list_incidents(
    plan_id: str | None = Query(None),
    type: IncidentType | None = Query(None),
    status: IncidentStatus | None = Query(None),
    repo: Repository = Depends(get_repository),
):
    return await repo.list_incidents(plan_id=plan_id, incident_type=type, status=status)
