"""Carrier trip router.

Endpoints:
    POST /{trip_id}/accept   Carrier accepts its proposed trip
    POST /{trip_id}/refuse   Carrier refuses; opens a REFUSAL incident

The caller (X-User-Id) must be the trip's carrier.
"""

from fastapi import APIRouter, Depends

from freightlink.deps import get_current_user_id, get_notifier, get_repository
from freightlink.repository import Repository
from freightlink.schemas.trip import RefusalOut, RefuseRequest, TripOut
from freightlink.services.notifications import NotificationDispatcher
from freightlink.services.trips import accept_trip, refuse_trip

router = APIRouter()


@router.post("/{trip_id}/accept", response_model=TripOut)
async def accept(
    trip_id: str,
    repo: Repository = Depends(get_repository),
    carrier_id: str = Depends(get_current_user_id),
):
    return await accept_trip(repo, trip_id, carrier_id)


@router.post("/{trip_id}/refuse", response_model=RefusalOut)
async def refuse(
    trip_id: str,
    body: RefuseRequest | None = None,
    repo: Repository = Depends(get_repository),
    notifier: NotificationDispatcher = Depends(get_notifier),
    carrier_id: str = Depends(get_current_user_id),
):
    reason = body.reason if body else None
    result = await refuse_trip(repo, notifier, trip_id, carrier_id, reason)
    return RefusalOut.model_validate(result)
