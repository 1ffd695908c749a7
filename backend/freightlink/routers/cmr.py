"""CMR router — warehouse records the units actually received."""

from fastapi import APIRouter, Depends

from freightlink.deps import get_current_user_id, get_notifier, get_repository
from freightlink.repository import Repository
from freightlink.schemas.cmr import CMRResultOut, CMRSubmit
from freightlink.services.cmr import submit_cmr
from freightlink.services.notifications import NotificationDispatcher

router = APIRouter()


@router.post("/submit", response_model=CMRResultOut)
async def submit(
    body: CMRSubmit,
    repo: Repository = Depends(get_repository),
    notifier: NotificationDispatcher = Depends(get_notifier),
    user_id: str = Depends(get_current_user_id),
):
    result = await submit_cmr(
        repo, notifier, body.plan_id, body.received_count, warehouse_id=user_id,
    )
    return CMRResultOut.model_validate(result)
