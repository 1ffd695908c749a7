"""Transport plan router.

Endpoints:
    GET   /                     The caller's plans (status filter, sort, paging)
    POST  /                     Create a DRAFT plan
    GET   /{plan_id}            Plan detail: schedule, timeline, costs, locked fields
    PATCH /{plan_id}            Modify fields (body carries the version read)
    POST  /{plan_id}/propose    Offer the plan to a carrier (DRAFT → PROPOSED)
    POST  /{plan_id}/transition Move the plan through its lifecycle
    GET   /{plan_id}/proposals  Fresh carrier proposals for the current values

Every per-plan endpoint is limited to the freighter who created the plan.
"""

from fastapi import APIRouter, Depends, Query, status

from freightlink.deps import get_current_user_id, get_repository
from freightlink.models.plan import PlanStatus
from freightlink.repository import DEFAULT_PLAN_SORT, Repository
from freightlink.schemas.plan import (
    CostBreakdownOut,
    FieldLockOut,
    JourneyTimelineOut,
    ModificationOut,
    PlanCreate,
    PlanDetail,
    PlanModify,
    PlanOut,
    PlanPageOut,
    ProposalOut,
    ProposeRequest,
    TransitionRequest,
)
from freightlink.schemas.trip import ProposeOut
from freightlink.services.carrier_proposal import calculate_cost_breakdown
from freightlink.services.plans import (
    DEFAULT_PAGE_SIZE,
    change_plan_status,
    create_draft_plan,
    generate_proposals,
    get_owned_plan,
    list_plans,
    modify_plan,
    propose_plan,
)
from freightlink.services.temporal import build_journey_timeline
from freightlink.utils.locks import get_plan_locks

router = APIRouter()


@router.get("/", response_model=PlanPageOut)
async def list_my_plans(
    status: PlanStatus | None = Query(None),
    sort: str = Query(DEFAULT_PLAN_SORT),
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    repo: Repository = Depends(get_repository),
    user_id: str = Depends(get_current_user_id),
):
    result = await list_plans(
        repo, user_id, status=status, sort=sort, page=page, limit=limit,
    )
    return PlanPageOut(
        items=[PlanOut.model_validate(p) for p in result.plans],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@router.post("/", response_model=PlanOut, status_code=status.HTTP_201_CREATED)
async def create_plan(
    body: PlanCreate,
    repo: Repository = Depends(get_repository),
    user_id: str = Depends(get_current_user_id),
):
    return await create_draft_plan(repo, body.model_dump(), created_by=user_id)


@router.get("/{plan_id}", response_model=PlanDetail)
async def get_plan(
    plan_id: str,
    repo: Repository = Depends(get_repository),
    user_id: str = Depends(get_current_user_id),
):
    plan = await get_owned_plan(repo, plan_id, user_id)

    # Costs are quoted against the cheapest carrier currently available
    cheapest = await generate_proposals(repo, plan, limit=1)
    costs = None
    if cheapest:
        costs = CostBreakdownOut(
            **calculate_cost_breakdown(plan.unit_count, cheapest[0].cost_per_unit)
        )

    return PlanDetail(
        **PlanOut.model_validate(plan).model_dump(),
        timeline=JourneyTimelineOut.model_validate(build_journey_timeline(plan)),
        costs=costs,
        locked_fields=[
            FieldLockOut.model_validate(lock)
            for lock in get_plan_locks(plan).locked_fields.values()
        ],
    )


@router.patch("/{plan_id}", response_model=ModificationOut)
async def update_plan(
    plan_id: str,
    body: PlanModify,
    repo: Repository = Depends(get_repository),
    user_id: str = Depends(get_current_user_id),
):
    await get_owned_plan(repo, plan_id, user_id)
    result = await modify_plan(repo, plan_id, body.changes(), body.version)
    return ModificationOut.model_validate(result)


@router.post("/{plan_id}/propose", response_model=ProposeOut)
async def propose(
    plan_id: str,
    body: ProposeRequest,
    repo: Repository = Depends(get_repository),
    user_id: str = Depends(get_current_user_id),
):
    await get_owned_plan(repo, plan_id, user_id)
    result = await propose_plan(repo, plan_id, body.version, body.carrier_id)
    return ProposeOut.model_validate(result)


@router.post("/{plan_id}/transition", response_model=PlanOut)
async def transition(
    plan_id: str,
    body: TransitionRequest,
    repo: Repository = Depends(get_repository),
    user_id: str = Depends(get_current_user_id),
):
    await get_owned_plan(repo, plan_id, user_id)
    return await change_plan_status(repo, plan_id, body.status, body.version)


@router.get("/{plan_id}/proposals", response_model=list[ProposalOut])
async def list_proposals(
    plan_id: str,
    limit: int | None = Query(None, ge=1, le=20),
    repo: Repository = Depends(get_repository),
    user_id: str = Depends(get_current_user_id),
):
    plan = await get_owned_plan(repo, plan_id, user_id)
    return await generate_proposals(repo, plan, limit=limit)
