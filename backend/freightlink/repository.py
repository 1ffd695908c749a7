"""Persistence for the domain services.

Services depend on the ``Repository`` protocol only; ``SqlRepository``
implements it on a request-scoped AsyncSession.  Writes to plans and
trips are conditioned on the caller's version:

    UPDATE transport_plans
       SET ..., version = version + 1
     WHERE id = :id AND version = :expected AND is_deleted = false

Zero rows updated means the row is gone (ResourceNotFoundError) or was
changed concurrently (ConflictError); nothing is written in either case.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Callable, Protocol

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from freightlink.database import AFTER_COMMIT
from freightlink.middleware.exceptions import ConflictError, ResourceNotFoundError
from freightlink.models.carrier import Carrier
from freightlink.models.incident import Incident, IncidentStatus, IncidentType
from freightlink.models.location import Location
from freightlink.models.plan import PlanStatus, TransportPlan
from freightlink.models.trip import Trip, TripStatus
from freightlink.services.carrier_proposal import CarrierCandidate

# Plan list orderings: sort key → (column attribute, descending)
PLAN_SORTS: dict[str, tuple[str, bool]] = {
    "created_at": ("created_at", True),
    "created_at_asc": ("created_at", False),
    "status": ("status", False),
    "eta": ("estimated_delivery_time", False),
    "unit_count": ("unit_count", True),
}
DEFAULT_PLAN_SORT = "created_at"

# A carrier is busy if it already loads another live plan within this window
CARRIER_BUSY_WINDOW = timedelta(hours=1)


class Repository(Protocol):
    async def get_plan(self, plan_id: str) -> TransportPlan | None: ...

    async def create_plan(self, data: dict[str, Any]) -> TransportPlan: ...

    async def update_plan(
        self, plan_id: str, patch: dict[str, Any], expected_version: int
    ) -> TransportPlan: ...

    async def list_plans_by_status(self, status: PlanStatus) -> list[TransportPlan]: ...

    async def list_plans(
        self,
        created_by: str,
        status: PlanStatus | None = None,
        sort: str = DEFAULT_PLAN_SORT,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[TransportPlan], int]: ...

    async def get_location(self, location_id: str) -> Location | None: ...

    async def get_trip(self, trip_id: str) -> Trip | None: ...

    async def create_trip(self, data: dict[str, Any]) -> Trip: ...

    async def list_trips(self, plan_id: str) -> list[Trip]: ...

    async def update_trip(
        self, trip_id: str, patch: dict[str, Any], expected_version: int
    ) -> Trip: ...

    async def find_open_incident(
        self, plan_id: str, incident_type: IncidentType
    ) -> Incident | None: ...

    async def find_incident(
        self, plan_id: str, incident_type: IncidentType, carrier_id: str | None = None
    ) -> Incident | None: ...

    async def create_incident(self, draft) -> Incident: ...

    async def list_incidents(
        self,
        plan_id: str | None = None,
        incident_type: IncidentType | None = None,
        status: IncidentStatus | None = None,
    ) -> list[Incident]: ...

    async def find_carrier_candidates(
        self, unit_count: int, loading_time: datetime, destination_id: str
    ) -> list[CarrierCandidate]: ...

    def atomic(self): ...

    def on_commit(self, callback: Callable[[], None]) -> None: ...


class SqlRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        """All writes inside commit together or roll back together (SAVEPOINT)."""
        async with self.db.begin_nested():
            yield

    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` after the session commits; it is dropped on rollback.

        ``freightlink.database.commit`` runs the queue.
        """
        self.db.info.setdefault(AFTER_COMMIT, []).append(callback)

    # ── Plans ────────────────────────────────────────────────

    async def get_plan(self, plan_id: str) -> TransportPlan | None:
        result = await self.db.execute(
            select(TransportPlan).where(
                TransportPlan.id == plan_id,
                TransportPlan.is_deleted == False,  # noqa: E712
            )
        )
        return result.scalar_one_or_none()

    async def create_plan(self, data: dict[str, Any]) -> TransportPlan:
        plan = TransportPlan(**data)
        self.db.add(plan)
        await self.db.flush()
        return plan

    async def update_plan(
        self, plan_id: str, patch: dict[str, Any], expected_version: int
    ) -> TransportPlan:
        values = {k: v for k, v in patch.items() if k != "version"}
        result = await self.db.execute(
            update(TransportPlan)
            .where(
                TransportPlan.id == plan_id,
                TransportPlan.version == expected_version,
                TransportPlan.is_deleted == False,  # noqa: E712
            )
            .values(**values, version=TransportPlan.version + 1)
            .returning(TransportPlan)
            .execution_options(populate_existing=True, synchronize_session=False)
        )
        plan = result.scalar_one_or_none()
        if plan is not None:
            return plan

        current = await self.get_plan(plan_id)
        if current is None:
            raise ResourceNotFoundError("Plan", plan_id)
        raise ConflictError(expected_version=expected_version, current_version=current.version)

    async def list_plans_by_status(self, status: PlanStatus) -> list[TransportPlan]:
        result = await self.db.execute(
            select(TransportPlan)
            .where(
                TransportPlan.status == status,
                TransportPlan.is_deleted == False,  # noqa: E712
            )
            .order_by(TransportPlan.estimated_delivery_time.asc())
        )
        return list(result.scalars().all())

    async def list_plans(
        self,
        created_by: str,
        status: PlanStatus | None = None,
        sort: str = DEFAULT_PLAN_SORT,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[TransportPlan], int]:
        """One page of a freighter's plans plus the total matching count."""
        conditions = [
            TransportPlan.created_by == created_by,
            TransportPlan.is_deleted == False,  # noqa: E712
        ]
        if status is not None:
            conditions.append(TransportPlan.status == status)

        column_name, descending = PLAN_SORTS.get(sort, PLAN_SORTS[DEFAULT_PLAN_SORT])
        column = getattr(TransportPlan, column_name)
        order = column.desc() if descending else column.asc()

        total = await self.db.scalar(
            select(func.count()).select_from(TransportPlan).where(*conditions)
        )
        result = await self.db.execute(
            select(TransportPlan)
            .where(*conditions)
            .order_by(order, TransportPlan.id.asc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def get_location(self, location_id: str) -> Location | None:
        result = await self.db.execute(
            select(Location).where(
                Location.id == location_id,
                Location.is_deleted == False,  # noqa: E712
            )
        )
        return result.scalar_one_or_none()

    # ── Trips ────────────────────────────────────────────────

    async def get_trip(self, trip_id: str) -> Trip | None:
        result = await self.db.execute(
            select(Trip).where(
                Trip.id == trip_id,
                Trip.is_deleted == False,  # noqa: E712
            )
        )
        return result.scalar_one_or_none()

    async def create_trip(self, data: dict[str, Any]) -> Trip:
        trip = Trip(**data)
        self.db.add(trip)
        await self.db.flush()
        return trip

    async def list_trips(self, plan_id: str) -> list[Trip]:
        result = await self.db.execute(
            select(Trip)
            .where(
                Trip.plan_id == plan_id,
                Trip.is_deleted == False,  # noqa: E712
            )
            .order_by(Trip.created_at.asc())
        )
        return list(result.scalars().all())

    async def update_trip(
        self, trip_id: str, patch: dict[str, Any], expected_version: int
    ) -> Trip:
        values = {k: v for k, v in patch.items() if k != "version"}
        result = await self.db.execute(
            update(Trip)
            .where(
                Trip.id == trip_id,
                Trip.version == expected_version,
                Trip.is_deleted == False,  # noqa: E712
            )
            .values(**values, version=Trip.version + 1)
            .returning(Trip)
            .execution_options(populate_existing=True, synchronize_session=False)
        )
        trip = result.scalar_one_or_none()
        if trip is not None:
            return trip

        current = await self.get_trip(trip_id)
        if current is None:
            raise ResourceNotFoundError("Trip", trip_id)
        raise ConflictError(expected_version=expected_version, current_version=current.version)

    # ── Incidents ────────────────────────────────────────────

    async def find_open_incident(
        self, plan_id: str, incident_type: IncidentType
    ) -> Incident | None:
        result = await self.db.execute(
            select(Incident)
            .where(
                Incident.plan_id == plan_id,
                Incident.type == incident_type,
                Incident.status == IncidentStatus.OPEN,
                Incident.is_deleted == False,  # noqa: E712
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_incident(
        self, plan_id: str, incident_type: IncidentType, carrier_id: str | None = None
    ) -> Incident | None:
        stmt = select(Incident).where(
            Incident.plan_id == plan_id,
            Incident.type == incident_type,
            Incident.is_deleted == False,  # noqa: E712
        )
        if carrier_id:
            stmt = stmt.where(Incident.carrier_id == carrier_id)
        result = await self.db.execute(stmt.order_by(Incident.created_at.desc()).limit(1))
        return result.scalar_one_or_none()

    async def create_incident(self, draft) -> Incident:
        incident = Incident(
            plan_id=draft.plan_id,
            type=draft.type,
            severity=draft.severity,
            description=draft.description,
            carrier_id=draft.carrier_id,
            warehouse_id=draft.warehouse_id,
            status=IncidentStatus.OPEN,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(incident)
                await self.db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                f"Open {draft.type.value} incident already exists for plan {draft.plan_id}"
            ) from exc
        return incident

    async def list_incidents(
        self,
        plan_id: str | None = None,
        incident_type: IncidentType | None = None,
        status: IncidentStatus | None = None,
    ) -> list[Incident]:
        stmt = select(Incident).where(Incident.is_deleted == False)  # noqa: E712
        if plan_id:
            stmt = stmt.where(Incident.plan_id == plan_id)
        if incident_type:
            stmt = stmt.where(Incident.type == incident_type)
        if status:
            stmt = stmt.where(Incident.status == status)
        result = await self.db.execute(stmt.order_by(Incident.created_at.desc()))
        return list(result.scalars().all())

    # ── Carriers ─────────────────────────────────────────────

    async def find_carrier_candidates(
        self, unit_count: int, loading_time: datetime, destination_id: str
    ) -> list[CarrierCandidate]:
        """Active carriers with enough capacity and no live trip near ``loading_time``."""
        busy = (
            select(Trip.carrier_id)
            .join(TransportPlan, TransportPlan.id == Trip.plan_id)
            .where(
                Trip.is_deleted == False,  # noqa: E712
                Trip.status != TripStatus.CANCELLED,
                and_(
                    TransportPlan.planned_loading_time > loading_time - CARRIER_BUSY_WINDOW,
                    TransportPlan.planned_loading_time < loading_time + CARRIER_BUSY_WINDOW,
                ),
            )
        )
        result = await self.db.execute(
            select(Carrier).where(
                Carrier.is_active == True,  # noqa: E712
                Carrier.capacity >= unit_count,
                Carrier.id.not_in(busy),
            )
        )
        return [CarrierCandidate.from_model(c) for c in result.scalars().all()]
