"""Pytest configuration and fixtures for FreightLink tests.

Most tests run in memory: an InMemoryRepository stands in for
SqlRepository, and a RecordingPublisher for Redis.  API tests drive the
real FastAPI app through httpx with dependency overrides.

SqlRepository itself is tested against a real PostgreSQL database
(`db_session`), one rolled-back transaction per test.
"""

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from freightlink.config import settings
from freightlink.database import Base
from freightlink.deps import get_notifier, get_repository
from freightlink.main import app
from freightlink.middleware.exceptions import ConflictError, ResourceNotFoundError
from freightlink.models.carrier import Carrier
from freightlink.models.incident import Incident, IncidentStatus
from freightlink.models.location import Location, LocationType
from freightlink.models.plan import PlanStatus, TransportPlan
from freightlink.models.trip import Trip, TripStatus
from freightlink.repository import PLAN_SORTS
from freightlink.services.carrier_proposal import CarrierCandidate
from freightlink.services.notifications import NotificationDispatcher
from freightlink.utils.clock import as_utc, utcnow

FREIGHTER_ID = "freighter-1"
WAREHOUSE_ID = "warehouse-1"


# ── In-memory repository ─────────────────────────────────────────


def _columns(obj) -> dict:
    return {name: getattr(obj, name) for name in obj.__table__.columns.keys()}


class InMemoryRepository:
    """Dict-backed implementation of the Repository protocol."""

    def __init__(self):
        self.locations: dict[str, Location] = {}
        self.carriers: dict[str, Carrier] = {}
        self.plans: dict[str, TransportPlan] = {}
        self.trips: dict[str, Trip] = {}
        self.incidents: dict[str, Incident] = {}
        self._seq = 0
        # Set to an exception to make the next create_incident fail
        self.fail_next_incident: Exception | None = None
        self.after_commit: list = []

    def _next_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}-{self._seq}"

    def _tables(self):
        return (self.locations, self.carriers, self.plans, self.trips, self.incidents)

    @asynccontextmanager
    async def atomic(self):
        snapshot = [
            {key: (obj, _columns(obj)) for key, obj in table.items()}
            for table in self._tables()
        ]
        try:
            yield
        except BaseException:
            for table, saved in zip(self._tables(), snapshot):
                table.clear()
                for key, (obj, values) in saved.items():
                    for name, value in values.items():
                        setattr(obj, name, value)
                    table[key] = obj
            raise

    def on_commit(self, callback):
        self.after_commit.append(callback)

    def commit(self):
        """What the request session does on success: run the after-commit queue."""
        callbacks, self.after_commit = self.after_commit, []
        for callback in callbacks:
            callback()

    def rollback(self):
        self.after_commit = []

    # ── Seeding helpers ──────────────────────────────────────

    def add_location(self, location_id: str, location_type: LocationType) -> Location:
        location = Location(
            id=location_id,
            name=location_id.title(),
            type=location_type,
            address=None,
            latitude=None,
            longitude=None,
            is_deleted=False,
            created_at=utcnow(),
        )
        self.locations[location_id] = location
        return location

    def add_carrier(
        self,
        carrier_id: str,
        capacity: int,
        cost_per_unit: float,
        transit_hours: float = 6,
        is_active: bool = True,
    ) -> Carrier:
        carrier = Carrier(
            id=carrier_id,
            name=carrier_id.title(),
            capacity=capacity,
            cost_per_unit=cost_per_unit,
            transit_hours=transit_hours,
            is_active=is_active,
            created_at=utcnow(),
        )
        self.carriers[carrier_id] = carrier
        return carrier

    def add_plan(self, **overrides) -> TransportPlan:
        loading = overrides.pop("planned_loading_time", utcnow() + timedelta(hours=24))
        values = {
            "id": self._next_id("plan"),
            "supplier_id": "supplier-1",
            "destination_id": "store-1",
            "hub_id": "hub-1",
            "unit_count": 100,
            "planned_loading_time": loading,
            "estimated_hub_time": loading + timedelta(hours=2),
            "estimated_delivery_time": loading + timedelta(hours=6),
            "status": PlanStatus.DRAFT,
            "version": 1,
            "notes": None,
            "created_by": FREIGHTER_ID,
            "is_deleted": False,
            "created_at": utcnow(),
            "updated_at": utcnow(),
        }
        values.update(overrides)
        plan = TransportPlan(**values)
        self.plans[plan.id] = plan
        return plan

    def add_trip(self, plan_id: str, carrier_id: str, **overrides) -> Trip:
        values = {
            "id": self._next_id("trip"),
            "plan_id": plan_id,
            "carrier_id": carrier_id,
            "total_cost": None,
            "estimated_eta": None,
            "status": TripStatus.PROPOSED,
            "version": 1,
            "accepted_at": None,
            "refused_at": None,
            "refusal_reason": None,
            "is_deleted": False,
            "created_at": utcnow(),
            "updated_at": utcnow(),
        }
        values.update(overrides)
        trip = Trip(**values)
        self.trips[trip.id] = trip
        return trip

    # ── Plans ────────────────────────────────────────────────

    async def get_plan(self, plan_id):
        plan = self.plans.get(plan_id)
        return plan if plan is not None and not plan.is_deleted else None

    async def create_plan(self, data):
        return self.add_plan(**data)

    async def update_plan(self, plan_id, patch, expected_version):
        plan = await self.get_plan(plan_id)
        if plan is None:
            raise ResourceNotFoundError("Plan", plan_id)
        if plan.version != expected_version:
            raise ConflictError(expected_version=expected_version, current_version=plan.version)
        for name, value in patch.items():
            if name != "version":
                setattr(plan, name, value)
        plan.version += 1
        plan.updated_at = utcnow()
        return plan

    async def list_plans_by_status(self, status):
        return [
            p for p in self.plans.values()
            if not p.is_deleted and PlanStatus(p.status) is PlanStatus(status)
        ]

    async def list_plans(self, created_by, status=None, sort="created_at", offset=0, limit=20):
        column, descending = PLAN_SORTS[sort]
        matching = [
            p for p in self.plans.values()
            if not p.is_deleted
            and p.created_by == created_by
            and (status is None or PlanStatus(p.status) is PlanStatus(status))
        ]

        def key(plan):
            value = getattr(plan, column)
            # Postgres orders enums by declaration
            return list(PlanStatus).index(PlanStatus(value)) if column == "status" else value

        # Stable sorts: id ascending breaks ties, as in SqlRepository
        matching.sort(key=lambda p: p.id)
        matching.sort(key=key, reverse=descending)
        return matching[offset:offset + limit], len(matching)

    async def get_location(self, location_id):
        location = self.locations.get(location_id)
        return location if location is not None and not location.is_deleted else None

    # ── Trips ────────────────────────────────────────────────

    async def get_trip(self, trip_id):
        trip = self.trips.get(trip_id)
        return trip if trip is not None and not trip.is_deleted else None

    async def create_trip(self, data):
        return self.add_trip(**data)

    async def list_trips(self, plan_id):
        return [t for t in self.trips.values() if t.plan_id == plan_id and not t.is_deleted]

    async def update_trip(self, trip_id, patch, expected_version):
        trip = await self.get_trip(trip_id)
        if trip is None:
            raise ResourceNotFoundError("Trip", trip_id)
        if trip.version != expected_version:
            raise ConflictError(expected_version=expected_version, current_version=trip.version)
        for name, value in patch.items():
            if name != "version":
                setattr(trip, name, value)
        trip.version += 1
        trip.updated_at = utcnow()
        return trip

    # ── Incidents ────────────────────────────────────────────

    def open_incidents(self, plan_id=None, incident_type=None) -> list[Incident]:
        return [
            i for i in self.incidents.values()
            if i.status == IncidentStatus.OPEN
            and not i.is_deleted
            and (plan_id is None or i.plan_id == plan_id)
            and (incident_type is None or i.type == incident_type)
        ]

    async def find_open_incident(self, plan_id, incident_type):
        found = self.open_incidents(plan_id, incident_type)
        return found[0] if found else None

    async def find_incident(self, plan_id, incident_type, carrier_id=None):
        for incident in reversed(list(self.incidents.values())):
            if (
                incident.plan_id == plan_id
                and incident.type == incident_type
                and not incident.is_deleted
                and (carrier_id is None or incident.carrier_id == carrier_id)
            ):
                return incident
        return None

    async def create_incident(self, draft):
        if self.fail_next_incident is not None:
            exc, self.fail_next_incident = self.fail_next_incident, None
            raise exc
        # Mirrors the partial unique index on (plan_id, type) WHERE status = 'OPEN'
        if self.open_incidents(draft.plan_id, draft.type):
            raise ConflictError(f"Open {draft.type.value} incident already exists")
        incident = Incident(
            id=self._next_id("incident"),
            plan_id=draft.plan_id,
            type=draft.type,
            severity=draft.severity,
            description=draft.description,
            carrier_id=draft.carrier_id,
            warehouse_id=draft.warehouse_id,
            status=IncidentStatus.OPEN,
            resolved_at=None,
            resolved_by=None,
            is_deleted=False,
            created_at=utcnow(),
        )
        self.incidents[incident.id] = incident
        return incident

    async def list_incidents(self, plan_id=None, incident_type=None, status=None):
        return [
            i for i in self.incidents.values()
            if not i.is_deleted
            and (plan_id is None or i.plan_id == plan_id)
            and (incident_type is None or i.type == incident_type)
            and (status is None or i.status == status)
        ]

    # ── Carriers ─────────────────────────────────────────────

    async def find_carrier_candidates(self, unit_count, loading_time, destination_id):
        window = timedelta(hours=1)
        busy = set()
        for trip in self.trips.values():
            if trip.is_deleted or trip.status == TripStatus.CANCELLED:
                continue
            plan = self.plans.get(trip.plan_id)
            if plan is not None and abs(
                as_utc(plan.planned_loading_time) - as_utc(loading_time)
            ) < window:
                busy.add(trip.carrier_id)
        return [
            CarrierCandidate.from_model(c)
            for c in self.carriers.values()
            if c.is_active and c.capacity >= unit_count and c.id not in busy
        ]


# ── Publishers ───────────────────────────────────────────────────


class RecordingPublisher:
    def __init__(self):
        self.events = []
        self.closed = False

    async def publish(self, event, target_user_ids):
        self.events.append((event, list(target_user_ids)))

    async def close(self):
        self.closed = True


class FailingPublisher(RecordingPublisher):
    async def publish(self, event, target_user_ids):
        raise ConnectionError("redis is down")


# ── Fixtures ─────────────────────────────────────────────────────


@pytest.fixture
def repo() -> InMemoryRepository:
    """Repository seeded with a route network and a few carriers."""
    repo = InMemoryRepository()
    repo.add_location("supplier-1", LocationType.SUPPLIER)
    repo.add_location("hub-1", LocationType.HUB)
    repo.add_location("store-1", LocationType.STORE)
    repo.add_location("store-2", LocationType.STORE)
    repo.add_carrier("carrier-cheap", capacity=500, cost_per_unit=40, transit_hours=8)
    repo.add_carrier("carrier-mid", capacity=200, cost_per_unit=45, transit_hours=6)
    repo.add_carrier("carrier-fast", capacity=1000, cost_per_unit=60, transit_hours=4)
    repo.add_carrier("carrier-small", capacity=10, cost_per_unit=5, transit_hours=6)
    repo.add_carrier("carrier-retired", capacity=1000, cost_per_unit=1, is_active=False)
    return repo


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def notifier(publisher) -> NotificationDispatcher:
    return NotificationDispatcher(publisher)


@pytest_asyncio.fixture
async def client(repo, notifier) -> AsyncGenerator[AsyncClient, None]:
    """Test client with the repository and notifier overridden.

    Like the request session, the repository "commits" once the endpoint
    has succeeded and drops queued notifications when it raised.
    """

    async def override_get_repository():
        try:
            yield repo
            repo.commit()
        except Exception:
            repo.rollback()
            raise

    app.dependency_overrides[get_repository] = override_get_repository
    app.dependency_overrides[get_notifier] = lambda: notifier

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def freighter_headers() -> dict:
    return {"X-User-Id": FREIGHTER_ID}


# ── Test Database ────────────────────────────────────────────────


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Session on the freightlink_test database, rolled back after each test.

    The schema is created inside the outer transaction, so nothing
    persists.  Session commits release a SAVEPOINT instead of committing.
    Skips when the test database is unreachable.
    """
    url = make_url(settings.database_url)
    url = url.set(database=f"{url.database}_test")
    engine = create_async_engine(url, echo=False, poolclass=NullPool)

    try:
        conn = await engine.connect()
    except (OSError, DBAPIError) as exc:
        await engine.dispose()
        pytest.skip(f"Test database unavailable: {exc}")

    transaction = await conn.begin()
    await conn.run_sync(Base.metadata.create_all)
    session = AsyncSession(
        bind=conn, expire_on_commit=False, join_transaction_mode="create_savepoint",
    )

    yield session

    await session.close()
    await transaction.rollback()
    await conn.close()
    await engine.dispose()


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "integration: Integration tests")
