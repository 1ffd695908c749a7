"""Aggregate model imports for Alembic auto-detection."""

from freightlink.models.location import Location, LocationType  # noqa: F401
from freightlink.models.carrier import Carrier  # noqa: F401
from freightlink.models.plan import PlanStatus, TransportPlan  # noqa: F401
from freightlink.models.trip import Trip, TripStatus  # noqa: F401
from freightlink.models.incident import Incident, IncidentStatus, IncidentType  # noqa: F401
