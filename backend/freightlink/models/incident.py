"""An anomaly recorded against a transport plan.

At most one OPEN incident exists per (plan_id, type); the partial unique
index below backs that rule in the database.  Incidents are opened by
the incident policy and resolved by an operator.

Lifecycle:  OPEN → RESOLVED
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean, DateTime, Enum as SAEnum, ForeignKey, Index, String, Text, text,
)
from sqlalchemy.orm import Mapped, mapped_column

from freightlink.database import Base
from freightlink.utils.clock import utcnow


class IncidentType(str, enum.Enum):
    REFUSAL = "REFUSAL"
    DELAY = "DELAY"
    IMBALANCE = "IMBALANCE"


class IncidentStatus(str, enum.Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"


class Incident(Base):
    __tablename__ = "incidents"
    __table_args__ = (
        Index(
            "uq_incidents_open_plan_type",
            "plan_id", "type",
            unique=True,
            postgresql_where=text("status = 'OPEN' AND is_deleted = false"),
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    plan_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("transport_plans.id"), nullable=False, index=True
    )

    # ── Classification ───────────────────────────────────────
    type: Mapped[IncidentType] = mapped_column(SAEnum(IncidentType), nullable=False, index=True)
    # critical | high | medium | low
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # ── Who reported it ──────────────────────────────────────
    carrier_id: Mapped[str | None] = mapped_column(String(36))    # REFUSAL
    warehouse_id: Mapped[str | None] = mapped_column(String(36))  # IMBALANCE

    # ── Status ───────────────────────────────────────────────
    status: Mapped[IncidentStatus] = mapped_column(
        SAEnum(IncidentStatus), default=IncidentStatus.OPEN, nullable=False, index=True
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    resolved_by: Mapped[str | None] = mapped_column(String(36))

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
