"""TransportPlan — the aggregate root for a supplier → store shipment.

A plan is created in DRAFT by a freighter and afterwards changed only
through the modification governor (field values) and the lifecycle
state machine (status).  Every committed write bumps ``version`` by one;
writers must present the version they read.

Lifecycle:  DRAFT → PROPOSED → ACCEPTED → IN_TRANSIT → DELIVERED
            DRAFT | PROPOSED | ACCEPTED → CANCELLED
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean, DateTime, Enum as SAEnum, ForeignKey, Integer, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from freightlink.database import Base
from freightlink.utils.clock import utcnow


class PlanStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PROPOSED = "PROPOSED"
    ACCEPTED = "ACCEPTED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class TransportPlan(Base):
    __tablename__ = "transport_plans"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # ── Route ────────────────────────────────────────────────
    supplier_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("locations.id"), nullable=False, index=True
    )
    destination_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("locations.id"), nullable=False, index=True
    )
    # None = direct delivery, no hub stop
    hub_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("locations.id"))

    # ── Shipment ─────────────────────────────────────────────
    unit_count: Mapped[int] = mapped_column(Integer, nullable=False)  # 1..1000

    # ── Schedule (UTC) ───────────────────────────────────────
    planned_loading_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    # Derived by the temporal validator, never written directly
    estimated_hub_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    estimated_delivery_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), index=True
    )

    # ── Status / concurrency ─────────────────────────────────
    status: Mapped[PlanStatus] = mapped_column(
        SAEnum(PlanStatus), default=PlanStatus.DRAFT, nullable=False, index=True
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # ── Metadata ─────────────────────────────────────────────
    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str] = mapped_column(String(36), nullable=False, index=True)  # freighter user_id
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
