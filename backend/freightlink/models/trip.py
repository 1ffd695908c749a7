"""Trip — one carrier's commitment to execute a transport plan.

Created PROPOSED when a plan is proposed to a carrier.  The carrier
answers exactly once: ACCEPTED or CANCELLED (refusal, with reason).
Repeating the same answer is a no-op.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean, DateTime, Enum as SAEnum, Float, ForeignKey, Integer, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from freightlink.database import Base
from freightlink.utils.clock import utcnow


class TripStatus(str, enum.Enum):
    PROPOSED = "PROPOSED"
    ACCEPTED = "ACCEPTED"
    CANCELLED = "CANCELLED"


class Trip(Base):
    __tablename__ = "trips"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    plan_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("transport_plans.id"), nullable=False, index=True
    )
    carrier_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("carriers.id"), nullable=False, index=True
    )

    # Snapshot of the proposal the trip was created from
    total_cost: Mapped[float | None] = mapped_column(Float)
    estimated_eta: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    status: Mapped[TripStatus] = mapped_column(
        SAEnum(TripStatus), default=TripStatus.PROPOSED, nullable=False, index=True
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    refused_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    refusal_reason: Mapped[str | None] = mapped_column(Text)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
