"""A haulier that can be proposed for a transport plan.

``transit_hours`` is the carrier's service-tier offset: the ETA quoted
in a proposal is the planned loading time plus this many hours.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from freightlink.database import Base
from freightlink.utils.clock import utcnow


class Carrier(Base):
    __tablename__ = "carriers"

    # Same id as the carrier's user account
    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)  # units per trip
    cost_per_unit: Mapped[float] = mapped_column(Float, nullable=False)
    transit_hours: Mapped[float] = mapped_column(Float, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
