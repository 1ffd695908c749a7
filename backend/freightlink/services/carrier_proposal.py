"""Carrier proposal generator.

Turns a list of candidate carriers (looked up by the repository:
active, enough capacity, free at the loading time) into priced,
ranked proposals.  Index 0 is always the cheapest; callers rely on it.

    total_cost    = unit_count * cost_per_unit
    estimated_eta = planned_loading_time + carrier tier transit offset
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from freightlink.utils.clock import as_utc

DEFAULT_PROPOSAL_LIMIT = 3

# Hub handling fee and tax applied on top of the carrier cost
HUB_FEE = 500
TAX_RATE = 0.20


@dataclass(frozen=True)
class CarrierCandidate:
    carrier_id: str
    carrier_name: str
    capacity: int
    cost_per_unit: float
    transit_hours: float

    @classmethod
    def from_model(cls, carrier) -> CarrierCandidate:
        return cls(
            carrier_id=carrier.id,
            carrier_name=carrier.name,
            capacity=carrier.capacity,
            cost_per_unit=carrier.cost_per_unit,
            transit_hours=carrier.transit_hours,
        )


@dataclass(frozen=True)
class CarrierProposal:
    carrier_id: str
    carrier_name: str
    capacity: int
    cost_per_unit: float
    total_cost: float
    estimated_eta: datetime
    destination_id: str


def propose_carriers(
    unit_count: int,
    planned_loading_time: datetime,
    destination_id: str,
    limit: int = DEFAULT_PROPOSAL_LIMIT,
    *,
    candidates: Iterable[CarrierCandidate],
) -> list[CarrierProposal]:
    """Price and rank candidates, cheapest first, at most ``limit`` entries.

    Candidates whose capacity is below ``unit_count`` are dropped.  Ties
    on cost go to the earlier ETA, then to carrier id, so the ranking is
    deterministic.
    """
    if limit < 1:
        raise ValueError("limit must be at least 1")

    loading = as_utc(planned_loading_time)
    proposals = [
        CarrierProposal(
            carrier_id=c.carrier_id,
            carrier_name=c.carrier_name,
            capacity=c.capacity,
            cost_per_unit=c.cost_per_unit,
            total_cost=unit_count * c.cost_per_unit,
            estimated_eta=loading + timedelta(hours=c.transit_hours),
            destination_id=destination_id,
        )
        for c in candidates
        if c.capacity >= unit_count
    ]
    proposals.sort(key=lambda p: (p.total_cost, p.estimated_eta, p.carrier_id))
    return proposals[:limit]


def calculate_cost_breakdown(unit_count: int, cost_per_unit: float) -> dict:
    """Carrier cost + hub fee + tax for a plan, in the lowest currency unit."""
    base = unit_count * cost_per_unit
    subtotal = base + HUB_FEE
    tax = round(subtotal * TAX_RATE)
    return {
        "base_carrier_cost": base,
        "hub_fee": HUB_FEE,
        "subtotal": subtotal,
        "tax": tax,
        "total": subtotal + tax,
    }
