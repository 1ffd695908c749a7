"""Imbalance detector: planned vs. actually received unit counts.

Used when a warehouse submits a CMR (consignment note).  Detection is a
plain boolean; opening the IMBALANCE incident is the incident policy's
job.

Thresholds:
    - IMBALANCE_TOLERANCE: units of difference tolerated before flagging
"""

from dataclasses import dataclass
from typing import Literal

IMBALANCE_TOLERANCE = 1


def detect_imbalance(
    planned_units: int,
    actual_units: int,
    tolerance: int = IMBALANCE_TOLERANCE,
) -> bool:
    """True iff |actual - planned| > tolerance."""
    return abs(actual_units - planned_units) > tolerance


@dataclass(frozen=True)
class ImbalanceDetails:
    difference: int              # always >= 0
    percentage_difference: float  # signed, relative to planned, 2 decimals
    direction: Literal["shortage", "surplus"]


def calculate_imbalance_details(planned_units: int, actual_units: int) -> ImbalanceDetails:
    """Quantify the discrepancy.  ``planned_units`` must be non-zero
    (see validate_unit_counts)."""
    delta = actual_units - planned_units
    return ImbalanceDetails(
        difference=abs(delta),
        percentage_difference=round(delta / planned_units * 100, 2),
        direction="shortage" if delta < 0 else "surplus",
    )


def generate_imbalance_description(planned_units: int, actual_units: int) -> str:
    """Human-readable incident description.

    Consumers parse this text: it always contains ``Planned: <n>``,
    ``Actual: <n>``, ``Difference: <n>`` followed by "less"/"more", and
    the percentage.
    """
    details = calculate_imbalance_details(planned_units, actual_units)
    word = "less" if details.direction == "shortage" else "more"
    return (
        f"Unit count mismatch. Planned: {planned_units}, Actual: {actual_units}, "
        f"Difference: {details.difference} unit(s) {word} "
        f"({details.percentage_difference}%)"
    )


def _is_count(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_unit_counts(planned_units, actual_units) -> list[str]:
    """Sanity-check both counts.  Empty list means valid."""
    errors: list[str] = []

    if not _is_count(planned_units) or planned_units < 0:
        errors.append("Planned units must be a non-negative integer")

    if not _is_count(actual_units) or actual_units < 0:
        errors.append("Actual units must be a non-negative integer")

    # Percentage calculation divides by planned
    if _is_count(planned_units) and planned_units == 0:
        errors.append("Cannot detect imbalance: planned units is 0")

    return errors


def get_imbalance_severity(percentage_difference: float) -> str:
    """Map a percentage difference to low | medium | high."""
    pct = abs(percentage_difference)
    if pct <= 5:
        return "low"
    if pct <= 10:
        return "medium"
    return "high"
