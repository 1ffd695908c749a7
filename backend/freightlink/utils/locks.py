"""Status locking — which plan fields are frozen, and how to unfreeze them.

``get_plan_locks`` returns a LockInfo describing which mutable fields
are locked under the plan's current status and why, without raising.
The caller (service or router) decides whether to block the request
based on which fields are being updated.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from freightlink.models.plan import PlanStatus
from freightlink.services.plan_modification import MUTABLE_FIELDS, can_modify_field


# ── Data structures ────────────────────────────────────────────


@dataclass
class FieldLock:
    """A single locked field with reason and unlock instructions."""
    field: str
    reason: str
    blocker_status: str  # plan status that holds the lock
    unlock_hint: str


@dataclass
class LockInfo:
    """Lock state for a plan.  Empty locked_fields means nothing locked."""
    locked_fields: dict[str, FieldLock] = field(default_factory=dict)

    @property
    def is_locked(self) -> bool:
        return len(self.locked_fields) > 0

    def check_update(self, updating_fields) -> FieldLock | None:
        """Return the first FieldLock that conflicts, or None."""
        for f in updating_fields:
            if f in self.locked_fields:
                return self.locked_fields[f]
        return None

    def locked_field_names(self) -> list[str]:
        return list(self.locked_fields.keys())


# ── Plan locks (status-based, no DB query needed) ──────────────


_LOCK_REASONS: dict[PlanStatus, tuple[str, str]] = {
    PlanStatus.DRAFT: ("", ""),
    PlanStatus.PROPOSED: (
        "plan has been proposed to a carrier",
        "Cancel the plan and create a new draft.",
    ),
    PlanStatus.ACCEPTED: (
        "a carrier has accepted the plan",
        "Cancel the plan and create a new draft.",
    ),
    PlanStatus.IN_TRANSIT: (
        "shipment is in transit",
        "Wait for delivery; in-transit plans cannot be changed.",
    ),
    PlanStatus.DELIVERED: (
        "plan is delivered",
        "Delivered plans are final.",
    ),
    PlanStatus.CANCELLED: (
        "plan is cancelled",
        "Create a new draft plan.",
    ),
}


def get_plan_locks(plan) -> LockInfo:
    """Lock every mutable field the plan's status does not allow writing."""
    info = LockInfo()
    status = PlanStatus(plan.status)
    reason, hint = _LOCK_REASONS[status]

    for name in MUTABLE_FIELDS:
        if can_modify_field(name, status):
            continue
        info.locked_fields[name] = FieldLock(
            field=name,
            reason=f"Cannot edit {name}: {reason}",
            blocker_status=status.value,
            unlock_hint=hint,
        )
    return info
