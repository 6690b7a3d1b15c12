"""Plan catalogue and per-plan entitlements.

Single source of truth for what each billing plan allows during background
audits. Unknown plans are treated as ``free``.
"""

from dataclasses import dataclass
from enum import StrEnum


class Plan(StrEnum):
    FREE = "free"
    STARTER = "starter"
    GROWTH = "growth"
    SCALE = "scale"


PAID_PLANS: frozenset[str] = frozenset({Plan.STARTER, Plan.GROWTH, Plan.SCALE})

# Plan assigned when a completed checkout carries no usable plan information.
DEFAULT_PAID_PLAN = Plan.STARTER


@dataclass(frozen=True)
class PlanLimits:
    max_guests: int | None  # None = unlimited
    can_send_alerts: bool


PLAN_LIMITS: dict[str, PlanLimits] = {
    Plan.FREE:    PlanLimits(max_guests=None, can_send_alerts=False),
    Plan.STARTER: PlanLimits(max_guests=500,  can_send_alerts=True),
    Plan.GROWTH:  PlanLimits(max_guests=5000, can_send_alerts=True),
    Plan.SCALE:   PlanLimits(max_guests=None, can_send_alerts=True),
}


def get_limits(plan: str) -> PlanLimits:
    return PLAN_LIMITS.get(plan, PLAN_LIMITS[Plan.FREE])


def can_send_alerts(plan: str, guest_count: int) -> bool:
    """Whether DM alerts may be sent for a workspace of this size on this plan."""
    limits = get_limits(plan)
    if not limits.can_send_alerts:
        return False
    return limits.max_guests is None or guest_count <= limits.max_guests
