"""Domain models for plan entitlements and subscription status gating."""
from __future__ import annotations

from enum import Enum
from typing import Optional



class PlanKey(str, Enum):
    """Canonical identifiers for entitlement plans.

    ``PENDING`` is the no-access sentinel written whenever a subscription is
    not in good standing or the purchased plan cannot be recognized.
    """

    PENDING = "pending"
    STARTER = "starter"
    PRO = "pro"
    BUSINESS = "business"

    @property
    def is_paid(self) -> bool:
        return self is not PlanKey.PENDING


class SubscriptionStatus(str, Enum):
    """Lifecycle state reported by the payment provider for a subscription."""

    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAUSED = "paused"


ENTITLING_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING})

_PLAN_ALIASES = {
    "growth": PlanKey.PRO,
    "professional": PlanKey.PRO,
    "biz": PlanKey.BUSINESS,
}


def normalize_plan(value: object) -> PlanKey:
    """Map an arbitrary plan string onto the fixed tier enumeration.

    Unrecognized input resolves to :attr:`PlanKey.PENDING` instead of being
    trusted.
    """

    if isinstance(value, PlanKey):
        return value
    if value is None:
        return PlanKey.PENDING
    candidate = str(value).strip().lower()
    if not candidate:
        return PlanKey.PENDING
    if candidate in _PLAN_ALIASES:
        return _PLAN_ALIASES[candidate]
    try:
        return PlanKey(candidate)
    except ValueError:
        return PlanKey.PENDING


def parse_status(value: object) -> Optional[SubscriptionStatus]:
    """Return the matching status, or ``None`` when the provider sent something unknown."""

    if isinstance(value, SubscriptionStatus):
        return value
    if value is None:
        return None
    # Stripe spells it "canceled"; older payloads and dashboards use "cancelled".
    candidate = str(value).strip().lower().replace("cancelled", "canceled")
    try:
        return SubscriptionStatus(candidate)
    except ValueError:
        return None


def is_entitling_status(status: Optional[SubscriptionStatus]) -> bool:
    return status in ENTITLING_STATUSES


def next_entitlement_plan(status: Optional[SubscriptionStatus], plan: object) -> PlanKey:
    """Compute the profile plan implied by a subscription status and plan."""

    if not is_entitling_status(status):
        return PlanKey.PENDING
    return normalize_plan(plan)
