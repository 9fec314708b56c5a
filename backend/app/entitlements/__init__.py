"""Entitlement plans and the status rules that gate them."""

from .catalog import PLAN_CATALOG, PlanDefinition, get_plan_definition, plan_for_price_id, price_id_for_plan
from .models import (
    ENTITLING_STATUSES,
    PlanKey,
    SubscriptionStatus,
    is_entitling_status,
    next_entitlement_plan,
    normalize_plan,
    parse_status,
)

__all__ = [
    "ENTITLING_STATUSES",
    "PLAN_CATALOG",
    "PlanDefinition",
    "PlanKey",
    "SubscriptionStatus",
    "get_plan_definition",
    "is_entitling_status",
    "next_entitlement_plan",
    "normalize_plan",
    "parse_status",
    "plan_for_price_id",
    "price_id_for_plan",
]
