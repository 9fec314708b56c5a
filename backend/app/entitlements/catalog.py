"""Static catalog definitions for paid plans."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from .models import PlanKey


@dataclass(frozen=True)
class PlanDefinition:
    """Describes a purchasable plan and the handbook features it unlocks."""

    key: PlanKey
    display_name: str
    ai_generation: bool = False


PLAN_CATALOG: Dict[PlanKey, PlanDefinition] = {
    PlanKey.PENDING: PlanDefinition(
        key=PlanKey.PENDING,
        display_name="No active plan",
    ),
    PlanKey.STARTER: PlanDefinition(
        key=PlanKey.STARTER,
        display_name="Starter",
    ),
    PlanKey.PRO: PlanDefinition(
        key=PlanKey.PRO,
        display_name="Growth (Pro)",
        ai_generation=True,
    ),
    PlanKey.BUSINESS: PlanDefinition(
        key=PlanKey.BUSINESS,
        display_name="Business",
        ai_generation=True,
    ),
}


def get_plan_definition(plan_key: PlanKey) -> PlanDefinition:
    """Return a plan definition, raising if unsupported."""

    try:
        return PLAN_CATALOG[plan_key]
    except KeyError as exc:  # pragma: no cover - guarded by static catalog
        raise KeyError(f"Unknown plan key: {plan_key}") from exc


def plan_for_price_id(price_id: Optional[str], price_ids: Mapping[str, str]) -> PlanKey:
    """Resolve the plan sold under ``price_id`` using the configured price map."""

    if not price_id:
        return PlanKey.PENDING
    for plan_value, configured in price_ids.items():
        if configured == price_id:
            try:
                return PlanKey(plan_value)
            except ValueError:
                continue
    return PlanKey.PENDING


def price_id_for_plan(plan_key: PlanKey, price_ids: Mapping[str, str]) -> Optional[str]:
    if not plan_key.is_paid:
        return None
    return price_ids.get(plan_key.value) or None
