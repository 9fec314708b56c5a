from __future__ import annotations

import pytest

from backend.app.entitlements import (
    PlanKey,
    SubscriptionStatus,
    get_plan_definition,
    is_entitling_status,
    next_entitlement_plan,
    normalize_plan,
    parse_status,
    plan_for_price_id,
    price_id_for_plan,
)

PRICE_IDS = {"starter": "price_starter", "pro": "price_pro", "business": "price_business"}


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("pro", PlanKey.PRO),
        ("  Business ", PlanKey.BUSINESS),
        ("growth", PlanKey.PRO),
        ("STARTER", PlanKey.STARTER),
        ("enterprise", PlanKey.PENDING),
        ("", PlanKey.PENDING),
        (None, PlanKey.PENDING),
        (PlanKey.BUSINESS, PlanKey.BUSINESS),
    ],
)
def test_normalize_plan(raw, expected) -> None:
    assert normalize_plan(raw) == expected


def test_only_active_and_trialing_entitle() -> None:
    entitling = {status for status in SubscriptionStatus if is_entitling_status(status)}

    assert entitling == {SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING}
    assert not is_entitling_status(None)


@pytest.mark.parametrize("status", list(SubscriptionStatus) + [None])
def test_next_entitlement_plan_follows_status(status) -> None:
    plan = next_entitlement_plan(status, "pro")

    if status in {SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING}:
        assert plan == PlanKey.PRO
    else:
        assert plan == PlanKey.PENDING


def test_next_entitlement_plan_rejects_unknown_plan() -> None:
    assert next_entitlement_plan(SubscriptionStatus.ACTIVE, "diamond") == PlanKey.PENDING


def test_parse_status_accepts_british_spelling() -> None:
    assert parse_status("Cancelled") == SubscriptionStatus.CANCELED
    assert parse_status("paused") == SubscriptionStatus.PAUSED
    assert parse_status("mystery") is None


def test_price_lookup_both_directions() -> None:
    assert plan_for_price_id("price_business", PRICE_IDS) == PlanKey.BUSINESS
    assert plan_for_price_id("price_unknown", PRICE_IDS) == PlanKey.PENDING
    assert plan_for_price_id(None, PRICE_IDS) == PlanKey.PENDING
    assert price_id_for_plan(PlanKey.PRO, PRICE_IDS) == "price_pro"
    assert price_id_for_plan(PlanKey.PENDING, PRICE_IDS) is None


def test_catalog_marks_ai_generation_plans() -> None:
    assert get_plan_definition(PlanKey.PRO).ai_generation
    assert get_plan_definition(PlanKey.BUSINESS).ai_generation
    assert not get_plan_definition(PlanKey.STARTER).ai_generation
    assert not get_plan_definition(PlanKey.PENDING).ai_generation

