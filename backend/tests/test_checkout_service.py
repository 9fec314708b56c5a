from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

import pytest

from backend.app.billing import (
    BillingConfigurationError,
    BillingError,
    CheckoutService,
    CheckoutValidationError,
)
from backend.app.billing.service import CheckoutProvider
from backend.app.entitlements import PlanKey


class RecordingProvider(CheckoutProvider):
    def __init__(self, *, url: Optional[str] = "https://checkout.stripe.com/c/pay/cs_1") -> None:
        self.url = url
        self.sessions: List[Dict[str, Any]] = []
        self.customers: List[Dict[str, Any]] = []

    def create_customer(self, *, email: Optional[str], user_id: str) -> str:
        self.customers.append({"email": email, "user_id": user_id})
        return f"cus_{user_id}"

    def create_checkout_session(self, **kwargs: Any) -> Mapping[str, Any]:
        self.sessions.append(kwargs)
        return {"id": "cs_1", "url": self.url}


class InMemoryCustomers:
    def __init__(self, existing: Optional[Dict[str, str]] = None) -> None:
        self.by_user: Dict[str, str] = dict(existing or {})

    def get_customer_id(self, user_id: str) -> Optional[str]:
        return self.by_user.get(user_id)

    def get_user_id_for_customer(self, customer_id: str) -> Optional[str]:
        return next((user for user, cus in self.by_user.items() if cus == customer_id), None)

    def save_customer(self, *, user_id: str, customer_id: str) -> None:
        self.by_user[user_id] = customer_id


PRICE_IDS = {"pro": "price_pro", "business": "price_business"}


def make_service(provider: RecordingProvider, customers: Optional[InMemoryCustomers] = None) -> CheckoutService:
    return CheckoutService(provider=provider, price_ids=PRICE_IDS, customers=customers)


def test_checkout_for_known_user_creates_and_stores_customer() -> None:
    provider = RecordingProvider()
    customers = InMemoryCustomers()

    session = make_service(provider, customers).create_checkout_session(
        plan="pro",
        success_url="https://app.example.com/success",
        cancel_url="https://app.example.com/cancel",
        email="owner@example.com",
        user_id="user-1",
    )

    assert session.checkout_url == "https://checkout.stripe.com/c/pay/cs_1"
    assert session.plan == PlanKey.PRO
    assert session.customer_id == "cus_user-1"
    assert customers.by_user == {"user-1": "cus_user-1"}

    sent = provider.sessions[0]
    assert sent["price_id"] == "price_pro"
    assert sent["customer_id"] == "cus_user-1"
    assert sent["customer_email"] is None
    assert sent["client_reference_id"] == "user-1"
    assert sent["metadata"] == {"plan": "pro", "email": "owner@example.com", "userId": "user-1"}


def test_checkout_reuses_existing_customer() -> None:
    provider = RecordingProvider()
    customers = InMemoryCustomers({"user-1": "cus_existing"})

    session = make_service(provider, customers).create_checkout_session(
        plan="business",
        success_url="https://app.example.com/success",
        cancel_url="https://app.example.com/cancel",
        user_id="user-1",
    )

    assert session.customer_id == "cus_existing"
    assert provider.customers == []


def test_anonymous_checkout_sends_email_only() -> None:
    provider = RecordingProvider()

    session = make_service(provider, InMemoryCustomers()).create_checkout_session(
        plan="growth",
        success_url="https://app.example.com/success",
        cancel_url="https://app.example.com/cancel",
        email="guest@example.com",
    )

    assert session.plan == PlanKey.PRO
    assert session.customer_id is None
    assert provider.sessions[0]["customer_email"] == "guest@example.com"
    assert provider.sessions[0]["client_reference_id"] is None


@pytest.mark.parametrize("plan", ["starter", "enterprise", ""])
def test_checkout_rejects_plans_without_price(plan: str) -> None:
    with pytest.raises(CheckoutValidationError) as excinfo:
        make_service(RecordingProvider()).create_checkout_session(
            plan=plan,
            success_url="https://app.example.com/success",
            cancel_url="https://app.example.com/cancel",
        )

    assert excinfo.value.status_code == 400
    assert excinfo.value.payload == {"error": "plan must be one of: business, pro", "received": plan}


def test_checkout_requires_return_urls() -> None:
    with pytest.raises(CheckoutValidationError):
        make_service(RecordingProvider()).create_checkout_session(plan="pro", success_url="", cancel_url="")


def test_checkout_without_configured_prices_is_a_server_error() -> None:
    service = CheckoutService(provider=RecordingProvider(), price_ids={})

    with pytest.raises(BillingConfigurationError) as excinfo:
        service.create_checkout_session(plan="pro", success_url="https://a", cancel_url="https://b")

    assert excinfo.value.status_code == 500


def test_checkout_session_without_url_fails() -> None:
    with pytest.raises(BillingError):
        make_service(RecordingProvider(url=None)).create_checkout_session(
            plan="pro",
            success_url="https://app.example.com/success",
            cancel_url="https://app.example.com/cancel",
        )
