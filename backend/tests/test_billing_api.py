from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from fastapi.testclient import TestClient

from backend import main as backend_main
from backend.app.billing import (
    CheckoutSession,
    CheckoutValidationError,
    WebhookOutcome,
    WebhookResult,
)
from backend.app.entitlements import PlanKey
from backend.app.routes import billing as billing_routes


class RecordingReconciler:
    def __init__(self, result: WebhookResult) -> None:
        self.result = result
        self.calls: List[Tuple[bytes, Optional[str]]] = []

    def handle(self, raw_body: bytes, signature_header: Optional[str]) -> WebhookResult:
        self.calls.append((raw_body, signature_header))
        return self.result


def test_webhook_passes_exact_bytes_and_signature(monkeypatch) -> None:
    reconciler = RecordingReconciler(
        WebhookResult(status_code=200, message="ok", outcome=WebhookOutcome.APPLIED, event_id="evt_1")
    )
    monkeypatch.setattr(billing_routes, "get_billing_reconciler", lambda: reconciler)
    body = b'{"id": "evt_1",  "type": "invoice.paid"}'

    with TestClient(backend_main.app) as client:
        response = client.post(
            "/api/stripe/webhook",
            content=body,
            headers={"Stripe-Signature": "t=1,v1=abc", "Content-Type": "application/json"},
        )

    assert response.status_code == 200
    assert response.text == "ok"
    assert reconciler.calls == [(body, "t=1,v1=abc")]


def test_webhook_rejection_is_returned_as_plain_text(monkeypatch) -> None:
    reconciler = RecordingReconciler(
        WebhookResult(status_code=400, message="Missing signature", outcome=WebhookOutcome.REJECTED)
    )
    monkeypatch.setattr(billing_routes, "get_billing_reconciler", lambda: reconciler)

    with TestClient(backend_main.app) as client:
        response = client.post("/api/stripe/webhook", content=b"{}")

    assert response.status_code == 400
    assert response.text == "Missing signature"
    assert reconciler.calls == [(b"{}", None)]


def test_webhook_only_accepts_post() -> None:
    with TestClient(backend_main.app) as client:
        response = client.get("/api/stripe/webhook")

    assert response.status_code == 405


def test_create_checkout_session_returns_url(monkeypatch) -> None:
    captured: Dict[str, object] = {}

    class FakeCheckoutService:
        def create_checkout_session(self, **kwargs) -> CheckoutSession:
            captured.update(kwargs)
            return CheckoutSession(
                session_id="cs_1",
                checkout_url="https://checkout.stripe.com/c/pay/cs_1",
                plan=PlanKey.BUSINESS,
            )

    monkeypatch.setattr(billing_routes, "get_checkout_service", lambda: FakeCheckoutService())

    with TestClient(backend_main.app) as client:
        response = client.post(
            "/api/stripe/create-checkout-session",
            json={
                "plan": "business",
                "successUrl": "https://app.example.com/success",
                "cancelUrl": "https://app.example.com/cancel",
                "email": "owner@example.com",
                "userId": "user-1",
            },
        )

    assert response.status_code == 200
    assert response.json() == {"url": "https://checkout.stripe.com/c/pay/cs_1"}
    assert captured == {
        "plan": "business",
        "success_url": "https://app.example.com/success",
        "cancel_url": "https://app.example.com/cancel",
        "email": "owner@example.com",
        "user_id": "user-1",
    }


def test_create_checkout_session_maps_validation_errors(monkeypatch) -> None:
    class RejectingCheckoutService:
        def create_checkout_session(self, **kwargs) -> CheckoutSession:
            raise CheckoutValidationError("plan must be one of: business, pro", detail={"received": "gold"})

    monkeypatch.setattr(billing_routes, "get_checkout_service", lambda: RejectingCheckoutService())

    with TestClient(backend_main.app) as client:
        response = client.post("/api/stripe/create-checkout-session", json={"plan": "gold"})

    assert response.status_code == 400
    assert response.json() == {"detail": {"error": "plan must be one of: business, pro", "received": "gold"}}


def test_healthz() -> None:
    with TestClient(backend_main.app) as client:
        response = client.get("/healthz")

    assert response.json() == {"status": "ok"}
