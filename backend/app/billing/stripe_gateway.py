"""Stripe-backed implementations of the billing provider protocols."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional

import stripe

from .events import subscription_detail_from_object
from .exceptions import (
    BillingConfigurationError,
    EventValidationError,
    SubscriptionNotFoundError,
    WebhookAuthenticationError,
)
from .models import SubscriptionDetail

logger = logging.getLogger(__name__)


class StripeWebhookVerifier:
    """Verifies ``Stripe-Signature`` headers over the exact request bytes."""

    def __init__(self, *, tolerance_seconds: int = 300) -> None:
        self.tolerance_seconds = tolerance_seconds

    def verify(self, raw_body: bytes, signature_header: str, secret: str) -> Mapping[str, Any]:
        try:
            payload = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
        except UnicodeDecodeError as exc:
            raise EventValidationError("Webhook body is not valid UTF-8") from exc

        try:
            stripe.WebhookSignature.verify_header(
                payload,
                signature_header,
                secret,
                self.tolerance_seconds,
            )
        except stripe.SignatureVerificationError as exc:
            raise WebhookAuthenticationError(str(exc) or "Invalid signature") from exc

        try:
            envelope = json.loads(payload)
        except ValueError as exc:
            raise EventValidationError("Webhook body is not valid JSON") from exc
        if not isinstance(envelope, dict):
            raise EventValidationError("Event envelope must be a JSON object")
        return envelope


class StripeGateway:
    """Thin wrapper over the Stripe API used for subscriptions and checkout."""

    def __init__(self, *, api_key: Optional[str]) -> None:
        self._api_key = api_key

    def _require_api_key(self) -> str:
        if not self._api_key:
            raise BillingConfigurationError("Missing STRIPE_SECRET_KEY")
        return self._api_key

    def fetch_subscription(self, subscription_id: str) -> SubscriptionDetail:
        api_key = self._require_api_key()
        try:
            subscription = stripe.Subscription.retrieve(subscription_id, api_key=api_key)
        except stripe.InvalidRequestError as exc:
            if getattr(exc, "code", None) == "resource_missing":
                raise SubscriptionNotFoundError(subscription_id) from exc
            raise
        return subscription_detail_from_object(_to_plain(subscription))

    def create_customer(self, *, email: Optional[str], user_id: str) -> str:
        api_key = self._require_api_key()
        params: Dict[str, Any] = {"metadata": {"user_id": user_id}}
        if email:
            params["email"] = email
        customer = stripe.Customer.create(api_key=api_key, **params)
        logger.info("Created Stripe customer %s for user %s", customer["id"], user_id)
        return str(customer["id"])

    def create_checkout_session(
        self,
        *,
        price_id: str,
        success_url: str,
        cancel_url: str,
        customer_id: Optional[str],
        customer_email: Optional[str],
        client_reference_id: Optional[str],
        metadata: Dict[str, str],
    ) -> Mapping[str, Any]:
        api_key = self._require_api_key()
        params: Dict[str, Any] = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "allow_promotion_codes": True,
            "metadata": metadata,
            # Subscription events only see the subscription object, so carry identity there too.
            "subscription_data": {"metadata": metadata},
        }
        if customer_id:
            params["customer"] = customer_id
        elif customer_email:
            params["customer_email"] = customer_email
        if client_reference_id:
            params["client_reference_id"] = client_reference_id

        session = stripe.checkout.Session.create(api_key=api_key, **params)
        return _to_plain(session)


def _to_plain(obj: Any) -> Dict[str, Any]:
    """Convert a ``StripeObject`` into plain nested dicts."""

    if isinstance(obj, dict) and not isinstance(obj, stripe.StripeObject):
        return obj
    return json.loads(str(obj))


__all__ = ["StripeGateway", "StripeWebhookVerifier"]
