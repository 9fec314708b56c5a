"""Exceptions raised by the billing domain."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass
class BillingError(Exception):
    """Base class for billing failures that map onto an HTTP status."""

    message: str
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.detail:
            body.update(self.detail)
        return body

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class WebhookAuthenticationError(BillingError):
    """The delivery's signature matched none of the configured secrets."""

    def __init__(self, message: str = "Invalid signature") -> None:
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST)


class EventValidationError(BillingError):
    """The event body is malformed or carries nothing the reconciler can act on."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST)


class BillingStoreError(BillingError):
    """A read or write against the billing tables failed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


class SubscriptionNotFoundError(BillingError):
    """The provider has no subscription with the requested id."""

    def __init__(self, subscription_id: str) -> None:
        super().__init__(
            f"Subscription not found: {subscription_id}",
            status_code=status.HTTP_404_NOT_FOUND,
        )
        self.subscription_id = subscription_id


class CheckoutValidationError(BillingError):
    def __init__(self, message: str, detail: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class BillingConfigurationError(BillingError):
    """Required Stripe settings are missing from the environment."""

    def __init__(self, message: str, detail: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


__all__ = [
    "BillingConfigurationError",
    "BillingError",
    "BillingStoreError",
    "CheckoutValidationError",
    "EventValidationError",
    "SubscriptionNotFoundError",
    "WebhookAuthenticationError",
]
