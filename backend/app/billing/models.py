"""Domain models for the billing system."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import PlanKey, SubscriptionStatus


class BillingEventType(str, Enum):
    """Provider event types that the reconciler reacts to."""

    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


class CheckoutSessionPayload(BaseModel):
    """Fields of a completed checkout session that carry identity and plan."""

    session_id: str
    client_reference_id: Optional[str] = None
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    subscription_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class SubscriptionPayload(BaseModel):
    """Provider subscription object as delivered in subscription events."""

    subscription_id: str
    customer_id: Optional[str] = None
    status: Optional[str] = None
    price_id: Optional[str] = None
    current_period_end: Optional[datetime] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class InvoicePayload(BaseModel):
    """Invoice object; only the subscription reference matters for entitlements."""

    invoice_id: str
    subscription_id: Optional[str] = None
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None

    model_config = ConfigDict(frozen=True)


EventPayload = Union[CheckoutSessionPayload, SubscriptionPayload, InvoicePayload]


class BillingEvent(BaseModel):
    """Verified provider event decoded into one payload variant per type.

    ``event_type`` is ``None`` for provider events the reconciler does not
    act on; those carry no payload.
    """

    event_id: str
    event_type: Optional[BillingEventType]
    raw_type: str
    created: Optional[datetime] = None
    payload: Optional[EventPayload] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_actionable(self) -> bool:
        return self.event_type is not None and self.payload is not None


class BillingFacts(BaseModel):
    """Identity, plan and status extracted from a single event."""

    user_id: Optional[str] = None
    email: Optional[str] = None
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    plan: PlanKey = PlanKey.PENDING
    status: Optional[SubscriptionStatus] = None
    current_period_end: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    @property
    def has_identity(self) -> bool:
        return bool(self.user_id or self.email)


class SubscriptionRecord(BaseModel):
    """Local mirror of a provider subscription stored in ``subscriptions``."""

    email: Optional[str] = None
    user_id: Optional[str] = None
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    plan: PlanKey = PlanKey.PENDING
    status: Optional[SubscriptionStatus] = None
    current_period_end: Optional[datetime] = None
    last_event_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class SubscriptionDetail(BaseModel):
    """Authoritative subscription state fetched from the provider."""

    subscription_id: str
    status: Optional[str] = None
    price_id: Optional[str] = None
    current_period_end: Optional[datetime] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class WebhookOutcome(str, Enum):
    """How a webhook delivery was disposed of."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    STALE = "stale"
    REJECTED = "rejected"
    FAILED = "failed"


class WebhookResult(BaseModel):
    """HTTP-shaped result of handling one webhook delivery."""

    status_code: int
    message: str
    outcome: WebhookOutcome
    event_id: Optional[str] = None
    plan: Optional[PlanKey] = None

    model_config = ConfigDict(frozen=True)


class BillingAuditEventType(str, Enum):
    """Audit event categories emitted by the billing subsystem."""

    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_RECOVERED = "payment_recovered"


class BillingAuditEvent(BaseModel):
    """Structured audit event for analytics and notifications."""

    event_type: BillingAuditEventType
    subscription_id: Optional[str] = None
    actor_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class CheckoutSession(BaseModel):
    """Return value of a checkout session creation request."""

    session_id: str
    checkout_url: str
    plan: PlanKey
    customer_id: Optional[str] = None
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)
