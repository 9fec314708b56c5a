"""Billing domain package: Stripe event reconciliation and checkout."""

from .events import decode_event
from .exceptions import (
    BillingConfigurationError,
    BillingError,
    BillingStoreError,
    CheckoutValidationError,
    EventValidationError,
    SubscriptionNotFoundError,
    WebhookAuthenticationError,
)
from .models import (
    BillingAuditEvent,
    BillingAuditEventType,
    BillingEvent,
    BillingEventType,
    BillingFacts,
    CheckoutSession,
    CheckoutSessionPayload,
    InvoicePayload,
    SubscriptionDetail,
    SubscriptionPayload,
    SubscriptionRecord,
    WebhookOutcome,
    WebhookResult,
)
from .service import (
    BillingEventLogger,
    BillingReconciler,
    BillingRepository,
    CheckoutProvider,
    CheckoutService,
    CustomerRepository,
    ProcessedEventLedger,
    SubscriptionFetcher,
    WebhookVerifier,
)

__all__ = [
    "BillingAuditEvent",
    "BillingAuditEventType",
    "BillingConfigurationError",
    "BillingError",
    "BillingEvent",
    "BillingEventLogger",
    "BillingEventType",
    "BillingFacts",
    "BillingReconciler",
    "BillingRepository",
    "BillingStoreError",
    "CheckoutProvider",
    "CheckoutService",
    "CheckoutSession",
    "CheckoutSessionPayload",
    "CheckoutValidationError",
    "CustomerRepository",
    "EventValidationError",
    "InvoicePayload",
    "ProcessedEventLedger",
    "SubscriptionDetail",
    "SubscriptionFetcher",
    "SubscriptionNotFoundError",
    "SubscriptionPayload",
    "SubscriptionRecord",
    "WebhookAuthenticationError",
    "WebhookOutcome",
    "WebhookResult",
    "WebhookVerifier",
    "decode_event",
]
