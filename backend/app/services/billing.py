"""Application wiring for the billing services."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..billing import BillingAuditEvent, BillingEventLogger, BillingReconciler, CheckoutService
from ..billing.repository import PostgresBillingRepository
from ..billing.stripe_gateway import StripeGateway, StripeWebhookVerifier
from ..config import load_billing_config


logger = logging.getLogger("billing")


class LoggingBillingEventLogger(BillingEventLogger):
    """Simple event logger forwarding billing audit events to logging."""

    def log(self, event: BillingAuditEvent) -> None:
        logger.info(
            "Billing event %s subscription=%s actor=%s metadata=%s",
            event.event_type.value,
            event.subscription_id,
            event.actor_id,
            event.metadata,
        )


@lru_cache(maxsize=1)
def get_billing_repository() -> PostgresBillingRepository:
    return PostgresBillingRepository()


@lru_cache(maxsize=1)
def get_billing_reconciler() -> BillingReconciler:
    config = load_billing_config()
    repository = get_billing_repository()
    gateway = StripeGateway(api_key=config.stripe_secret_key)
    fetcher = gateway if config.refetch_subscriptions and config.stripe_secret_key else None
    return BillingReconciler(
        verifier=StripeWebhookVerifier(tolerance_seconds=config.webhook_tolerance_seconds),
        repository=repository,
        webhook_secrets=config.webhook_secrets,
        customers=repository,
        fetcher=fetcher,
        ledger=repository,
        event_logger=LoggingBillingEventLogger(),
        price_ids=dict(config.price_ids),
        ordering_guard=config.ordering_guard,
    )


@lru_cache(maxsize=1)
def get_checkout_service() -> CheckoutService:
    config = load_billing_config()
    return CheckoutService(
        provider=StripeGateway(api_key=config.stripe_secret_key),
        price_ids=dict(config.price_ids),
        customers=get_billing_repository(),
    )


__all__ = [
    "LoggingBillingEventLogger",
    "get_billing_reconciler",
    "get_billing_repository",
    "get_checkout_service",
]
