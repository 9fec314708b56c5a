"""Core services reconciling provider billing events with local entitlements."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence

from ..entitlements.catalog import plan_for_price_id, price_id_for_plan
from ..entitlements.models import (
    PlanKey,
    SubscriptionStatus,
    next_entitlement_plan,
    normalize_plan,
    parse_status,
)
from .events import decode_event
from .exceptions import (
    BillingConfigurationError,
    BillingError,
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

logger = logging.getLogger("billing")


class WebhookVerifier(Protocol):
    """Checks a delivery signature against one secret and returns the parsed envelope."""

    def verify(self, raw_body: bytes, signature_header: str, secret: str) -> Mapping[str, Any]:
        """Raise :class:`WebhookAuthenticationError` when the signature does not match."""


class SubscriptionFetcher(Protocol):
    """Reads authoritative subscription state from the payment provider."""

    def fetch_subscription(self, subscription_id: str) -> SubscriptionDetail:
        """Raise :class:`SubscriptionNotFoundError` when the provider has no such subscription."""


class CheckoutProvider(Protocol):
    """Provider operations needed to start a subscription checkout."""

    def create_customer(self, *, email: Optional[str], user_id: str) -> str:
        ...

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
        ...


class BillingRepository(Protocol):
    """Persistence operations required by the reconciler."""

    def get_subscription(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        ...

    def upsert_subscription(self, record: SubscriptionRecord) -> SubscriptionRecord:
        ...

    def find_entitling_subscription(
        self,
        *,
        user_id: Optional[str],
        email: Optional[str],
        exclude_subscription_id: Optional[str],
    ) -> Optional[SubscriptionRecord]:
        ...

    def set_profile_plan(self, *, user_id: Optional[str], email: Optional[str], plan: PlanKey) -> None:
        ...


class CustomerRepository(Protocol):
    """Mapping between local users and provider customer ids."""

    def get_customer_id(self, user_id: str) -> Optional[str]:
        ...

    def get_user_id_for_customer(self, customer_id: str) -> Optional[str]:
        ...

    def save_customer(self, *, user_id: str, customer_id: str) -> None:
        ...


class ProcessedEventLedger(Protocol):
    """Remembers which event ids were already applied."""

    def has_processed(self, event_id: str) -> bool:
        ...

    def mark_processed(self, event_id: str, event_type: str) -> None:
        ...


class BillingEventLogger(Protocol):
    """Captures structured billing audit events."""

    def log(self, event: BillingAuditEvent) -> None:
        ...


_dataclass_kwargs = {"slots": True} if sys.version_info >= (3, 10) else {}


@dataclass(**_dataclass_kwargs)
class BillingReconciler:
    """Turns verified provider events into subscription and profile updates.

    Every write is an overwrite keyed by stable identifiers, so a delivery
    that fails half way can be retried in full by the provider.
    """

    verifier: WebhookVerifier
    repository: BillingRepository
    webhook_secrets: Sequence[str]
    customers: Optional[CustomerRepository] = None
    fetcher: Optional[SubscriptionFetcher] = None
    ledger: Optional[ProcessedEventLedger] = None
    event_logger: Optional[BillingEventLogger] = None
    price_ids: Mapping[str, str] = field(default_factory=dict)
    ordering_guard: bool = True

    def handle(self, raw_body: bytes, signature_header: Optional[str]) -> WebhookResult:
        """Verify, decode and apply one webhook delivery."""

        if not signature_header:
            return WebhookResult(status_code=400, message="Missing signature", outcome=WebhookOutcome.REJECTED)

        try:
            envelope = self.verify(raw_body, signature_header)
            event = decode_event(envelope)
        except WebhookAuthenticationError as exc:
            logger.warning("Webhook signature verification failed: %s", exc.message)
            return WebhookResult(status_code=400, message=f"Webhook Error: {exc.message}", outcome=WebhookOutcome.REJECTED)
        except EventValidationError as exc:
            logger.warning("Rejected malformed webhook body: %s", exc.message)
            return WebhookResult(status_code=400, message=exc.message, outcome=WebhookOutcome.REJECTED)
        except BillingConfigurationError as exc:
            logger.error("Webhook cannot be verified: %s", exc.message)
            return WebhookResult(status_code=500, message=exc.message, outcome=WebhookOutcome.FAILED)

        try:
            return self.reconcile(event)
        except Exception:
            logger.exception("Webhook handler failed for event %s (%s)", event.event_id, event.raw_type)
            return WebhookResult(
                status_code=500,
                message="Webhook handler failed",
                outcome=WebhookOutcome.FAILED,
                event_id=event.event_id,
            )

    def verify(self, raw_body: bytes, signature_header: str) -> Mapping[str, Any]:
        """Try each configured secret in order and return the first verified envelope."""

        if not self.webhook_secrets:
            raise BillingConfigurationError("Missing STRIPE_WEBHOOK_SECRET")

        last_error: Optional[WebhookAuthenticationError] = None
        for secret in self.webhook_secrets:
            try:
                return self.verifier.verify(raw_body, signature_header, secret)
            except WebhookAuthenticationError as exc:
                last_error = exc
        raise last_error or WebhookAuthenticationError()

    def reconcile(self, event: BillingEvent) -> WebhookResult:
        """Apply an already verified event."""

        if self.ledger is not None and self.ledger.has_processed(event.event_id):
            logger.info("Skipping already processed event %s", event.event_id)
            return self._ack(event, WebhookOutcome.DUPLICATE, "duplicate")

        if not event.is_actionable:
            logger.info("Ignoring event %s of type %s", event.event_id, event.raw_type)
            return self._ack(event, WebhookOutcome.IGNORED, "ignored")

        stored = self._stored_record(event)
        facts = self._extract(event, stored)
        if stored is not None:
            facts = facts.model_copy(
                update={
                    "user_id": facts.user_id or stored.user_id,
                    "email": facts.email or stored.email,
                    "customer_id": facts.customer_id or stored.customer_id,
                }
            )
        if not facts.has_identity:
            logger.info(
                "Dropping event %s (%s): no user id, email or known subscription",
                event.event_id,
                event.raw_type,
            )
            return self._ack(event, WebhookOutcome.IGNORED, "ignored")

        if self._is_stale(event, stored):
            logger.info(
                "Skipping stale event %s for subscription %s",
                event.event_id,
                facts.subscription_id,
            )
            return self._ack(event, WebhookOutcome.STALE, "stale")

        plan = self._apply(event, facts, stored)
        if self.ledger is not None:
            self.ledger.mark_processed(event.event_id, event.raw_type)

        logger.info(
            "Reconciled billing event",
            extra={
                "event_id": event.event_id,
                "event_type": event.raw_type,
                "subscription_id": facts.subscription_id,
                "plan": plan.value,
            },
        )
        return WebhookResult(
            status_code=200,
            message="ok",
            outcome=WebhookOutcome.APPLIED,
            event_id=event.event_id,
            plan=plan,
        )

    def _ack(self, event: BillingEvent, outcome: WebhookOutcome, message: str) -> WebhookResult:
        return WebhookResult(status_code=200, message=message, outcome=outcome, event_id=event.event_id)

    def _stored_record(self, event: BillingEvent) -> Optional[SubscriptionRecord]:
        subscription_id = getattr(event.payload, "subscription_id", None)
        if not subscription_id:
            return None
        return self.repository.get_subscription(subscription_id)

    def _is_stale(self, event: BillingEvent, stored: Optional[SubscriptionRecord]) -> bool:
        if not self.ordering_guard or stored is None:
            return False
        if event.created is None or stored.last_event_at is None:
            return False
        return event.created < stored.last_event_at

    def _extract(self, event: BillingEvent, stored: Optional[SubscriptionRecord]) -> BillingFacts:
        payload = event.payload
        if isinstance(payload, CheckoutSessionPayload):
            return self._facts_from_checkout(payload)
        if isinstance(payload, SubscriptionPayload):
            return self._facts_from_subscription(event.event_type, payload, stored)
        if isinstance(payload, InvoicePayload):
            return self._facts_from_invoice(event.event_type, payload, stored)
        raise EventValidationError(f"Unsupported payload for {event.raw_type}")

    def _facts_from_checkout(self, session: CheckoutSessionPayload) -> BillingFacts:
        metadata = session.metadata
        user_id = (
            session.client_reference_id
            or metadata.get("userId")
            or metadata.get("user_id")
            or self._user_for_customer(session.customer_id)
        )
        plan = normalize_plan(metadata.get("plan") or metadata.get("target_plan"))
        current_period_end = None
        if not plan.is_paid and session.subscription_id:
            detail = self._fetch(session.subscription_id)
            if detail is not None:
                plan = self._plan_from(detail.metadata, detail.price_id, None)
                current_period_end = detail.current_period_end

        return BillingFacts(
            user_id=user_id,
            email=session.customer_email,
            customer_id=session.customer_id,
            subscription_id=session.subscription_id,
            plan=plan,
            status=SubscriptionStatus.ACTIVE,
            current_period_end=current_period_end,
        )

    def _facts_from_subscription(
        self,
        event_type: Optional[BillingEventType],
        subscription: SubscriptionPayload,
        stored: Optional[SubscriptionRecord],
    ) -> BillingFacts:
        metadata = subscription.metadata
        customer_id = subscription.customer_id or (stored.customer_id if stored else None)
        user_id = (
            (stored.user_id if stored else None)
            or self._user_for_customer(customer_id)
            or metadata.get("userId")
            or metadata.get("user_id")
        )
        email = (stored.email if stored else None) or metadata.get("email")

        if event_type == BillingEventType.SUBSCRIPTION_DELETED:
            plan = stored.plan if stored else self._plan_from(metadata, subscription.price_id, None)
            status: Optional[SubscriptionStatus] = SubscriptionStatus.CANCELED
        else:
            plan = self._plan_from(metadata, subscription.price_id, stored)
            status = parse_status(subscription.status)

        return BillingFacts(
            user_id=user_id,
            email=email,
            customer_id=customer_id,
            subscription_id=subscription.subscription_id,
            plan=plan,
            status=status,
            current_period_end=subscription.current_period_end,
        )

    def _facts_from_invoice(
        self,
        event_type: Optional[BillingEventType],
        invoice: InvoicePayload,
        stored: Optional[SubscriptionRecord],
    ) -> BillingFacts:
        if not invoice.subscription_id:
            return BillingFacts(customer_id=invoice.customer_id)

        customer_id = invoice.customer_id or (stored.customer_id if stored else None)
        user_id = (stored.user_id if stored else None) or self._user_for_customer(customer_id)
        email = (stored.email if stored else None) or invoice.customer_email
        stored_plan = stored.plan if stored else PlanKey.PENDING
        current_period_end = stored.current_period_end if stored else None

        if event_type == BillingEventType.INVOICE_PAYMENT_FAILED:
            plan = stored_plan
            status: Optional[SubscriptionStatus] = SubscriptionStatus.PAST_DUE
        else:
            detail = self._fetch(invoice.subscription_id)
            if detail is not None:
                plan = self._plan_from(detail.metadata, detail.price_id, stored)
                status = parse_status(detail.status)
                current_period_end = detail.current_period_end or current_period_end
            else:
                plan = stored_plan
                status = SubscriptionStatus.ACTIVE

        return BillingFacts(
            user_id=user_id,
            email=email,
            customer_id=customer_id,
            subscription_id=invoice.subscription_id,
            plan=plan,
            status=status,
            current_period_end=current_period_end,
        )

    def _plan_from(
        self,
        metadata: Mapping[str, str],
        price_id: Optional[str],
        stored: Optional[SubscriptionRecord],
    ) -> PlanKey:
        plan = normalize_plan(metadata.get("plan") or metadata.get("target_plan"))
        if plan.is_paid:
            return plan
        plan = plan_for_price_id(price_id, self.price_ids)
        if plan.is_paid:
            return plan
        return stored.plan if stored else PlanKey.PENDING

    def _fetch(self, subscription_id: str) -> Optional[SubscriptionDetail]:
        if self.fetcher is None:
            return None
        try:
            return self.fetcher.fetch_subscription(subscription_id)
        except SubscriptionNotFoundError:
            logger.warning("Subscription %s not found at provider; using stored state", subscription_id)
            return None

    def _user_for_customer(self, customer_id: Optional[str]) -> Optional[str]:
        if not customer_id or self.customers is None:
            return None
        return self.customers.get_user_id_for_customer(customer_id)

    def _apply(
        self,
        event: BillingEvent,
        facts: BillingFacts,
        stored: Optional[SubscriptionRecord],
    ) -> PlanKey:
        last_event_at = event.created
        if stored is not None and stored.last_event_at is not None:
            if last_event_at is None or stored.last_event_at > last_event_at:
                last_event_at = stored.last_event_at

        record = SubscriptionRecord(
            email=facts.email,
            user_id=facts.user_id,
            customer_id=facts.customer_id,
            subscription_id=facts.subscription_id,
            plan=facts.plan,
            status=facts.status,
            current_period_end=facts.current_period_end
            or (stored.current_period_end if stored else None),
            last_event_at=last_event_at,
        )
        if record.subscription_id or record.email:
            self.repository.upsert_subscription(record)

        plan = next_entitlement_plan(facts.status, facts.plan)
        if not plan.is_paid and facts.subscription_id:
            # A newer subscription of the same user keeps its access.
            other = self.repository.find_entitling_subscription(
                user_id=facts.user_id,
                email=facts.email,
                exclude_subscription_id=facts.subscription_id,
            )
            if other is not None and other.plan.is_paid:
                plan = other.plan

        self.repository.set_profile_plan(user_id=facts.user_id, email=facts.email, plan=plan)
        self._audit(event, facts, plan)
        return plan

    def _audit(self, event: BillingEvent, facts: BillingFacts, plan: PlanKey) -> None:
        if self.event_logger is None:
            return
        if event.event_type == BillingEventType.SUBSCRIPTION_DELETED:
            audit_type = BillingAuditEventType.SUBSCRIPTION_CANCELED
        elif event.event_type == BillingEventType.INVOICE_PAYMENT_FAILED:
            audit_type = BillingAuditEventType.PAYMENT_FAILED
        elif event.event_type in {BillingEventType.INVOICE_PAID, BillingEventType.INVOICE_PAYMENT_SUCCEEDED}:
            audit_type = BillingAuditEventType.PAYMENT_RECOVERED
        elif plan.is_paid:
            audit_type = BillingAuditEventType.SUBSCRIPTION_ACTIVATED
        else:
            audit_type = BillingAuditEventType.SUBSCRIPTION_UPDATED

        self.event_logger.log(
            BillingAuditEvent(
                event_type=audit_type,
                subscription_id=facts.subscription_id,
                actor_id=facts.user_id or facts.email,
                metadata={"event_id": event.event_id, "plan": plan.value},
            )
        )


@dataclass(**_dataclass_kwargs)
class CheckoutService:
    """Starts subscription checkouts for the paid plans that have a configured price."""

    provider: CheckoutProvider
    price_ids: Mapping[str, str]
    customers: Optional[CustomerRepository] = None

    def create_checkout_session(
        self,
        *,
        plan: str,
        success_url: str,
        cancel_url: str,
        email: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> CheckoutSession:
        if not self.price_ids:
            raise BillingConfigurationError(
                "Missing Stripe price env vars",
                detail={"detail": "Set STRIPE_PRICE_PRO and STRIPE_PRICE_BUSINESS"},
            )

        plan_key = normalize_plan(plan)
        available = sorted(self.price_ids)
        if not plan_key.is_paid or plan_key.value not in self.price_ids:
            raise CheckoutValidationError(
                f"plan must be one of: {', '.join(available)}",
                detail={"received": plan},
            )
        price_id = price_id_for_plan(plan_key, self.price_ids)
        if not price_id:  # pragma: no cover - membership checked above
            raise BillingConfigurationError(f"Missing price for plan {plan_key.value}")

        if not success_url or not cancel_url:
            raise CheckoutValidationError("Missing successUrl or cancelUrl")

        customer_id = self._customer_for(user_id, email)

        metadata: Dict[str, str] = {"plan": plan_key.value}
        if email:
            metadata["email"] = email
        if user_id:
            metadata["userId"] = user_id

        session = self.provider.create_checkout_session(
            price_id=price_id,
            success_url=success_url,
            cancel_url=cancel_url,
            customer_id=customer_id,
            customer_email=None if customer_id else email,
            client_reference_id=user_id,
            metadata=metadata,
        )
        url = session.get("url")
        if not url:
            raise BillingError("Stripe session created but missing session.url")

        logger.info("Checkout session created: %s plan=%s", session.get("id"), plan_key.value)
        return CheckoutSession(
            session_id=str(session.get("id") or ""),
            checkout_url=str(url),
            plan=plan_key,
            customer_id=customer_id,
            expires_at=session.get("expires_at"),
        )

    def _customer_for(self, user_id: Optional[str], email: Optional[str]) -> Optional[str]:
        if not user_id or self.customers is None:
            return None
        existing = self.customers.get_customer_id(user_id)
        if existing:
            return existing
        customer_id = self.provider.create_customer(email=email, user_id=user_id)
        self.customers.save_customer(user_id=user_id, customer_id=customer_id)
        return customer_id


__all__ = [
    "BillingEventLogger",
    "BillingReconciler",
    "BillingRepository",
    "CheckoutProvider",
    "CheckoutService",
    "CustomerRepository",
    "ProcessedEventLedger",
    "SubscriptionFetcher",
    "WebhookVerifier",
]
