from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Dict, List, Mapping, Optional

import pytest

from backend.app.billing import (
    BillingAuditEvent,
    BillingReconciler,
    SubscriptionDetail,
    SubscriptionNotFoundError,
    SubscriptionRecord,
    WebhookAuthenticationError,
)
from backend.app.billing.service import (
    BillingEventLogger,
    BillingRepository,
    CustomerRepository,
    ProcessedEventLedger,
    SubscriptionFetcher,
    WebhookVerifier,
)
from backend.app.entitlements import ENTITLING_STATUSES, PlanKey


class InMemoryBillingRepository(BillingRepository, CustomerRepository):
    def __init__(self) -> None:
        self.subscriptions: Dict[str, SubscriptionRecord] = {}
        self.email_subscriptions: Dict[str, SubscriptionRecord] = {}
        self.profiles_by_id: Dict[str, PlanKey] = {}
        self.profiles_by_email: Dict[str, PlanKey] = {}
        self.customers: Dict[str, str] = {}
        self.upserts: List[SubscriptionRecord] = []
        self.fail_profile_writes = False

    def get_subscription(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        return self.subscriptions.get(subscription_id)

    def upsert_subscription(self, record: SubscriptionRecord) -> SubscriptionRecord:
        self.upserts.append(record)
        if record.subscription_id:
            if record.email:
                self.email_subscriptions.pop(record.email, None)
            self.subscriptions[record.subscription_id] = record
        else:
            self.email_subscriptions[record.email] = record
        return record

    def find_entitling_subscription(
        self,
        *,
        user_id: Optional[str],
        email: Optional[str],
        exclude_subscription_id: Optional[str],
    ) -> Optional[SubscriptionRecord]:
        for record in self.subscriptions.values():
            if record.subscription_id == exclude_subscription_id:
                continue
            if record.status not in ENTITLING_STATUSES or not record.plan.is_paid:
                continue
            if (user_id and record.user_id == user_id) or (email and record.email == email):
                return record
        return None

    def set_profile_plan(self, *, user_id: Optional[str], email: Optional[str], plan: PlanKey) -> None:
        if self.fail_profile_writes:
            raise RuntimeError("profiles table unavailable")
        if user_id:
            self.profiles_by_id[user_id] = plan
        elif email:
            self.profiles_by_email[email] = plan

    def get_profile_plan(self, user_id: str) -> Optional[PlanKey]:
        return self.profiles_by_id.get(user_id)

    def get_customer_id(self, user_id: str) -> Optional[str]:
        return self.customers.get(user_id)

    def get_user_id_for_customer(self, customer_id: str) -> Optional[str]:
        for user_id, stored_customer in self.customers.items():
            if stored_customer == customer_id:
                return user_id
        return None

    def save_customer(self, *, user_id: str, customer_id: str) -> None:
        self.customers[user_id] = customer_id


class InMemoryLedger(ProcessedEventLedger):
    def __init__(self) -> None:
        self.processed: Dict[str, str] = {}

    def has_processed(self, event_id: str) -> bool:
        return event_id in self.processed

    def mark_processed(self, event_id: str, event_type: str) -> None:
        self.processed[event_id] = event_type


class FakeVerifier(WebhookVerifier):
    """Accepts ``sig:<secret>`` headers and parses the body as JSON."""

    def __init__(self) -> None:
        self.attempts: List[str] = []

    def verify(self, raw_body: bytes, signature_header: str, secret: str) -> Mapping[str, Any]:
        self.attempts.append(secret)
        if signature_header != f"sig:{secret}":
            raise WebhookAuthenticationError("No signatures found matching the expected signature")
        return json.loads(raw_body)


class FakeFetcher(SubscriptionFetcher):
    def __init__(self) -> None:
        self.details: Dict[str, SubscriptionDetail] = {}
        self.calls: List[str] = []

    def fetch_subscription(self, subscription_id: str) -> SubscriptionDetail:
        self.calls.append(subscription_id)
        try:
            return self.details[subscription_id]
        except KeyError:
            raise SubscriptionNotFoundError(subscription_id) from None


class FakeEventLogger(BillingEventLogger):
    def __init__(self) -> None:
        self.events: List[BillingAuditEvent] = []

    def log(self, event: BillingAuditEvent) -> None:
        self.events.append(event)


PRICE_IDS = {"starter": "price_starter", "pro": "price_pro", "business": "price_business"}


@pytest.fixture
def billing_components():
    repository = InMemoryBillingRepository()
    ledger = InMemoryLedger()
    verifier = FakeVerifier()
    fetcher = FakeFetcher()
    event_logger = FakeEventLogger()
    reconciler = BillingReconciler(
        verifier=verifier,
        repository=repository,
        webhook_secrets=("whsec_current", "whsec_previous"),
        customers=repository,
        fetcher=fetcher,
        ledger=ledger,
        event_logger=event_logger,
        price_ids=PRICE_IDS,
    )
    return SimpleNamespace(
        repository=repository,
        ledger=ledger,
        verifier=verifier,
        fetcher=fetcher,
        event_logger=event_logger,
        reconciler=reconciler,
    )
