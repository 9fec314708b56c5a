"""Decoding of provider event envelopes into typed billing events.

Stripe puts a differently shaped object under ``data.object`` for every event
type. Each supported type gets its own decoder so the reconciler only ever
sees one of the payload variants declared in :mod:`.models`.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from .exceptions import EventValidationError
from .models import (
    BillingEvent,
    BillingEventType,
    CheckoutSessionPayload,
    EventPayload,
    InvoicePayload,
    SubscriptionDetail,
    SubscriptionPayload,
)


def decode_event(envelope: Mapping[str, Any]) -> BillingEvent:
    """Decode a verified ``{id, type, data: {object}}`` envelope."""

    if not isinstance(envelope, Mapping):
        raise EventValidationError("Event envelope must be a JSON object")

    event_id = envelope.get("id")
    raw_type = envelope.get("type")
    if not isinstance(event_id, str) or not event_id:
        raise EventValidationError("Event id missing from envelope")
    if not isinstance(raw_type, str) or not raw_type:
        raise EventValidationError("Event type missing from envelope")

    data = envelope.get("data")
    obj = data.get("object") if isinstance(data, Mapping) else None
    if not isinstance(obj, Mapping):
        raise EventValidationError("Event data.object missing from envelope")

    created = _parse_timestamp(envelope.get("created"))

    try:
        event_type = BillingEventType(raw_type)
    except ValueError:
        return BillingEvent(event_id=event_id, event_type=None, raw_type=raw_type, created=created)

    decoder = _DECODERS[event_type]
    return BillingEvent(
        event_id=event_id,
        event_type=event_type,
        raw_type=raw_type,
        created=created,
        payload=decoder(obj),
    )


def decode_checkout_session(obj: Mapping[str, Any]) -> CheckoutSessionPayload:
    session_id = _ref(obj.get("id"))
    if not session_id:
        raise EventValidationError("Checkout session id missing")

    metadata = _safe_metadata(obj.get("metadata"))
    details = obj.get("customer_details")
    details_email = details.get("email") if isinstance(details, Mapping) else None
    email = _clean(details_email) or _clean(obj.get("customer_email")) or _clean(metadata.get("email"))

    return CheckoutSessionPayload(
        session_id=session_id,
        client_reference_id=_clean(obj.get("client_reference_id")),
        customer_id=_ref(obj.get("customer")),
        customer_email=email,
        subscription_id=_ref(obj.get("subscription")),
        metadata=metadata,
    )


def decode_subscription(obj: Mapping[str, Any]) -> SubscriptionPayload:
    subscription_id = _ref(obj.get("id"))
    if not subscription_id:
        raise EventValidationError("Subscription id missing")

    first_item = _first_item(obj)
    period_end = obj.get("current_period_end")
    if period_end is None and first_item is not None:
        # Newer API versions report the billing period on the subscription item.
        period_end = first_item.get("current_period_end")

    return SubscriptionPayload(
        subscription_id=subscription_id,
        customer_id=_ref(obj.get("customer")),
        status=_clean(obj.get("status")),
        price_id=_item_price_id(first_item),
        current_period_end=_parse_timestamp(period_end),
        metadata=_safe_metadata(obj.get("metadata")),
    )


def decode_invoice(obj: Mapping[str, Any]) -> InvoicePayload:
    invoice_id = _ref(obj.get("id"))
    if not invoice_id:
        raise EventValidationError("Invoice id missing")

    subscription_id = _ref(obj.get("subscription"))
    if not subscription_id:
        parent = obj.get("parent")
        details = parent.get("subscription_details") if isinstance(parent, Mapping) else None
        if isinstance(details, Mapping):
            subscription_id = _ref(details.get("subscription"))

    return InvoicePayload(
        invoice_id=invoice_id,
        subscription_id=subscription_id,
        customer_id=_ref(obj.get("customer")),
        customer_email=_clean(obj.get("customer_email")),
    )


def subscription_detail_from_object(obj: Mapping[str, Any]) -> SubscriptionDetail:
    """Build a :class:`SubscriptionDetail` from a retrieved subscription object."""

    payload = decode_subscription(obj)
    return SubscriptionDetail(
        subscription_id=payload.subscription_id,
        status=payload.status,
        price_id=payload.price_id,
        current_period_end=payload.current_period_end,
        metadata=payload.metadata,
    )


_DECODERS: Dict[BillingEventType, Callable[[Mapping[str, Any]], EventPayload]] = {
    BillingEventType.CHECKOUT_SESSION_COMPLETED: decode_checkout_session,
    BillingEventType.SUBSCRIPTION_CREATED: decode_subscription,
    BillingEventType.SUBSCRIPTION_UPDATED: decode_subscription,
    BillingEventType.SUBSCRIPTION_DELETED: decode_subscription,
    BillingEventType.INVOICE_PAID: decode_invoice,
    BillingEventType.INVOICE_PAYMENT_SUCCEEDED: decode_invoice,
    BillingEventType.INVOICE_PAYMENT_FAILED: decode_invoice,
}


def _ref(value: object) -> Optional[str]:
    """Return an object id whether the field is expanded or a bare id string."""

    if isinstance(value, Mapping):
        value = value.get("id")
    return _clean(value)


def _clean(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _first_item(obj: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    items = obj.get("items")
    data = items.get("data") if isinstance(items, Mapping) else None
    if isinstance(data, list) and data and isinstance(data[0], Mapping):
        return data[0]
    return None


def _item_price_id(item: Optional[Mapping[str, Any]]) -> Optional[str]:
    if item is None:
        return None
    return _ref(item.get("price")) or _ref(item.get("plan"))


def _parse_timestamp(value: object) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) or (isinstance(value, str) and value.isdigit()):
        try:
            return datetime.fromtimestamp(int(value) if isinstance(value, str) else value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise EventValidationError(f"Timestamp out of range: {value!r}") from exc
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _safe_metadata(value: object) -> Dict[str, str]:
    if isinstance(value, Mapping):
        return {str(k): str(v) for k, v in value.items() if v is not None}
    return {}


__all__ = [
    "decode_checkout_session",
    "decode_event",
    "decode_invoice",
    "decode_subscription",
    "subscription_detail_from_object",
]
