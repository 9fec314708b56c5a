"""API routes exposing Stripe checkout and the Stripe webhook receiver."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse

from ..billing import BillingError
from ..schemas.billing import CheckoutSessionRequest, CheckoutSessionResponse
from ..services.billing import get_billing_reconciler, get_checkout_service


router = APIRouter(prefix="/api/stripe", tags=["billing"])


@router.post("/create-checkout-session", response_model=CheckoutSessionResponse)
def create_checkout_session(payload: CheckoutSessionRequest) -> CheckoutSessionResponse:
    try:
        service = get_checkout_service()
        session = service.create_checkout_session(
            plan=payload.plan,
            success_url=payload.success_url,
            cancel_url=payload.cancel_url,
            email=payload.email,
            user_id=payload.user_id,
        )
    except BillingError as exc:
        raise exc.to_http_exception() from exc
    return CheckoutSessionResponse.from_checkout(session)


@router.post("/webhook", response_class=PlainTextResponse)
async def receive_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
) -> PlainTextResponse:
    # The signature covers the exact bytes, so the body is never parsed before verification.
    raw_body = await request.body()
    try:
        reconciler = get_billing_reconciler()
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    result = await run_in_threadpool(reconciler.handle, raw_body, stripe_signature)
    return PlainTextResponse(result.message, status_code=result.status_code)
