"""API schemas for billing endpoints."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..billing import CheckoutSession


class CheckoutSessionRequest(BaseModel):
    plan: str = ""
    success_url: str = Field(default="", alias="successUrl")
    cancel_url: str = Field(default="", alias="cancelUrl")
    email: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")

    model_config = ConfigDict(populate_by_name=True)


class CheckoutSessionResponse(BaseModel):
    url: str

    @classmethod
    def from_checkout(cls, session: CheckoutSession) -> "CheckoutSessionResponse":
        return cls(url=session.checkout_url)
