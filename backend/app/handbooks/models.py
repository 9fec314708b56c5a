"""Domain models for handbook drafting."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class HandbookTone(str, Enum):
    FRIENDLY = "friendly"
    FORMAL = "formal"
    DIRECT = "direct"

    @classmethod
    def parse(cls, value: object) -> "HandbookTone":
        """Unknown or empty tones fall back to friendly."""

        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.FRIENDLY


class HandbookTemplate(str, Enum):
    EMPLOYEE_HANDBOOK = "employee-handbook"
    SECURITY_POLICY_PACK = "security-policy-pack"
    SOP_OPERATIONS = "sop-operations"

    @classmethod
    def parse(cls, value: object) -> "HandbookTemplate":
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.EMPLOYEE_HANDBOOK


class Handbook(BaseModel):
    """A handbook row stored in ``handbooks``."""

    id: str
    title: Optional[str] = None
    user_id: Optional[str] = None
    content_md: Optional[str] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


class GeneratedHandbook(BaseModel):
    """Markdown produced for a handbook together with where it was saved."""

    handbook_id: str
    content_md: str
    model: str
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)
