"""Handbook generation backed by a language model and the handbooks table."""
from __future__ import annotations

import logging
import re
import sys
from dataclasses import dataclass
from typing import Optional, Protocol

from ..entitlements.catalog import get_plan_definition
from ..entitlements.models import PlanKey
from .exceptions import (
    HandbookEntitlementError,
    HandbookGenerationError,
    HandbookNotFoundError,
    HandbookValidationError,
)
from .generator import TextGenerator
from .models import GeneratedHandbook, Handbook

logger = logging.getLogger(__name__)

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

_PROMPT_TEMPLATE = """You are writing an employee handbook in Markdown.

Template: {template}
Company: {company}
State: {state}
Tone: {tone}

Return a complete handbook as Markdown with:
- Table of contents
- Clear headings (##)
- Core HR policies
- Benefits overview
- Code of conduct
- Time off + leave
- Remote work policy
- Anti-harassment and equal opportunity
- Confidentiality + data security
- Discipline + termination
- Acknowledgement section

Output ONLY Markdown (no backticks code fences)."""


class HandbookRepository(Protocol):
    def get_handbook(self, handbook_id: str) -> Optional[Handbook]:
        ...

    def save_content(self, handbook_id: str, content_md: str) -> Optional[Handbook]:
        ...


class PlanLookup(Protocol):
    """Reads the entitlement plan stored on a user's profile."""

    def get_profile_plan(self, user_id: str) -> Optional[PlanKey]:
        ...


def is_uuid(value: str) -> bool:
    return bool(_UUID_RE.match(value))


def build_prompt(
    *,
    template_id: Optional[str] = None,
    company_name: Optional[str] = None,
    state: Optional[str] = None,
    tone: Optional[str] = None,
) -> str:
    return _PROMPT_TEMPLATE.format(
        template=(template_id or "").strip() or "employee",
        company=(company_name or "").strip() or "Your Company",
        state=(state or "").strip() or "your state",
        tone=(tone or "").strip() or "Friendly",
    )


_dataclass_kwargs = {"slots": True} if sys.version_info >= (3, 10) else {}


@dataclass(**_dataclass_kwargs)
class HandbookService:
    repository: HandbookRepository
    generator: TextGenerator
    plans: Optional[PlanLookup] = None

    def generate(
        self,
        *,
        handbook_id: str,
        user_id: Optional[str] = None,
        template_id: Optional[str] = None,
        company_name: Optional[str] = None,
        state: Optional[str] = None,
        tone: Optional[str] = None,
    ) -> GeneratedHandbook:
        """Draft a handbook with the language model and store it on the handbook row."""

        handbook_id = (handbook_id or "").strip()
        if not handbook_id:
            raise HandbookValidationError("Missing handbookId")
        if not is_uuid(handbook_id):
            raise HandbookValidationError("handbookId must be a UUID")

        if user_id and self.plans is not None:
            self._require_ai_plan(user_id)

        if self.repository.get_handbook(handbook_id) is None:
            raise HandbookNotFoundError(handbook_id)

        prompt = build_prompt(
            template_id=template_id,
            company_name=company_name,
            state=state,
            tone=tone,
        )
        content_md = self.generator.generate_text(prompt).strip()
        if not content_md:
            raise HandbookGenerationError("Generator returned empty content.")

        saved = self.repository.save_content(handbook_id, content_md)
        if saved is None:
            raise HandbookNotFoundError(handbook_id)

        logger.info("Generated handbook %s with %s (%d chars)", handbook_id, self.generator.model, len(content_md))
        return GeneratedHandbook(handbook_id=handbook_id, content_md=content_md, model=self.generator.model)

    def _require_ai_plan(self, user_id: str) -> None:
        plan = self.plans.get_profile_plan(user_id) or PlanKey.PENDING
        if not get_plan_definition(plan).ai_generation:
            raise HandbookEntitlementError(f"Plan '{plan.value}' does not include AI handbook generation")


__all__ = ["HandbookRepository", "HandbookService", "PlanLookup", "build_prompt", "is_uuid"]
