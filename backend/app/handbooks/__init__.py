"""Handbook drafting: model-backed generation and offline template drafts."""

from .drafts import build_template_draft
from .exceptions import (
    HandbookEntitlementError,
    HandbookError,
    HandbookGenerationError,
    HandbookNotFoundError,
    HandbookValidationError,
)
from .generator import OpenAITextGenerator, TextGenerator
from .models import GeneratedHandbook, Handbook, HandbookTemplate, HandbookTone
from .service import HandbookService, PlanLookup, build_prompt

__all__ = [
    "GeneratedHandbook",
    "Handbook",
    "HandbookEntitlementError",
    "HandbookError",
    "HandbookGenerationError",
    "HandbookNotFoundError",
    "HandbookService",
    "HandbookTemplate",
    "HandbookTone",
    "HandbookValidationError",
    "OpenAITextGenerator",
    "PlanLookup",
    "TextGenerator",
    "build_prompt",
    "build_template_draft",
]
