"""Language model text generation for handbook drafts."""
from __future__ import annotations

import logging
from typing import Optional, Protocol

import openai
from openai import OpenAI

from .exceptions import HandbookGenerationError

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    """Turns a prompt into generated text."""

    model: str

    def generate_text(self, prompt: str) -> str:
        ...


class OpenAITextGenerator:
    """Generator backed by the OpenAI Responses API."""

    def __init__(self, *, api_key: Optional[str], model: str = "gpt-4.1-mini", client: Optional[OpenAI] = None) -> None:
        if client is None and not api_key:
            raise HandbookGenerationError("Missing env var OPENAI_API_KEY")
        self.model = model
        self._client = client or OpenAI(api_key=api_key)

    def generate_text(self, prompt: str) -> str:
        try:
            response = self._client.responses.create(model=self.model, input=prompt)
        except openai.OpenAIError as exc:
            logger.error("OpenAI request failed: %s", exc)
            raise HandbookGenerationError(f"Generator request failed: {exc}") from exc
        return (response.output_text or "").strip()
