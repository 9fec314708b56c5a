"""Application wiring for handbook drafting."""
from __future__ import annotations

from functools import lru_cache

from ..config import load_handbook_config
from ..handbooks import HandbookService, OpenAITextGenerator
from ..handbooks.repository import PostgresHandbookRepository
from .billing import get_billing_repository


@lru_cache(maxsize=1)
def get_handbook_service() -> HandbookService:
    config = load_handbook_config()
    generator = OpenAITextGenerator(api_key=config.openai_api_key, model=config.model)
    return HandbookService(
        repository=PostgresHandbookRepository(),
        generator=generator,
        plans=get_billing_repository(),
    )


__all__ = ["get_handbook_service"]
