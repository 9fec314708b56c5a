"""API routes for handbook drafting."""
from __future__ import annotations

from fastapi import APIRouter

from ..handbooks import HandbookError, HandbookTemplate, HandbookTone, build_template_draft
from ..schemas.handbooks import HandbookContentResponse, HandbookGenerateRequest, TemplateDraftRequest
from ..services.handbooks import get_handbook_service


router = APIRouter(tags=["handbooks"])


@router.post("/api/handbooks/generate", response_model=HandbookContentResponse)
def generate_handbook(payload: HandbookGenerateRequest) -> HandbookContentResponse:
    try:
        service = get_handbook_service()
        generated = service.generate(
            handbook_id=payload.handbook_id,
            user_id=payload.user_id,
            template_id=payload.template_id,
            company_name=payload.company_name,
            state=payload.state,
            tone=payload.tone,
        )
    except HandbookError as exc:
        raise exc.to_http_exception() from exc
    return HandbookContentResponse(content_md=generated.content_md)


@router.post("/api/handbook/generate", response_model=HandbookContentResponse)
def draft_from_template(payload: TemplateDraftRequest) -> HandbookContentResponse:
    content_md = build_template_draft(
        template=HandbookTemplate.parse(payload.template_id),
        company_name=payload.company_name,
        state=payload.state,
        tone=HandbookTone.parse(payload.tone),
    )
    return HandbookContentResponse(content_md=content_md)
