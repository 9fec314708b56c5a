"""API schemas for handbook endpoints."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class HandbookGenerateRequest(BaseModel):
    handbook_id: str = Field(default="", alias="handbookId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    template_id: Optional[str] = Field(default=None, alias="templateId")
    company_name: Optional[str] = Field(default=None, alias="companyName")
    state: Optional[str] = None
    tone: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class TemplateDraftRequest(BaseModel):
    template_id: Optional[str] = Field(default=None, alias="templateId")
    company_name: Optional[str] = Field(default=None, alias="companyName")
    state: Optional[str] = None
    tone: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class HandbookContentResponse(BaseModel):
    content_md: str
