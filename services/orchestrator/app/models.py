"""Pydantic models for the page generation API."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from colorbook_schemas import (
    CanvasSize,
    CharacterProfile,
    Complexity,
    GenerationMode,
    LineThickness,
    PageErrorCode,
    PageStatus,
    QualityMetrics,
)
from colorbook_schemas.utils.validators import ensure_not_blank

REGENERATE_PROMPT_LIMIT = 4500


class ImageProviderOverride(BaseModel):
    name: Optional[str] = Field(None, description="Provider identifier: openai, gemini, mock")
    model: Optional[str] = None
    quality: Optional[str] = Field(None, description="Provider quality hint, e.g. low/medium/high")
    timeout_seconds: Optional[float] = Field(None, gt=0, le=600)


class StyleFields(BaseModel):
    size: CanvasSize = CanvasSize.PORTRAIT
    complexity: Complexity = Complexity.SIMPLE
    line_thickness: LineThickness = LineThickness.BOLD
    mode: GenerationMode = GenerationMode.THEME
    character_profile: CharacterProfile | None = None
    max_attempts: Optional[int] = Field(None, ge=1, le=5)
    provider: ImageProviderOverride | None = None


class BatchPageRequest(BaseModel):
    page: int = Field(..., ge=1)
    prompt: str = Field(..., min_length=1)
    title: str = Field("", max_length=200)

    @field_validator("prompt")
    @classmethod
    def validate_prompt(cls, value: str) -> str:
        return ensure_not_blank(value, field_name="prompt")


class BatchGenerateRequest(StyleFields):
    pages: List[BatchPageRequest] = Field(..., min_length=1)
    concurrency: Optional[int] = Field(
        None, ge=1, le=3, description="Pages per window; falls back to COLORBOOK_DEFAULT_CONCURRENCY"
    )
    project_id: Optional[UUID] = None
    user_id: Optional[UUID] = None

    @model_validator(mode="after")
    def validate_pages(self) -> "BatchGenerateRequest":
        numbers = [page.page for page in self.pages]
        if len(numbers) != len(set(numbers)):
            raise ValueError("Page numbers must be unique within a batch")
        if (self.project_id is None) != (self.user_id is None):
            raise ValueError("project_id and user_id must be supplied together")
        return self

    @property
    def persist(self) -> bool:
        return self.project_id is not None and self.user_id is not None


class BatchPageResult(BaseModel):
    page: int
    status: PageStatus
    image_base64: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[PageErrorCode] = None
    warning: Optional[str] = None
    attempts: int = 0
    storage_path: Optional[str] = None


class BatchGenerateResponse(BaseModel):
    batch_id: UUID
    provider_name: str
    results: List[BatchPageResult]
    success_count: int
    fail_count: int
    cancelled: bool = False


class RegenerateRequest(StyleFields):
    prompt: str = Field(..., min_length=1, max_length=REGENERATE_PROMPT_LIMIT)
    title: str = Field("", max_length=200)
    validate_outline: bool = True
    validate_character: bool = True
    validate_composition: bool = True

    @field_validator("prompt")
    @classmethod
    def validate_prompt(cls, value: str) -> str:
        return ensure_not_blank(value, field_name="prompt")


class RegenerateResponse(BaseModel):
    ok: bool
    image_base64: Optional[str] = None
    attempts: int = 0
    warning: Optional[str] = None
    validation: QualityMetrics | None = None
    error: Optional[str] = None
    error_code: Optional[PageErrorCode] = None
