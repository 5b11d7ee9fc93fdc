"""Domain models describing scene prompts, styles, and page outcomes."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..enums import (
    CanvasSize,
    Complexity,
    GenerationMode,
    LineThickness,
    PageErrorCode,
    PageState,
    PageStatus,
)
from ..utils.validators import dedupe_preserving_order, ensure_not_blank


class ScenePrompt(BaseModel):
    """One page request; immutable once handed to the pipeline."""

    model_config = ConfigDict(frozen=True)

    page_index: int = Field(..., ge=1)
    title: str = Field("", max_length=200)
    raw_text: str = Field(..., min_length=1)

    @field_validator("raw_text")
    @classmethod
    def validate_raw_text(cls, value: str) -> str:
        return ensure_not_blank(value, field_name="Scene text")


class StyleConfig(BaseModel):
    """Batch-wide rendering style shared read-only by every page."""

    model_config = ConfigDict(frozen=True)

    complexity: Complexity = Complexity.SIMPLE
    line_thickness: LineThickness = LineThickness.BOLD
    canvas_size: CanvasSize = CanvasSize.PORTRAIT
    mode: GenerationMode = GenerationMode.THEME


class CharacterProfile(BaseModel):
    """Canonical description of a recurring character.

    Used read-only when compiling prompts and when checking generated pages for
    consistency. Feature and rule order is significant: earlier entries are
    rendered first and survive the feature cap.
    """

    model_config = ConfigDict(frozen=True)

    canonical_name: str = Field(..., min_length=1, max_length=120)
    species: Optional[str] = Field(None, max_length=120)
    proportions: str = Field("", max_length=400)
    face_style: Optional[str] = Field(None, max_length=400)
    distinguishing_features: tuple[str, ...] = Field(default_factory=tuple)
    outfit: Optional[str] = Field(None, max_length=400)
    negative_rules: tuple[str, ...] = Field(default_factory=tuple)

    @field_validator("distinguishing_features", "negative_rules", mode="before")
    @classmethod
    def normalise_lists(cls, value):
        if value is None:
            return ()
        return tuple(dedupe_preserving_order(list(value)))


class CompiledPrompt(BaseModel):
    """Prompt text produced for a single attempt; never persisted."""

    model_config = ConfigDict(frozen=True)

    page_index: int = Field(..., ge=1)
    text: str
    attempt: int = Field(1, ge=1)
    reinforcement_level: int = Field(0, ge=0)
    truncated: bool = False


class QualityMetrics(BaseModel):
    """Measurements taken from one generated image."""

    model_config = ConfigDict(frozen=True)

    black_ratio: float = Field(..., ge=0, le=1)
    long_run_count: int = Field(..., ge=0)
    passed_outline: bool
    passed_composition: bool
    passed_character: Optional[bool] = None
    longest_run: int = Field(0, ge=0)
    coverage_ratio: float = Field(0.0, ge=0, le=1)
    bottom_blank_ratio: Optional[float] = Field(None, ge=0, le=1)
    border_dark_ratio: float = Field(0.0, ge=0, le=1)
    gray_ratio: float = Field(0.0, ge=0, le=1)
    max_black_ratio: float = Field(..., ge=0, le=1)


class PageOutcome(BaseModel):
    """Terminal result for one page of one batch invocation."""

    page_index: int = Field(..., ge=1)
    status: PageStatus
    image_bytes: Optional[bytes] = None
    attempts: int = Field(0, ge=0)
    last_error: Optional[str] = None
    error_code: Optional[PageErrorCode] = None
    warning: Optional[str] = None
    final_state: PageState = PageState.EXHAUSTED
    metrics: Optional[QualityMetrics] = None
    transitions: list[PageState] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_done_has_image(self) -> "PageOutcome":
        if self.status == PageStatus.DONE and not self.image_bytes:
            raise ValueError("A finished page must carry image bytes")
        return self

    @property
    def degraded(self) -> bool:
        return self.status == PageStatus.DONE and self.warning is not None
