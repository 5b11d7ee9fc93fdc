"""Environment-driven settings for the page pipeline."""

from __future__ import annotations

import os
from typing import Any, Callable

from pydantic import BaseModel, Field, ValidationError

from colorbook_schemas import Complexity, LineThickness

ENV_PREFIX = "COLORBOOK_"


class PipelineSettings(BaseModel):
    """Retry, timeout, and scheduling knobs for the page state machine."""

    max_attempts: int = Field(3, ge=1, le=5)
    provider_timeout_seconds: float = Field(150.0, gt=0, le=900)
    transient_backoff_seconds: float = Field(1.0, ge=0, le=120)
    rate_limit_backoff_seconds: float = Field(5.0, ge=0, le=300)
    attempt_delay_seconds: float = Field(0.5, ge=0, le=60)
    inter_batch_delay_seconds: float = Field(0.5, ge=0, le=120)
    max_prompt_length: int = Field(4000, ge=2500, le=32000)
    default_concurrency: int = Field(2, ge=1, le=3)

    class Config:
        frozen = True


class QualityThresholds(BaseModel):
    """Product-tuned pixel thresholds used by the quality gate.

    Run-length limits are expressed for a 1024 pixel wide canvas and scaled to
    the actual image width at evaluation time.
    """

    binarize_threshold: int = Field(128, ge=1, le=254)
    max_black_ratio: dict[Complexity, float] = Field(
        default_factory=lambda: {
            Complexity.SIMPLE: 0.22,
            Complexity.MEDIUM: 0.28,
            Complexity.DETAILED: 0.34,
        }
    )
    max_run_length: dict[LineThickness, int] = Field(
        default_factory=lambda: {
            LineThickness.THIN: 20,
            LineThickness.MEDIUM: 28,
            LineThickness.BOLD: 36,
        }
    )
    max_long_run_lines: int = Field(0, ge=0)
    min_canvas_coverage: float = Field(0.85, gt=0, le=1)
    bottom_band_ratio: float = Field(0.12, gt=0, lt=0.5)
    max_bottom_blank_ratio: float = Field(0.92, gt=0, le=1)
    border_band_ratio: float = Field(0.02, gt=0, lt=0.25)
    max_border_dark_ratio: float = Field(0.10, ge=0, le=1)
    shading_low: int = Field(30, ge=0, le=255)
    shading_high: int = Field(220, ge=0, le=255)
    max_gray_ratio: float = Field(0.10, ge=0, le=1)

    class Config:
        frozen = True


def _read(
    name: str,
    cast: Callable[[str], Any],
    model: type[BaseModel],
    loc: tuple[str, ...],
) -> Any | None:
    raw = os.getenv(f"{ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return None
    try:
        return cast(raw.strip())
    except ValueError as exc:
        raise ValidationError.from_exception_data(
            model.__name__,
            [{"type": "value_error", "loc": loc, "input": raw, "ctx": {"error": str(exc)}}],
        ) from exc


def load_pipeline_settings() -> PipelineSettings:
    """Build :class:`PipelineSettings` from ``COLORBOOK_*`` environment variables.

    Raises:
        ValidationError: If a variable cannot be parsed or is out of range.
    """

    fields = {
        "max_attempts": ("MAX_ATTEMPTS", int),
        "provider_timeout_seconds": ("PROVIDER_TIMEOUT_SECONDS", float),
        "transient_backoff_seconds": ("TRANSIENT_BACKOFF_SECONDS", float),
        "rate_limit_backoff_seconds": ("RATE_LIMIT_BACKOFF_SECONDS", float),
        "attempt_delay_seconds": ("ATTEMPT_DELAY_SECONDS", float),
        "inter_batch_delay_seconds": ("INTER_BATCH_DELAY_SECONDS", float),
        "max_prompt_length": ("MAX_PROMPT_LENGTH", int),
        "default_concurrency": ("DEFAULT_CONCURRENCY", int),
    }
    values: dict[str, Any] = {}
    for field_name, (env_name, cast) in fields.items():
        value = _read(env_name, cast, PipelineSettings, (field_name,))
        if value is not None:
            values[field_name] = value
    return PipelineSettings(**values)


def load_quality_thresholds() -> QualityThresholds:
    """Build :class:`QualityThresholds` from ``COLORBOOK_*`` environment variables."""

    values: dict[str, Any] = {}
    binarize = _read("BINARIZE_THRESHOLD", int, QualityThresholds, ("binarize_threshold",))
    if binarize is not None:
        values["binarize_threshold"] = binarize

    black_ratio = QualityThresholds().max_black_ratio
    overridden = False
    for complexity in Complexity:
        env_name = f"MAX_BLACK_RATIO_{complexity.name}"
        value = _read(env_name, float, QualityThresholds, ("max_black_ratio", complexity.value))
        if value is not None:
            black_ratio = {**black_ratio, complexity: value}
            overridden = True
    if overridden:
        values["max_black_ratio"] = black_ratio

    for field_name, env_name, cast in (
        ("min_canvas_coverage", "MIN_CANVAS_COVERAGE", float),
        ("max_bottom_blank_ratio", "MAX_BOTTOM_BLANK_RATIO", float),
        ("max_long_run_lines", "MAX_LONG_RUN_LINES", int),
        ("max_border_dark_ratio", "MAX_BORDER_DARK_RATIO", float),
        ("max_gray_ratio", "MAX_GRAY_RATIO", float),
    ):
        value = _read(env_name, cast, QualityThresholds, (field_name,))
        if value is not None:
            values[field_name] = value

    return QualityThresholds(**values)
