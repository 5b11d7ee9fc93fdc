"""Configuration models and helpers for image provider selection."""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field, ValidationError

PROVIDER_ENV_VAR = "IMAGE_PROVIDER"
DEFAULT_PROVIDER = "openai"


class ProviderSettings(BaseModel):
    """Per-call default parameters."""

    timeout_seconds: float = Field(120.0, gt=0, le=600)
    quality: str | None = Field(
        None, description="Provider specific quality hint, e.g. low/medium/high for gpt-image-1"
    )


class ProviderConfig(BaseModel):
    """Configuration for a single provider instance."""

    name: str
    api_key: str
    model: str
    settings: ProviderSettings = Field(default_factory=ProviderSettings)

    class Config:
        frozen = True


def load_provider_config(prefix: str | None = None) -> ProviderConfig:
    """Load configuration from environment variables.

    Args:
        prefix: Optional prefix for environment variables (default uses provider name).

    Environment variables used (assuming prefix "OPENAI"):
        OPENAI_API_KEY
        OPENAI_IMAGE_MODEL
        OPENAI_TIMEOUT_SECONDS (optional)
        OPENAI_IMAGE_QUALITY (optional)

    Returns:
        ProviderConfig object populated from environment variables.

    Raises:
        ValidationError: If required variables are missing or invalid.
    """

    provider_name = (prefix or os.getenv(PROVIDER_ENV_VAR, DEFAULT_PROVIDER)).upper()
    env_prefix = provider_name

    def read_env(key: str, default: Any | None = None) -> Any:
        return os.getenv(f"{env_prefix}_{key}", default)

    api_key = read_env("API_KEY")
    model = read_env("IMAGE_MODEL")
    if not api_key or not model:
        raise ValidationError.from_exception_data(
            ProviderConfig.__name__,
            [
                {
                    "type": "missing",
                    "loc": ("api_key",) if not api_key else ("model",),
                    "input": None,
                }
            ],
        )

    timeout_raw = read_env("TIMEOUT_SECONDS", "")
    try:
        timeout_seconds = float(timeout_raw) if str(timeout_raw).strip() else 120.0
    except ValueError as exc:  # pragma: no cover - environment misconfiguration
        raise ValidationError.from_exception_data(
            ProviderConfig.__name__,
            [
                {
                    "type": "float_parsing",
                    "loc": ("settings", "timeout_seconds"),
                    "input": timeout_raw,
                }
            ],
        ) from exc

    quality = read_env("IMAGE_QUALITY")
    quality = quality.strip() if isinstance(quality, str) else quality
    if isinstance(quality, str) and not quality:
        quality = None

    settings = ProviderSettings(timeout_seconds=timeout_seconds, quality=quality)

    return ProviderConfig(name=provider_name.lower(), api_key=api_key, model=model, settings=settings)
