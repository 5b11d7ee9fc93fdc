"""Static pricing tables and helpers for estimating image generation cost."""

from __future__ import annotations

from typing import Dict, Mapping

from colorbook_schemas import CanvasSize

# USD per generated image keyed by (quality, size).
_GPT_IMAGE_1: Mapping[tuple[str, CanvasSize], float] = {
    ("low", CanvasSize.SQUARE): 0.011,
    ("low", CanvasSize.PORTRAIT): 0.016,
    ("low", CanvasSize.LANDSCAPE): 0.016,
    ("medium", CanvasSize.SQUARE): 0.042,
    ("medium", CanvasSize.PORTRAIT): 0.063,
    ("medium", CanvasSize.LANDSCAPE): 0.063,
    ("high", CanvasSize.SQUARE): 0.167,
    ("high", CanvasSize.PORTRAIT): 0.25,
    ("high", CanvasSize.LANDSCAPE): 0.25,
}

# Imagen bills a flat rate per image regardless of aspect ratio.
_IMAGEN_FLAT: Mapping[str, float] = {
    "imagen-3.0-generate-002": 0.03,
    "imagen-4.0-generate-001": 0.04,
    "imagen-4.0-fast-generate-001": 0.02,
}

_OPENAI_TABLES: Dict[str, Mapping[tuple[str, CanvasSize], float]] = {
    "gpt-image-1": _GPT_IMAGE_1,
}


def estimate_image_cost(
    provider: str,
    model: str,
    size: CanvasSize,
    quality: str | None = None,
) -> float | None:
    """Approximate cost in USD for one generated image.

    Args:
        provider: Provider identifier ("openai", "gemini", "mock", etc.).
        model: Concrete model name, used to select the right pricing row.
        size: Canvas size that was requested.
        quality: Quality tier; OpenAI defaults to ``medium`` when omitted.

    Returns:
        Estimated USD cost, or ``None`` when pricing is unknown.
    """

    provider_key = (provider or "").lower()
    if provider_key == "mock":
        return 0.0

    model_key = (model or "").lower()
    if provider_key == "openai":
        table = _OPENAI_TABLES.get(model_key)
        if table is None:
            return None
        return table.get(((quality or "medium").lower(), size))

    if provider_key == "gemini":
        return _IMAGEN_FLAT.get(model_key)

    return None


__all__ = ["estimate_image_cost"]
