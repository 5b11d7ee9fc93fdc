"""Core interfaces and dataclasses for image provider interactions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, MutableMapping

from colorbook_schemas import CanvasSize


@dataclass(slots=True)
class ImageRequest:
    """Normalized request passed to image providers."""

    prompt: str
    size: CanvasSize
    n: int = 1
    quality: str | None = None
    metadata: MutableMapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ImageResponse:
    """Standard response returned by image providers."""

    image_bytes: bytes
    raw: Any
    model: str
    cost_usd: float | None = None
    latency_ms: float | None = None
    revised_prompt: str | None = None
    received_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(slots=True)
class ImageCapabilities:
    """Capability flags used when choosing a provider."""

    supported_sizes: tuple[CanvasSize, ...] = tuple(CanvasSize)
    max_prompt_chars: int | None = None
    supports_quality: bool = False


class ImageProvider(ABC):
    """Abstract base class implemented by concrete image providers.

    Implementations raise :class:`~colorbook_providers.exceptions.ProviderError`
    subclasses so callers can branch on ``error.kind`` without knowing which SDK
    produced the failure.
    """

    name: str

    @abstractmethod
    def capabilities(self) -> ImageCapabilities:
        """Return capability metadata."""

    @abstractmethod
    async def synthesize(self, request: ImageRequest) -> ImageResponse:
        """Render one image for the provided prompt and size."""
