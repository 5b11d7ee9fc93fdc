"""Deterministic mock provider for tests and offline development."""

from __future__ import annotations

import io
from dataclasses import dataclass

from PIL import Image, ImageDraw

from colorbook_schemas import CanvasSize

from .base import ImageCapabilities, ImageProvider, ImageRequest, ImageResponse
from .config import ProviderConfig, ProviderSettings


def render_outline_page(size: CanvasSize) -> bytes:
    """Draw a simple outline-only page that satisfies the default quality gates."""

    width, height = size.width, size.height
    stroke = max(2, round(4 * width / 1024))
    image = Image.new("L", (width, height), 255)
    draw = ImageDraw.Draw(image)

    margin_x = int(width * 0.03)
    draw.ellipse(
        (margin_x, int(height * 0.03), width - margin_x, int(height * 0.85)),
        outline=0,
        width=stroke,
    )
    ground_y = int(height * 0.88)
    draw.line((int(width * 0.02), ground_y, int(width * 0.98), ground_y), fill=0, width=stroke)

    # Grass blades keep the bottom band inked down to the edge.
    spacing = max(stroke * 4, width // 40)
    for x in range(int(width * 0.03), int(width * 0.97), spacing):
        draw.line((x, ground_y, x, height - 1), fill=0, width=stroke)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@dataclass
class MockImageProvider(ImageProvider):
    name: str = "mock"
    _config: ProviderConfig | None = None

    def __init__(self, config: ProviderConfig | None = None) -> None:
        if config is None:
            config = ProviderConfig(
                name="mock",
                api_key="mock",
                model="mock",
                settings=ProviderSettings(timeout_seconds=5),
            )
        self._config = config
        self.requests: list[ImageRequest] = []

    def capabilities(self) -> ImageCapabilities:
        return ImageCapabilities(max_prompt_chars=32000)

    async def synthesize(self, request: ImageRequest) -> ImageResponse:
        self.requests.append(request)
        return ImageResponse(
            image_bytes=render_outline_page(request.size),
            raw={"mock": True, "prompt": request.prompt[:80]},
            model="mock",
            cost_usd=0.0,
            latency_ms=1.0,
        )
