"""Google Imagen provider implementation via the google-genai SDK."""

from __future__ import annotations

import asyncio
import time
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from colorbook_schemas import CanvasSize

from .base import ImageCapabilities, ImageProvider, ImageRequest, ImageResponse
from .config import ProviderConfig
from .exceptions import ContentPolicyError, ProviderError, ProviderResponseError, classify_status
from .pricing import estimate_image_cost

# Imagen only accepts a fixed set of aspect ratios; pick the closest one.
ASPECT_RATIOS: dict[CanvasSize, str] = {
    CanvasSize.SQUARE: "1:1",
    CanvasSize.PORTRAIT: "3:4",
    CanvasSize.LANDSCAPE: "4:3",
}


def classify_gemini_error(exc: genai_errors.APIError) -> ProviderError:
    status_code = exc.code if isinstance(exc.code, int) else None
    message = exc.message or str(exc)
    lowered = message.lower()
    if status_code == 400 and ("safety" in lowered or "blocked" in lowered):
        return ContentPolicyError(message, code=exc.status, status_code=status_code)
    if status_code == 429:
        return classify_status(message, status_code=429, code="rate_limit_exceeded")
    return classify_status(message, status_code=status_code, code=None)


class GeminiImageProvider(ImageProvider):
    name = "gemini"

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self._client = genai.Client(
            api_key=config.api_key,
            http_options=genai_types.HttpOptions(
                timeout=int(config.settings.timeout_seconds * 1000)
            ),
        )

    def capabilities(self) -> ImageCapabilities:
        return ImageCapabilities(max_prompt_chars=4800)

    async def synthesize(self, request: ImageRequest) -> ImageResponse:
        image_config = genai_types.GenerateImagesConfig(
            number_of_images=request.n,
            aspect_ratio=ASPECT_RATIOS[request.size],
        )

        start = time.perf_counter()
        try:
            # generate_images is blocking; keep it off the event loop.
            response = await asyncio.to_thread(
                self._client.models.generate_images,
                model=self._config.model,
                prompt=request.prompt,
                config=image_config,
            )
        except genai_errors.APIError as exc:
            raise classify_gemini_error(exc) from exc
        latency_ms = (time.perf_counter() - start) * 1000

        image_bytes = self._extract_image(response)

        return ImageResponse(
            image_bytes=image_bytes,
            raw=response,
            model=self._config.model,
            cost_usd=estimate_image_cost(
                provider=self._config.name,
                model=self._config.model,
                size=request.size,
            ),
            latency_ms=latency_ms,
        )

    @staticmethod
    def _extract_image(response: Any) -> bytes:
        generated = getattr(response, "generated_images", None) or []
        if not generated:
            # Imagen drops safety-filtered images instead of raising.
            raise ContentPolicyError("Imagen returned no images; the prompt was filtered")
        first = generated[0]
        reason = getattr(first, "rai_filtered_reason", None)
        image = getattr(first, "image", None)
        image_bytes = getattr(image, "image_bytes", None) if image is not None else None
        if not image_bytes:
            if reason:
                raise ContentPolicyError(f"Imagen filtered the image: {reason}")
            raise ProviderResponseError("Imagen response missing image bytes")
        return image_bytes
