"""OpenAI image generation provider implementation."""

from __future__ import annotations

import base64
import binascii
import time
from typing import Any, Dict

import httpx
import openai
from openai import AsyncOpenAI

from .base import ImageCapabilities, ImageProvider, ImageRequest, ImageResponse
from .config import ProviderConfig
from .exceptions import (
    ProviderError,
    ProviderResponseError,
    TransientProviderError,
    classify_status,
)
from .pricing import estimate_image_cost


def classify_openai_error(exc: Exception) -> ProviderError:
    """Translate an ``openai`` SDK exception into the provider error taxonomy."""

    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, (openai.APITimeoutError, openai.APIConnectionError)):
        return TransientProviderError(str(exc) or "OpenAI connection failed")
    if isinstance(exc, openai.APIStatusError):
        return classify_status(
            getattr(exc, "message", None) or str(exc),
            status_code=exc.status_code,
            code=getattr(exc, "code", None),
        )
    if isinstance(exc, httpx.HTTPError):
        return TransientProviderError(f"Image download failed: {exc}")
    return TransientProviderError(str(exc) or exc.__class__.__name__)


class OpenAIImageProvider(ImageProvider):
    name = "openai"

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        # Retries are owned by the page state machine, not the SDK.
        self._client = AsyncOpenAI(
            api_key=config.api_key,
            timeout=config.settings.timeout_seconds,
            max_retries=0,
        )

    def capabilities(self) -> ImageCapabilities:
        return ImageCapabilities(max_prompt_chars=32000, supports_quality=True)

    async def synthesize(self, request: ImageRequest) -> ImageResponse:
        params: Dict[str, Any] = {
            "model": self._config.model,
            "prompt": request.prompt,
            "size": request.size.value,
            "n": request.n,
        }
        quality = request.quality or self._config.settings.quality
        if quality:
            params["quality"] = quality

        start = time.perf_counter()
        try:
            response = await self._client.images.generate(**params)
            image_bytes, revised_prompt = await self._extract_image(response)
        except (openai.OpenAIError, httpx.HTTPError) as exc:
            raise classify_openai_error(exc) from exc
        latency_ms = (time.perf_counter() - start) * 1000

        return ImageResponse(
            image_bytes=image_bytes,
            raw=response,
            model=self._config.model,
            cost_usd=estimate_image_cost(
                provider=self._config.name,
                model=self._config.model,
                size=request.size,
                quality=quality,
            ),
            latency_ms=latency_ms,
            revised_prompt=revised_prompt,
        )

    async def _extract_image(self, response: Any) -> tuple[bytes, str | None]:
        try:
            item = response.data[0]
        except (IndexError, AttributeError, TypeError) as err:
            raise ProviderResponseError("OpenAI response missing image data") from err

        revised_prompt = getattr(item, "revised_prompt", None)
        b64_payload = getattr(item, "b64_json", None)
        if b64_payload:
            try:
                return base64.b64decode(b64_payload), revised_prompt
            except (binascii.Error, ValueError) as err:
                raise ProviderResponseError("OpenAI returned invalid base64 image data") from err

        url = getattr(item, "url", None)
        if url:
            async with httpx.AsyncClient(timeout=self._config.settings.timeout_seconds) as client:
                download = await client.get(url)
                download.raise_for_status()
            return download.content, revised_prompt

        raise ProviderResponseError("OpenAI response contained neither b64_json nor url")
