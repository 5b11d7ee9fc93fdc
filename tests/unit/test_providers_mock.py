"""Tests for the mock image provider, the factory and error classification."""

import asyncio
import base64
from types import SimpleNamespace

import pytest

from colorbook_providers import (
    ContentPolicyError,
    MockImageProvider,
    ProviderConfig,
    ProviderConfigError,
    ProviderErrorKind,
    ProviderFactory,
    ProviderSettings,
    ImageRequest,
)
from colorbook_providers.exceptions import classify_status
from colorbook_providers.openai import OpenAIImageProvider
from colorbook_providers.pricing import estimate_image_cost
from colorbook_schemas import CanvasSize, StyleConfig

from services.orchestrator.app.quality import evaluate_image


def test_mock_synthesize_sync() -> None:
    provider = MockImageProvider()
    request = ImageRequest(prompt="a fox reading a book", size=CanvasSize.SQUARE)
    response = asyncio.run(provider.synthesize(request))
    assert response.model == "mock"
    assert response.image_bytes.startswith(b"\x89PNG")
    assert provider.requests == [request]


@pytest.mark.parametrize("size", list(CanvasSize))
def test_mock_pages_pass_default_quality_gate(size: CanvasSize) -> None:
    provider = MockImageProvider()
    response = asyncio.run(provider.synthesize(ImageRequest(prompt="scene", size=size)))
    report = evaluate_image(response.image_bytes, StyleConfig(canvas_size=size), collect_all=True)
    assert report.passed, report.failure_reason


def test_factory_creates_mock_when_config_provided() -> None:
    config = ProviderConfig(
        name="mock",
        api_key="mock",
        model="mock",
        settings=ProviderSettings(),
    )
    provider = ProviderFactory.create(config)
    assert isinstance(provider, MockImageProvider)


def test_factory_rejects_unknown_provider() -> None:
    with pytest.raises(ProviderConfigError):
        ProviderFactory.create(ProviderConfig(name="dalle-9000", api_key="k", model="m"))


@pytest.mark.parametrize(
    ("message", "status_code", "code", "kind"),
    [
        ("Your request was rejected by the safety system", 400, "content_policy_violation", ProviderErrorKind.CONTENT_POLICY),
        ("Rate limit reached", 429, None, ProviderErrorKind.RATE_LIMIT),
        ("You exceeded your current quota", 429, "insufficient_quota", ProviderErrorKind.FATAL),
        ("Incorrect API key provided", 401, None, ProviderErrorKind.FATAL),
        ("Bad gateway", 502, None, ProviderErrorKind.TRANSIENT),
        ("Connection reset", None, None, ProviderErrorKind.TRANSIENT),
        ("Invalid size", 400, None, ProviderErrorKind.FATAL),
    ],
)
def test_classify_status(message, status_code, code, kind) -> None:
    error = classify_status(message, status_code=status_code, code=code)
    assert error.kind == kind
    assert error.kind.retryable == (kind in (ProviderErrorKind.RATE_LIMIT, ProviderErrorKind.TRANSIENT))


def test_pricing_tables() -> None:
    assert estimate_image_cost("openai", "gpt-image-1", CanvasSize.PORTRAIT, "high") == 0.25
    assert estimate_image_cost("openai", "gpt-image-1", CanvasSize.SQUARE) == 0.042
    assert estimate_image_cost("gemini", "imagen-4.0-generate-001", CanvasSize.LANDSCAPE) == 0.04
    assert estimate_image_cost("mock", "mock", CanvasSize.SQUARE) == 0.0
    assert estimate_image_cost("openai", "unknown-model", CanvasSize.SQUARE) is None


def _openai_provider(generate) -> OpenAIImageProvider:
    provider = OpenAIImageProvider(
        ProviderConfig(name="openai", api_key="sk-test", model="gpt-image-1", settings=ProviderSettings(quality="low"))
    )
    provider._client = SimpleNamespace(images=SimpleNamespace(generate=generate))
    return provider


def test_openai_provider_decodes_base64_payload() -> None:
    captured = {}

    async def generate(**params):
        captured.update(params)
        return SimpleNamespace(data=[SimpleNamespace(b64_json=base64.b64encode(b"png-bytes").decode(), revised_prompt=None)])

    response = asyncio.run(
        _openai_provider(generate).synthesize(ImageRequest(prompt="a fox", size=CanvasSize.PORTRAIT))
    )

    assert response.image_bytes == b"png-bytes"
    assert response.cost_usd == 0.016
    assert captured["size"] == "1024x1536"
    assert captured["quality"] == "low"


def test_openai_provider_passes_through_classified_errors() -> None:
    async def generate(**params):
        raise ContentPolicyError("blocked")

    with pytest.raises(ContentPolicyError):
        asyncio.run(_openai_provider(generate).synthesize(ImageRequest(prompt="a fox", size=CanvasSize.SQUARE)))
