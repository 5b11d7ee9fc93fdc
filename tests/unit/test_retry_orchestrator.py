"""Tests for the per-page retry state machine."""

from __future__ import annotations

import asyncio

import pytest

from colorbook_providers import (
    ContentPolicyError,
    FatalProviderError,
    ImageCapabilities,
    ImageProvider,
    ImageRequest,
    ImageResponse,
    RateLimitError,
    TransientProviderError,
)
from colorbook_schemas import (
    CharacterProfile,
    PageErrorCode,
    PageState,
    PageStatus,
    ScenePrompt,
    StyleConfig,
)

from services.orchestrator.app.quality import (
    CharacterChecker,
    CharacterCheckResult,
    QualityChecks,
    QualityGate,
)
from services.orchestrator.app.retry import PageRetryOrchestrator
from services.orchestrator.app.settings import PipelineSettings
from tests.utils.images import all_black_page, filled_block_page, line_art_page

pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
def anyio_backend():
    return "asyncio"


SCENE = ScenePrompt(page_index=3, title="Reading", raw_text="a fox reading a book")
STYLE = StyleConfig()
SETTINGS = PipelineSettings(max_attempts=3, attempt_delay_seconds=0.5)


class _ScriptedProvider(ImageProvider):
    """Replays a script of image bytes or exceptions, repeating the last entry."""

    name = "scripted"

    def __init__(self, *script: bytes | Exception) -> None:
        self.script = list(script)
        self.requests: list[ImageRequest] = []

    def capabilities(self) -> ImageCapabilities:
        return ImageCapabilities()

    async def synthesize(self, request: ImageRequest) -> ImageResponse:
        self.requests.append(request)
        index = min(len(self.requests), len(self.script)) - 1
        step = self.script[index]
        if isinstance(step, Exception):
            raise step
        return ImageResponse(image_bytes=step, raw={}, model="scripted", cost_usd=0.01, latency_ms=5.0)


class _HangingProvider(_ScriptedProvider):
    async def synthesize(self, request: ImageRequest) -> ImageResponse:
        self.requests.append(request)
        await asyncio.sleep(10)
        raise AssertionError("unreachable")


class _StubChecker(CharacterChecker):
    def __init__(self, passed: bool | None) -> None:
        self.passed = passed

    async def check(self, image_bytes: bytes, profile: CharacterProfile) -> CharacterCheckResult:
        return CharacterCheckResult(passed=self.passed, notes="different ears")


class _SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _orchestrator(provider, *, checker=None, settings=SETTINGS, sleep=None):
    return PageRetryOrchestrator(
        provider,
        QualityGate(character_checker=checker),
        settings,
        sleep=sleep or _SleepRecorder(),
    )


async def test_first_clean_image_passes() -> None:
    provider = _ScriptedProvider(line_art_page())
    outcome = await _orchestrator(provider).run(SCENE, STYLE)

    assert outcome.status == PageStatus.DONE
    assert outcome.final_state == PageState.PASSED
    assert outcome.attempts == 1
    assert outcome.image_bytes == line_art_page()
    assert outcome.metrics is not None and outcome.metrics.passed_outline
    assert outcome.transitions == [
        PageState.PENDING,
        PageState.COMPILING,
        PageState.SYNTHESIZING,
        PageState.VALIDATING,
        PageState.PASSED,
    ]


async def test_content_policy_stops_after_one_attempt() -> None:
    provider = _ScriptedProvider(ContentPolicyError("safety system rejected the prompt"))
    sleep = _SleepRecorder()

    outcome = await _orchestrator(provider, sleep=sleep).run(SCENE, STYLE)

    assert outcome.final_state == PageState.EXHAUSTED
    assert outcome.status == PageStatus.FAILED
    assert outcome.error_code == PageErrorCode.CONTENT_POLICY
    assert outcome.attempts == 1
    assert len(provider.requests) == 1
    assert sleep.calls == []


async def test_fatal_error_is_not_retried() -> None:
    provider = _ScriptedProvider(FatalProviderError("invalid api key", status_code=401))
    outcome = await _orchestrator(provider).run(SCENE, STYLE)

    assert outcome.status == PageStatus.FAILED
    assert outcome.error_code == PageErrorCode.FATAL
    assert len(provider.requests) == 1


async def test_transient_error_is_retried_once_within_attempt() -> None:
    provider = _ScriptedProvider(TransientProviderError("upstream 503"), line_art_page())
    sleep = _SleepRecorder()

    outcome = await _orchestrator(provider, sleep=sleep).run(SCENE, STYLE)

    assert outcome.status == PageStatus.DONE
    assert outcome.attempts == 1
    assert len(provider.requests) == 2
    assert sleep.calls == [SETTINGS.transient_backoff_seconds]


async def test_rate_limit_uses_longer_backoff() -> None:
    provider = _ScriptedProvider(RateLimitError("slow down", status_code=429), line_art_page())
    sleep = _SleepRecorder()

    await _orchestrator(provider, sleep=sleep).run(SCENE, STYLE)

    assert sleep.calls == [SETTINGS.rate_limit_backoff_seconds]


async def test_repeated_transient_errors_exhaust_without_image() -> None:
    provider = _ScriptedProvider(TransientProviderError("upstream 503"))

    outcome = await _orchestrator(provider).run(SCENE, STYLE)

    assert outcome.status == PageStatus.FAILED
    assert outcome.final_state == PageState.EXHAUSTED
    assert outcome.error_code == PageErrorCode.TRANSIENT
    assert outcome.attempts == SETTINGS.max_attempts
    assert len(provider.requests) == 2 * SETTINGS.max_attempts


async def test_provider_timeout_counts_as_transient() -> None:
    provider = _HangingProvider()
    settings = PipelineSettings(max_attempts=1, provider_timeout_seconds=0.01)

    outcome = await _orchestrator(provider, settings=settings).run(SCENE, STYLE)

    assert outcome.status == PageStatus.FAILED
    assert outcome.error_code == PageErrorCode.TRANSIENT
    assert len(provider.requests) == 2


async def test_failed_quality_reinforces_next_attempt() -> None:
    provider = _ScriptedProvider(all_black_page(), line_art_page())
    sleep = _SleepRecorder()

    outcome = await _orchestrator(provider, sleep=sleep).run(SCENE, STYLE)

    assert outcome.status == PageStatus.DONE
    assert outcome.attempts == 2
    assert outcome.warning is None
    assert PageState.REINFORCING in outcome.transitions
    assert "LEVEL 1" not in provider.requests[0].prompt
    assert "LEVEL 1" in provider.requests[1].prompt
    assert "FIX FROM PREVIOUS ATTEMPT" in provider.requests[1].prompt
    assert sleep.calls == [SETTINGS.attempt_delay_seconds]


async def test_exhaustion_returns_best_effort_image() -> None:
    provider = _ScriptedProvider(all_black_page(), all_black_page(), filled_block_page())

    outcome = await _orchestrator(provider).run(SCENE, STYLE)

    assert outcome.final_state == PageState.EXHAUSTED
    assert outcome.status == PageStatus.DONE
    assert outcome.degraded is True
    assert outcome.image_bytes == filled_block_page()
    assert outcome.error_code == PageErrorCode.QUALITY_GATE
    assert outcome.warning and "Best-effort" in outcome.warning
    assert outcome.attempts == SETTINGS.max_attempts
    assert len(provider.requests) == SETTINGS.max_attempts
    assert "LEVEL 2" in provider.requests[2].prompt


async def test_attempts_never_exceed_request_override() -> None:
    provider = _ScriptedProvider(all_black_page())

    outcome = await _orchestrator(provider).run(SCENE, STYLE, max_attempts=2)

    assert outcome.attempts == 2
    assert len(provider.requests) == 2


async def test_undecodable_image_is_retried() -> None:
    provider = _ScriptedProvider(b"garbage", line_art_page())

    outcome = await _orchestrator(provider).run(SCENE, STYLE)

    assert outcome.status == PageStatus.DONE
    assert outcome.attempts == 2


async def test_undecodable_image_on_last_attempt_fails() -> None:
    provider = _ScriptedProvider(b"garbage")

    outcome = await _orchestrator(provider).run(SCENE, STYLE, max_attempts=1)

    assert outcome.status == PageStatus.FAILED
    assert outcome.error_code == PageErrorCode.GENERATION_FAILED


async def test_validation_disabled_accepts_first_image() -> None:
    provider = _ScriptedProvider(all_black_page())
    checks = QualityChecks(outline=False, composition=False, character=False)

    outcome = await _orchestrator(provider).run(SCENE, STYLE, checks=checks)

    assert outcome.status == PageStatus.DONE
    assert outcome.final_state == PageState.PASSED
    assert outcome.metrics is None


async def test_character_mismatch_on_last_attempt_passes_with_warning() -> None:
    provider = _ScriptedProvider(line_art_page())
    character = CharacterProfile(canonical_name="Pip the fox")

    outcome = await _orchestrator(provider, checker=_StubChecker(passed=False)).run(
        SCENE, STYLE, character, max_attempts=2
    )

    assert outcome.status == PageStatus.DONE
    assert outcome.final_state == PageState.PASSED
    assert outcome.attempts == 2
    assert outcome.warning and "Character consistency" in outcome.warning
    assert outcome.metrics is not None and outcome.metrics.passed_character is False
