"""Per-page retry state machine: compile, synthesize, validate, reinforce."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Awaitable, Callable

from colorbook_observability import (
    log_context,
    observe_page_outcome,
    observe_provider_error,
    observe_provider_response,
    observe_stage_duration,
)
from colorbook_providers import (
    ImageProvider,
    ImageRequest,
    ProviderError,
    ProviderErrorKind,
    TransientProviderError,
)
from colorbook_schemas import (
    CharacterProfile,
    CompiledPrompt,
    PageErrorCode,
    PageOutcome,
    PageState,
    PageStatus,
    ScenePrompt,
    StyleConfig,
)

from ..compiler import MAX_REINFORCEMENT_LEVEL, compile_prompt
from ..quality import ImageDecodeError, QualityChecks, QualityGate, QualityReport
from ..settings import PipelineSettings

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

ERROR_CODES: dict[ProviderErrorKind, PageErrorCode] = {
    ProviderErrorKind.CONTENT_POLICY: PageErrorCode.CONTENT_POLICY,
    ProviderErrorKind.RATE_LIMIT: PageErrorCode.RATE_LIMIT,
    ProviderErrorKind.TRANSIENT: PageErrorCode.TRANSIENT,
    ProviderErrorKind.FATAL: PageErrorCode.FATAL,
}

# Retrying cannot change the provider's answer for these.
_TERMINAL_KINDS = (ProviderErrorKind.CONTENT_POLICY, ProviderErrorKind.FATAL)


@dataclass
class PageRun:
    """Mutable bookkeeping for one page while the machine is running."""

    scene: ScenePrompt
    style: StyleConfig
    character: CharacterProfile | None
    checks: QualityChecks
    max_attempts: int
    state: PageState = PageState.PENDING
    attempt: int = 1
    level: int = 0
    feedback: str | None = None
    compiled: CompiledPrompt | None = None
    image: bytes | None = None
    last_image: bytes | None = None
    last_report: QualityReport | None = None
    last_error: str | None = None
    error_code: PageErrorCode | None = None
    warning: str | None = None
    transitions: list[PageState] = field(default_factory=lambda: [PageState.PENDING])


class PageRetryOrchestrator:
    """Drive one page from ``PENDING`` to ``PASSED`` or ``EXHAUSTED``.

    The provider, gate and sleep function are injected so the machine can run
    against stubs without waiting on real backoff delays.
    """

    def __init__(
        self,
        provider: ImageProvider,
        gate: QualityGate,
        settings: PipelineSettings | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
        service_name: str = "orchestrator",
    ) -> None:
        self.provider = provider
        self.gate = gate
        self.settings = settings or PipelineSettings()
        self._sleep = sleep
        self.service_name = service_name
        self._handlers = {
            PageState.PENDING: self._on_pending,
            PageState.COMPILING: self._on_compiling,
            PageState.SYNTHESIZING: self._on_synthesizing,
            PageState.VALIDATING: self._on_validating,
            PageState.REINFORCING: self._on_reinforcing,
        }

    async def run(
        self,
        scene: ScenePrompt,
        style: StyleConfig,
        character: CharacterProfile | None = None,
        *,
        checks: QualityChecks = QualityChecks(),
        max_attempts: int | None = None,
    ) -> PageOutcome:
        run = PageRun(
            scene=scene,
            style=style,
            character=character,
            checks=checks,
            max_attempts=max(1, max_attempts or self.settings.max_attempts),
        )
        start = perf_counter()
        with log_context(page_index=scene.page_index, provider=self.provider.name):
            while not run.state.is_terminal:
                with log_context(attempt=run.attempt, state=run.state.value):
                    next_state = await self._handlers[run.state](run)
                run.state = next_state
                run.transitions.append(next_state)

            outcome = self._finish(run)
            logger.info(
                "Page finished",
                extra={
                    "status": outcome.status.value,
                    "final_state": outcome.final_state.value,
                    "attempts": outcome.attempts,
                    "error_code": outcome.error_code.value if outcome.error_code else None,
                    "degraded": outcome.degraded,
                },
            )

        observe_stage_duration(
            "page",
            perf_counter() - start,
            service_name=self.service_name,
            status="success" if outcome.final_state == PageState.PASSED else "error",
        )
        observe_page_outcome(
            status=outcome.status.value,
            final_state=outcome.final_state.value,
            attempts=outcome.attempts,
            service_name=self.service_name,
        )
        return outcome

    async def _on_pending(self, run: PageRun) -> PageState:
        return PageState.COMPILING

    async def _on_compiling(self, run: PageRun) -> PageState:
        run.compiled = compile_prompt(
            run.scene.raw_text,
            run.style,
            character=run.character,
            reinforcement_level=run.level,
            feedback=run.feedback,
            page_index=run.scene.page_index,
            attempt=run.attempt,
            max_length=self.settings.max_prompt_length,
        )
        logger.debug(
            "Compiled prompt",
            extra={
                "reinforcement_level": run.compiled.reinforcement_level,
                "prompt_length": len(run.compiled.text),
                "truncated": run.compiled.truncated,
            },
        )
        return PageState.SYNTHESIZING

    async def _on_synthesizing(self, run: PageRun) -> PageState:
        assert run.compiled is not None
        request = ImageRequest(
            prompt=run.compiled.text,
            size=run.style.canvas_size,
            metadata={"page_index": run.scene.page_index, "attempt": run.attempt},
        )
        retried = False
        while True:
            try:
                response = await asyncio.wait_for(
                    self.provider.synthesize(request),
                    timeout=self.settings.provider_timeout_seconds,
                )
            except asyncio.TimeoutError:
                error: ProviderError = TransientProviderError(
                    f"Provider call exceeded {self.settings.provider_timeout_seconds:g}s"
                )
            except ProviderError as exc:
                error = exc
            else:
                observe_provider_response(
                    provider=self.provider.name,
                    service_name=self.service_name,
                    response=response,
                )
                run.image = response.image_bytes
                return PageState.VALIDATING

            observe_provider_error(
                provider=self.provider.name,
                service_name=self.service_name,
                kind=error.kind.value,
            )
            run.last_error = error.message
            run.error_code = ERROR_CODES[error.kind]

            if error.kind in _TERMINAL_KINDS:
                logger.warning(
                    "Provider refused request; no further attempts",
                    extra={"error_kind": error.kind.value, "error_code": error.code},
                )
                return PageState.EXHAUSTED
            if retried:
                logger.warning(
                    "Provider failed twice; counting attempt as failed",
                    extra={"error_kind": error.kind.value},
                )
                return PageState.REINFORCING

            retried = True
            delay = (
                self.settings.rate_limit_backoff_seconds
                if error.kind == ProviderErrorKind.RATE_LIMIT
                else self.settings.transient_backoff_seconds
            )
            logger.info(
                "Retrying provider call after backoff",
                extra={"error_kind": error.kind.value, "backoff_seconds": delay},
            )
            await self._sleep(delay)

    async def _on_validating(self, run: PageRun) -> PageState:
        assert run.image is not None
        if not run.checks.any_enabled:
            run.last_image = run.image
            return PageState.PASSED

        try:
            report = await self.gate.inspect(
                run.image,
                run.style,
                run.character,
                checks=run.checks,
            )
        except ImageDecodeError as exc:
            run.last_error = str(exc)
            run.error_code = PageErrorCode.GENERATION_FAILED
            run.feedback = None
            return PageState.REINFORCING

        run.last_image = run.image
        run.last_report = report
        if report.passed:
            return PageState.PASSED
        if report.only_character_failed and run.attempt >= run.max_attempts:
            run.warning = (
                "Character consistency could not be confirmed; page passed the outline and "
                "composition checks"
            )
            return PageState.PASSED

        run.feedback = report.retry_reinforcement
        run.last_error = report.failure_reason
        run.error_code = PageErrorCode.QUALITY_GATE
        return PageState.REINFORCING

    async def _on_reinforcing(self, run: PageRun) -> PageState:
        if run.attempt >= run.max_attempts:
            return PageState.EXHAUSTED
        run.attempt += 1
        run.level = min(run.level + 1, MAX_REINFORCEMENT_LEVEL)
        if self.settings.attempt_delay_seconds:
            await self._sleep(self.settings.attempt_delay_seconds)
        return PageState.COMPILING

    def _finish(self, run: PageRun) -> PageOutcome:
        metrics = run.last_report.metrics if run.last_report else None
        common = {
            "page_index": run.scene.page_index,
            "attempts": run.attempt,
            "final_state": run.state,
            "metrics": metrics,
            "transitions": list(run.transitions),
        }

        if run.state == PageState.PASSED:
            return PageOutcome(
                status=PageStatus.DONE,
                image_bytes=run.last_image,
                warning=run.warning,
                **common,
            )

        if run.last_image is not None and run.error_code != PageErrorCode.CONTENT_POLICY:
            return PageOutcome(
                status=PageStatus.DONE,
                image_bytes=run.last_image,
                last_error=run.last_error,
                error_code=run.error_code,
                warning=(
                    f"Best-effort image returned after {run.attempt} attempt(s); "
                    f"last issue: {run.last_error or 'quality checks failed'}"
                ),
                **common,
            )

        return PageOutcome(
            status=PageStatus.FAILED,
            last_error=run.last_error or "Generation failed",
            error_code=run.error_code or PageErrorCode.GENERATION_FAILED,
            **common,
        )
