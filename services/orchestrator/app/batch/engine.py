"""Windowed fan-out of the page state machine across a batch."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Awaitable, Callable, Sequence

from colorbook_observability import log_context, observe_stage_duration
from colorbook_schemas import (
    CharacterProfile,
    PageErrorCode,
    PageOutcome,
    PageState,
    PageStatus,
    ScenePrompt,
    StyleConfig,
)

from ..quality import QualityChecks
from ..retry import PageRetryOrchestrator

logger = logging.getLogger(__name__)

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 3

Sleep = Callable[[float], Awaitable[None]]
PageCallback = Callable[[PageOutcome], Awaitable[None]]


@dataclass
class BatchResult:
    outcomes: list[PageOutcome] = field(default_factory=list)
    windows_run: int = 0
    cancelled: bool = False

    @property
    def success_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == PageStatus.DONE)

    @property
    def fail_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == PageStatus.FAILED)


class BatchScheduler:
    """Run pages in sequential windows of ``concurrency`` concurrent pages.

    Cancellation is cooperative: ``cancel_event`` is checked before each window
    starts, so an in-flight window always finishes. Pages that never started are
    reported with ``error_code=CANCELLED``.
    """

    def __init__(
        self,
        orchestrator: PageRetryOrchestrator,
        *,
        concurrency: int = 2,
        inter_batch_delay: float = 0.5,
        sleep: Sleep = asyncio.sleep,
        service_name: str = "orchestrator",
    ) -> None:
        if not MIN_CONCURRENCY <= concurrency <= MAX_CONCURRENCY:
            raise ValueError(
                f"concurrency must be between {MIN_CONCURRENCY} and {MAX_CONCURRENCY}, got {concurrency}"
            )
        if inter_batch_delay < 0:
            raise ValueError("inter_batch_delay must not be negative")
        self.orchestrator = orchestrator
        self.concurrency = concurrency
        self.inter_batch_delay = inter_batch_delay
        self._sleep = sleep
        self.service_name = service_name

    def windows(self, scenes: Sequence[ScenePrompt]) -> list[Sequence[ScenePrompt]]:
        return [scenes[i : i + self.concurrency] for i in range(0, len(scenes), self.concurrency)]

    async def run(
        self,
        scenes: Sequence[ScenePrompt],
        style: StyleConfig,
        character: CharacterProfile | None = None,
        *,
        checks: QualityChecks = QualityChecks(),
        max_attempts: int | None = None,
        cancel_event: asyncio.Event | None = None,
        on_page_complete: PageCallback | None = None,
    ) -> BatchResult:
        result = BatchResult()
        windows = self.windows(scenes)
        logger.info(
            "Starting batch",
            extra={
                "page_count": len(scenes),
                "window_count": len(windows),
                "concurrency": self.concurrency,
            },
        )

        for index, window in enumerate(windows):
            if cancel_event is not None and cancel_event.is_set():
                remaining = [scene for pending in windows[index:] for scene in pending]
                result.outcomes.extend(self._cancelled(scene) for scene in remaining)
                result.cancelled = True
                logger.warning(
                    "Batch cancelled at window boundary",
                    extra={"windows_run": result.windows_run, "skipped_pages": len(remaining)},
                )
                break

            window_start = perf_counter()
            with log_context(stage="window", window_index=index):
                outcomes = await asyncio.gather(
                    *(
                        self._run_page(
                            scene,
                            style,
                            character,
                            checks=checks,
                            max_attempts=max_attempts,
                            on_page_complete=on_page_complete,
                        )
                        for scene in window
                    )
                )
            result.outcomes.extend(outcomes)
            result.windows_run += 1
            observe_stage_duration(
                "window",
                perf_counter() - window_start,
                service_name=self.service_name,
            )

            if index < len(windows) - 1 and self.inter_batch_delay:
                await self._sleep(self.inter_batch_delay)

        logger.info(
            "Batch finished",
            extra={
                "success_count": result.success_count,
                "fail_count": result.fail_count,
                "windows_run": result.windows_run,
                "cancelled": result.cancelled,
            },
        )
        return result

    async def _run_page(
        self,
        scene: ScenePrompt,
        style: StyleConfig,
        character: CharacterProfile | None,
        *,
        checks: QualityChecks,
        max_attempts: int | None,
        on_page_complete: PageCallback | None,
    ) -> PageOutcome:
        try:
            outcome = await self.orchestrator.run(
                scene,
                style,
                character,
                checks=checks,
                max_attempts=max_attempts,
            )
        except Exception as exc:
            logger.exception("Page crashed", extra={"page_index": scene.page_index})
            return PageOutcome(
                page_index=scene.page_index,
                status=PageStatus.FAILED,
                last_error=str(exc) or exc.__class__.__name__,
                error_code=PageErrorCode.INTERNAL,
                final_state=PageState.EXHAUSTED,
            )

        if on_page_complete is not None:
            try:
                await on_page_complete(outcome)
            except Exception as exc:
                logger.exception(
                    "Post-processing failed for page",
                    extra={"page_index": scene.page_index},
                )
                note = f"Post-processing failed: {exc}"
                warning = f"{outcome.warning}; {note}" if outcome.warning else note
                outcome = outcome.model_copy(update={"warning": warning})
        return outcome

    @staticmethod
    def _cancelled(scene: ScenePrompt) -> PageOutcome:
        return PageOutcome(
            page_index=scene.page_index,
            status=PageStatus.FAILED,
            last_error="Batch cancelled before this page started",
            error_code=PageErrorCode.CANCELLED,
            final_state=PageState.PENDING,
            transitions=[PageState.PENDING],
        )
