"""Tests for windowed batch scheduling."""

from __future__ import annotations

import asyncio

import pytest

from colorbook_schemas import (
    PageErrorCode,
    PageOutcome,
    PageState,
    PageStatus,
    ScenePrompt,
    StyleConfig,
)

from services.orchestrator.app.batch import BatchScheduler

pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
def anyio_backend():
    return "asyncio"


STYLE = StyleConfig()


def _scenes(count: int) -> list[ScenePrompt]:
    return [
        ScenePrompt(page_index=index, title=f"Page {index}", raw_text=f"scene number {index}")
        for index in range(1, count + 1)
    ]


class _RecordingOrchestrator:
    """Stands in for the page state machine and logs start/finish events."""

    def __init__(self, events: list[tuple], *, crash_on: set[int] | None = None, delays: dict[int, float] | None = None):
        self.events = events
        self.crash_on = crash_on or set()
        self.delays = delays or {}
        self.active = 0
        self.max_active = 0

    async def run(self, scene, style, character=None, *, checks=None, max_attempts=None) -> PageOutcome:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.events.append(("start", scene.page_index))
        try:
            await asyncio.sleep(self.delays.get(scene.page_index, 0))
            if scene.page_index in self.crash_on:
                raise RuntimeError(f"boom on page {scene.page_index}")
            return PageOutcome(
                page_index=scene.page_index,
                status=PageStatus.DONE,
                image_bytes=b"png",
                attempts=1,
                final_state=PageState.PASSED,
            )
        finally:
            self.active -= 1
            self.events.append(("end", scene.page_index))


def _scheduler(orchestrator, events, *, concurrency=2, delay=0.5, on_sleep=None):
    async def sleep(seconds: float) -> None:
        events.append(("sleep", seconds))
        if on_sleep is not None:
            on_sleep()

    return BatchScheduler(orchestrator, concurrency=concurrency, inter_batch_delay=delay, sleep=sleep)


async def test_five_pages_run_in_three_windows_with_delays() -> None:
    events: list[tuple] = []
    orchestrator = _RecordingOrchestrator(events)
    scheduler = _scheduler(orchestrator, events)

    result = await scheduler.run(_scenes(5), STYLE)

    assert result.windows_run == 3
    assert [len(window) for window in scheduler.windows(_scenes(5))] == [2, 2, 1]
    assert [event for event in events if event[0] == "sleep"] == [("sleep", 0.5), ("sleep", 0.5)]
    assert events[-1] == ("end", 5)
    first_sleep = events.index(("sleep", 0.5))
    assert {("end", 1), ("end", 2)} <= set(events[:first_sleep])
    assert ("start", 3) in events[first_sleep:]
    assert orchestrator.max_active <= 2
    assert result.success_count == 5
    assert result.fail_count == 0


async def test_results_follow_input_order() -> None:
    events: list[tuple] = []
    orchestrator = _RecordingOrchestrator(events, delays={1: 0.02, 2: 0.0, 3: 0.01})
    scheduler = _scheduler(orchestrator, events, concurrency=3, delay=0)

    result = await scheduler.run(_scenes(3), STYLE)

    assert [outcome.page_index for outcome in result.outcomes] == [1, 2, 3]
    assert ("end", 2) in events[: events.index(("end", 1))]


async def test_page_crash_does_not_cancel_siblings() -> None:
    events: list[tuple] = []
    orchestrator = _RecordingOrchestrator(events, crash_on={2})
    scheduler = _scheduler(orchestrator, events)

    result = await scheduler.run(_scenes(4), STYLE)

    statuses = {outcome.page_index: outcome.status for outcome in result.outcomes}
    assert statuses == {1: PageStatus.DONE, 2: PageStatus.FAILED, 3: PageStatus.DONE, 4: PageStatus.DONE}
    crashed = result.outcomes[1]
    assert crashed.error_code == PageErrorCode.INTERNAL
    assert "boom" in (crashed.last_error or "")
    assert result.fail_count == 1


async def test_cancellation_stops_at_window_boundary() -> None:
    events: list[tuple] = []
    cancel = asyncio.Event()
    orchestrator = _RecordingOrchestrator(events)
    scheduler = _scheduler(orchestrator, events, on_sleep=cancel.set)

    result = await scheduler.run(_scenes(5), STYLE, cancel_event=cancel)

    assert result.cancelled is True
    assert result.windows_run == 1
    assert [outcome.page_index for outcome in result.outcomes] == [1, 2, 3, 4, 5]
    skipped = result.outcomes[2:]
    assert all(outcome.error_code == PageErrorCode.CANCELLED for outcome in skipped)
    assert all(outcome.final_state == PageState.PENDING for outcome in skipped)
    assert ("start", 3) not in events


async def test_completion_callback_failure_becomes_warning() -> None:
    events: list[tuple] = []
    seen: list[int] = []

    async def on_complete(outcome: PageOutcome) -> None:
        seen.append(outcome.page_index)
        if outcome.page_index == 1:
            raise OSError("disk full")

    scheduler = _scheduler(_RecordingOrchestrator(events), events, delay=0)
    result = await scheduler.run(_scenes(2), STYLE, on_page_complete=on_complete)

    assert sorted(seen) == [1, 2]
    assert result.outcomes[0].status == PageStatus.DONE
    assert "disk full" in (result.outcomes[0].warning or "")
    assert result.outcomes[1].warning is None


@pytest.mark.parametrize("concurrency", [0, 4])
def test_concurrency_bounds_are_enforced(concurrency: int) -> None:
    with pytest.raises(ValueError):
        BatchScheduler(_RecordingOrchestrator([]), concurrency=concurrency)
