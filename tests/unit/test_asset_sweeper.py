"""Tests for the periodic asset sweeper worker."""

from __future__ import annotations

import importlib.util
from pathlib import Path

import pytest

from colorbook_assets import SweepReport

ROOT = Path(__file__).resolve().parents[2]
WORKER_MAIN = ROOT / "services" / "asset-sweeper" / "app" / "worker.py"
MODULE_NAME = "asset_sweeper_under_test"

SPEC = importlib.util.spec_from_file_location(MODULE_NAME, WORKER_MAIN)
if SPEC is None or SPEC.loader is None:
    raise RuntimeError("Failed to load asset sweeper module for testing")
worker = importlib.util.module_from_spec(SPEC)
SPEC.loader.exec_module(worker)


class _ScriptedManager:
    def __init__(self, *reports: SweepReport) -> None:
        self.reports = list(reports)
        self.batch_sizes: list[int] = []

    def sweep_expired(self, batch_size: int = 100) -> SweepReport:
        self.batch_sizes.append(batch_size)
        if self.reports:
            return self.reports.pop(0)
        return SweepReport(processed=0, deleted=0, errors=0, has_more=False)


def test_cycle_drains_backlog() -> None:
    manager = _ScriptedManager(
        SweepReport(processed=10, deleted=10, errors=0, has_more=True),
        SweepReport(processed=4, deleted=4, errors=0, has_more=False),
    )

    assert worker.run_cycle(manager, batch_size=10) == 14
    assert manager.batch_sizes == [10, 10]


def test_cycle_stops_when_only_failures_remain() -> None:
    manager = _ScriptedManager(
        SweepReport(processed=10, deleted=0, errors=10, has_more=True),
        SweepReport(processed=10, deleted=10, errors=0, has_more=False),
    )

    assert worker.run_cycle(manager, batch_size=10) == 0
    assert len(manager.batch_sizes) == 1


def test_cycle_is_capped(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(worker, "MAX_BATCHES_PER_CYCLE", 3)
    manager = _ScriptedManager(*[SweepReport(processed=1, deleted=1, errors=0, has_more=True)] * 5)

    assert worker.run_cycle(manager, batch_size=1) == 3


def test_main_requires_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("STORAGE_ROOT", raising=False)

    with pytest.raises(RuntimeError):
        worker.main()
