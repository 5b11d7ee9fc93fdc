"""Tests for the pixel quality gate and the pluggable character check."""

from __future__ import annotations

import numpy as np
import pytest

from colorbook_providers.mock import render_outline_page
from colorbook_schemas import CanvasSize, CharacterProfile, Complexity, LineThickness, StyleConfig

from services.orchestrator.app.quality import (
    CharacterChecker,
    CharacterCheckResult,
    ImageDecodeError,
    QualityChecks,
    QualityGate,
    evaluate_image,
)
from services.orchestrator.app.quality.engine import run_lengths
from services.orchestrator.app.settings import QualityThresholds, load_quality_thresholds
from tests.utils.images import (
    all_black_page,
    filled_block_page,
    framed_page,
    line_art_page,
    shaded_page,
    top_half_page,
    transparent_line_art_page,
)

pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
def anyio_backend():
    return "asyncio"


STYLE = StyleConfig(
    complexity=Complexity.SIMPLE,
    line_thickness=LineThickness.BOLD,
    canvas_size=CanvasSize.PORTRAIT,
)
CHARACTER = CharacterProfile(canonical_name="Pip the fox", proportions="small and round")


class _StubChecker(CharacterChecker):
    def __init__(self, passed: bool | None, notes: str = "") -> None:
        self.passed = passed
        self.notes = notes
        self.calls = 0

    async def check(self, image_bytes: bytes, profile: CharacterProfile) -> CharacterCheckResult:
        self.calls += 1
        return CharacterCheckResult(passed=self.passed, notes=self.notes)


def test_all_black_image_fails_with_reinforcement() -> None:
    report = evaluate_image(all_black_page(), STYLE)

    assert report.passed is False
    assert report.metrics.black_ratio == pytest.approx(1.0)
    assert report.metrics.passed_outline is False
    assert report.retry_reinforcement.strip()
    assert report.failures[0].check == "black_ratio"


def test_clean_line_art_passes() -> None:
    report = evaluate_image(line_art_page(), STYLE)

    assert report.passed is True
    assert report.failures == []
    assert report.metrics.long_run_count == 0
    assert report.metrics.black_ratio < 0.22
    assert report.metrics.coverage_ratio >= 0.85
    assert report.metrics.bottom_blank_ratio is not None
    assert report.retry_reinforcement == ""


def test_transparent_background_is_flattened_to_white() -> None:
    report = evaluate_image(transparent_line_art_page(), STYLE)

    assert report.passed is True
    assert report.metrics.black_ratio < 0.22


def test_filled_region_trips_long_run_check() -> None:
    report = evaluate_image(filled_block_page(), STYLE)

    assert report.metrics.black_ratio < 0.22
    assert report.metrics.long_run_count > 0
    assert report.metrics.longest_run >= 60
    assert report.failures[0].check == "long_run"
    assert report.passed is False


def test_long_run_tolerance_is_configurable() -> None:
    thresholds = QualityThresholds(max_long_run_lines=1000)
    report = evaluate_image(filled_block_page(), STYLE, thresholds)

    assert report.passed is True


def test_top_half_art_fails_composition() -> None:
    report = evaluate_image(top_half_page(), STYLE, collect_all=True)

    checks = [failure.check for failure in report.failures]
    assert "coverage" in checks
    assert "bottom_band" in checks
    assert report.metrics.passed_outline is True
    assert report.metrics.passed_composition is False


def test_square_canvas_skips_bottom_band() -> None:
    square = StyleConfig(canvas_size=CanvasSize.SQUARE)
    report = evaluate_image(top_half_page(), square, collect_all=True)

    assert report.metrics.bottom_blank_ratio is None
    assert "bottom_band" not in [failure.check for failure in report.failures]


def test_edge_frame_fails_border_and_does_not_count_as_coverage() -> None:
    square = STYLE.model_copy(update={"canvas_size": CanvasSize.SQUARE})
    report = evaluate_image(framed_page(), square, collect_all=True)

    checks = [failure.check for failure in report.failures]
    assert "border" in checks
    assert "coverage" in checks
    assert report.metrics.border_dark_ratio > 0.5
    assert report.metrics.coverage_ratio == pytest.approx(0.6, abs=0.02)
    assert report.metrics.passed_outline is False
    assert "PURE WHITE BACKGROUND" in report.retry_reinforcement


def test_gray_shading_fails_shading_check() -> None:
    report = evaluate_image(shaded_page(), STYLE)

    assert report.passed is False
    assert report.failures[0].check == "shading"
    assert report.metrics.gray_ratio > 0.5
    assert report.metrics.border_dark_ratio < 0.1
    assert "gray tones" in report.retry_reinforcement


def test_clean_pages_have_white_edges_and_no_shading() -> None:
    mock_page = render_outline_page(CanvasSize.PORTRAIT)

    for image in (line_art_page(), mock_page):
        report = evaluate_image(image, STYLE)
        assert report.passed is True
        assert report.metrics.border_dark_ratio <= 0.1
        assert report.metrics.gray_ratio == 0.0


def test_border_and_shading_limits_are_configurable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COLORBOOK_MAX_GRAY_RATIO", "1")
    monkeypatch.setenv("COLORBOOK_MAX_BORDER_DARK_RATIO", "0.9")

    thresholds = load_quality_thresholds()

    assert thresholds.max_gray_ratio == 1.0
    assert thresholds.max_border_dark_ratio == 0.9
    assert evaluate_image(shaded_page(), STYLE, thresholds).passed is True


def test_short_circuit_reports_first_failure_only() -> None:
    short = evaluate_image(all_black_page(), STYLE)
    full = evaluate_image(all_black_page(), STYLE, collect_all=True)

    assert len(short.failures) == 1
    assert len(full.failures) > 1
    assert short.metrics == full.metrics


def test_disabled_checks_do_not_fail() -> None:
    report = evaluate_image(all_black_page(), STYLE, checks=QualityChecks(outline=False, composition=False))

    assert report.passed is True
    assert report.metrics.passed_outline is False


def test_evaluation_is_deterministic() -> None:
    image = filled_block_page()
    assert evaluate_image(image, STYLE).metrics == evaluate_image(image, STYLE).metrics


def test_undecodable_bytes_raise() -> None:
    with pytest.raises(ImageDecodeError):
        evaluate_image(b"definitely not a png", STYLE)


def test_run_lengths_marks_each_pixel_with_its_run() -> None:
    mask = np.array(
        [
            [True, True, False, True],
            [False, False, False, False],
            [True, True, True, True],
        ]
    )

    np.testing.assert_array_equal(
        run_lengths(mask),
        np.array([[2, 2, 0, 1], [0, 0, 0, 0], [4, 4, 4, 4]]),
    )


def test_thresholds_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COLORBOOK_MAX_BLACK_RATIO_SIMPLE", "0.5")
    monkeypatch.setenv("COLORBOOK_MIN_CANVAS_COVERAGE", "0.7")

    thresholds = load_quality_thresholds()

    assert thresholds.max_black_ratio[Complexity.SIMPLE] == 0.5
    assert thresholds.max_black_ratio[Complexity.DETAILED] == 0.34
    assert thresholds.min_canvas_coverage == 0.7


def test_invalid_threshold_environment_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COLORBOOK_MIN_CANVAS_COVERAGE", "most of it")

    with pytest.raises(ValueError):
        load_quality_thresholds()


async def test_gate_runs_character_check_after_pixel_checks_pass() -> None:
    checker = _StubChecker(passed=False, notes="tail is missing")
    gate = QualityGate(character_checker=checker)

    report = await gate.inspect(line_art_page(), STYLE, CHARACTER)

    assert checker.calls == 1
    assert report.passed is False
    assert report.hard_passed is True
    assert report.only_character_failed is True
    assert report.metrics.passed_character is False
    assert "tail is missing" in (report.failure_reason or "")


async def test_gate_skips_character_check_when_pixels_fail() -> None:
    checker = _StubChecker(passed=True)
    gate = QualityGate(character_checker=checker)

    report = await gate.inspect(all_black_page(), STYLE, CHARACTER)

    assert checker.calls == 0
    assert report.metrics.passed_character is None


async def test_inconclusive_character_check_does_not_fail() -> None:
    gate = QualityGate(character_checker=_StubChecker(passed=None))

    report = await gate.inspect(line_art_page(), STYLE, CHARACTER)

    assert report.passed is True
    assert report.metrics.passed_character is None


async def test_character_check_requires_profile() -> None:
    checker = _StubChecker(passed=False)
    gate = QualityGate(character_checker=checker)

    report = await gate.inspect(line_art_page(), STYLE, None)

    assert checker.calls == 0
    assert report.passed is True
