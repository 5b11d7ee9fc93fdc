"""Pixel-level quality gate for generated coloring pages."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field

import numpy as np
from PIL import Image, UnidentifiedImageError

from colorbook_observability import observe_quality_check
from colorbook_schemas import CharacterProfile, Orientation, QualityMetrics, StyleConfig

from ..settings import QualityThresholds
from .character import CharacterChecker
from .prompts import REINFORCEMENT_HINTS

logger = logging.getLogger(__name__)

MIN_RUN_LIMIT = 4
REFERENCE_WIDTH = 1024


class ImageDecodeError(ValueError):
    """Raised when returned bytes are not a decodable raster image."""


@dataclass(frozen=True)
class QualityChecks:
    """Toggles for the optional groups of checks."""

    outline: bool = True
    composition: bool = True
    character: bool = True

    @property
    def any_enabled(self) -> bool:
        return self.outline or self.composition or self.character


@dataclass(frozen=True)
class QualityFailure:
    check: str
    message: str


@dataclass
class QualityReport:
    metrics: QualityMetrics
    hard_passed: bool
    passed: bool
    failures: list[QualityFailure] = field(default_factory=list)
    retry_reinforcement: str = ""
    character_notes: str | None = None

    @property
    def failure_reason(self) -> str | None:
        if not self.failures:
            return None
        return "; ".join(failure.message for failure in self.failures)

    @property
    def only_character_failed(self) -> bool:
        return self.hard_passed and self.metrics.passed_character is False


@dataclass(frozen=True)
class PixelMeasurements:
    black_ratio: float
    run_limit: int
    longest_run: int
    long_run_count: int
    coverage_ratio: float
    bottom_blank_ratio: float | None
    border_dark_ratio: float
    gray_ratio: float


def decode_image(image_bytes: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageDecodeError("Generated payload is not a readable image") from exc
    return image


def to_grayscale(image: Image.Image) -> np.ndarray:
    """Flatten transparency onto white and return an 8-bit grayscale array."""

    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        image = Image.alpha_composite(background, rgba)
    return np.asarray(image.convert("L"), dtype=np.uint8)


def run_lengths(mask: np.ndarray) -> np.ndarray:
    """Length of the horizontal ``True`` run each pixel belongs to, 0 elsewhere."""

    height, width = mask.shape
    padded = np.zeros((height, width + 2), dtype=np.int8)
    padded[:, 1:-1] = mask
    edges = np.diff(padded, axis=1)
    starts = np.argwhere(edges == 1)
    ends = np.argwhere(edges == -1)

    result = np.zeros(height * width, dtype=np.int32)
    if len(starts) == 0:
        return result.reshape(height, width)

    lengths = ends[:, 1] - starts[:, 1]
    flat_starts = starts[:, 0] * width + starts[:, 1]
    offsets = np.arange(lengths.sum()) - np.repeat(np.cumsum(lengths) - lengths, lengths)
    positions = np.repeat(flat_starts, lengths) + offsets
    result[positions] = np.repeat(lengths, lengths)
    return result.reshape(height, width)


def measure(
    gray: np.ndarray,
    style: StyleConfig,
    thresholds: QualityThresholds,
) -> PixelMeasurements:
    """Compute every deterministic metric in one pass over the binarized image."""

    height, width = gray.shape
    dark = gray < thresholds.binarize_threshold
    dark_count = int(np.count_nonzero(dark))
    black_ratio = dark_count / dark.size if dark.size else 0.0

    base_limit = thresholds.max_run_length[style.line_thickness]
    run_limit = max(MIN_RUN_LIMIT, round(base_limit * width / REFERENCE_WIDTH))

    # A pixel is solid when it sits inside long runs in both directions;
    # crossing outlines are long in one direction only.
    horizontal = run_lengths(dark)
    vertical = run_lengths(dark.T).T
    solid = dark & (horizontal >= run_limit) & (vertical >= run_limit)
    solid_runs = run_lengths(solid)
    row_longest = solid_runs.max(axis=1) if solid_runs.size else np.zeros(0, dtype=np.int32)
    longest_run = int(row_longest.max()) if row_longest.size else 0
    long_run_count = int(np.count_nonzero(row_longest >= run_limit))

    edge = max(1, round(min(height, width) * thresholds.border_band_ratio))
    border = np.zeros_like(dark)
    border[:edge] = border[-edge:] = True
    border[:, :edge] = border[:, -edge:] = True
    border_pixels = int(np.count_nonzero(border))
    border_dark_ratio = int(np.count_nonzero(dark & border)) / border_pixels if border_pixels else 0.0

    # Ink in the edge band is frame, not artwork.
    inner = dark & ~border
    if inner.any():
        rows = np.flatnonzero(inner.any(axis=1))
        cols = np.flatnonzero(inner.any(axis=0))
        coverage_ratio = min(
            (rows[-1] - rows[0] + 1) / height,
            (cols[-1] - cols[0] + 1) / width,
        )
    else:
        coverage_ratio = 0.0

    bottom_blank_ratio: float | None = None
    if style.canvas_size.orientation != Orientation.SQUARE:
        band_rows = max(1, round(height * thresholds.bottom_band_ratio))
        band = dark[-band_rows:]
        bottom_blank_ratio = 1.0 - float(np.count_nonzero(band)) / band.size

    shaded = (gray > thresholds.shading_low) & (gray < thresholds.shading_high)
    gray_ratio = float(np.count_nonzero(shaded)) / gray.size if gray.size else 0.0

    return PixelMeasurements(
        black_ratio=round(black_ratio, 6),
        run_limit=run_limit,
        longest_run=longest_run,
        long_run_count=long_run_count,
        coverage_ratio=round(float(coverage_ratio), 6),
        bottom_blank_ratio=None if bottom_blank_ratio is None else round(bottom_blank_ratio, 6),
        border_dark_ratio=round(border_dark_ratio, 6),
        gray_ratio=round(gray_ratio, 6),
    )


def evaluate_image(
    image_bytes: bytes,
    style: StyleConfig,
    thresholds: QualityThresholds | None = None,
    *,
    checks: QualityChecks = QualityChecks(),
    collect_all: bool = False,
) -> QualityReport:
    """Run the deterministic outline and composition checks.

    Metrics are always measured in full. Toggles decide which failures count,
    and ``collect_all=False`` keeps only the first failing check.

    Raises:
        ImageDecodeError: If ``image_bytes`` cannot be decoded.
    """

    thresholds = thresholds or QualityThresholds()
    gray = to_grayscale(decode_image(image_bytes))
    measured = measure(gray, style, thresholds)
    max_black = thresholds.max_black_ratio[style.complexity]

    black_ok = measured.black_ratio <= max_black
    runs_ok = measured.long_run_count <= thresholds.max_long_run_lines
    border_ok = measured.border_dark_ratio <= thresholds.max_border_dark_ratio
    shading_ok = measured.gray_ratio <= thresholds.max_gray_ratio
    coverage_ok = measured.coverage_ratio >= thresholds.min_canvas_coverage
    bottom_ok = (
        measured.bottom_blank_ratio is None
        or measured.bottom_blank_ratio <= thresholds.max_bottom_blank_ratio
    )

    candidates: list[tuple[bool, bool, QualityFailure]] = [
        (
            checks.outline,
            black_ok,
            QualityFailure(
                "black_ratio",
                f"Black ratio {measured.black_ratio:.1%} exceeds {max_black:.0%} for {style.complexity.value} pages",
            ),
        ),
        (
            checks.outline,
            runs_ok,
            QualityFailure(
                "long_run",
                f"{measured.long_run_count} scan lines cross solid black regions "
                f"(longest {measured.longest_run}px, limit {measured.run_limit}px)",
            ),
        ),
        (
            checks.outline,
            border_ok,
            QualityFailure(
                "border",
                f"Page edges are {measured.border_dark_ratio:.0%} dark "
                f"(maximum {thresholds.max_border_dark_ratio:.0%}); frames and dark backgrounds are not allowed",
            ),
        ),
        (
            checks.outline,
            shading_ok,
            QualityFailure(
                "shading",
                f"{measured.gray_ratio:.0%} of the page is gray shading "
                f"(maximum {thresholds.max_gray_ratio:.0%})",
            ),
        ),
        (
            checks.composition,
            coverage_ok,
            QualityFailure(
                "coverage",
                f"Artwork covers {measured.coverage_ratio:.0%} of the canvas "
                f"(minimum {thresholds.min_canvas_coverage:.0%})",
            ),
        ),
        (
            checks.composition,
            bottom_ok,
            QualityFailure(
                "bottom_band",
                f"Bottom band is {(measured.bottom_blank_ratio or 0):.0%} empty "
                f"(maximum {thresholds.max_bottom_blank_ratio:.0%})",
            ),
        ),
    ]

    failures: list[QualityFailure] = []
    for enabled, ok, failure in candidates:
        if enabled and not ok:
            failures.append(failure)
            if not collect_all:
                break

    metrics = QualityMetrics(
        black_ratio=measured.black_ratio,
        long_run_count=measured.long_run_count,
        passed_outline=black_ok and runs_ok and border_ok and shading_ok,
        passed_composition=coverage_ok and bottom_ok,
        passed_character=None,
        longest_run=measured.longest_run,
        coverage_ratio=measured.coverage_ratio,
        bottom_blank_ratio=measured.bottom_blank_ratio,
        border_dark_ratio=measured.border_dark_ratio,
        gray_ratio=measured.gray_ratio,
        max_black_ratio=max_black,
    )
    hard_passed = not failures
    return QualityReport(
        metrics=metrics,
        hard_passed=hard_passed,
        passed=hard_passed,
        failures=failures,
        retry_reinforcement=build_retry_reinforcement(failures),
    )


def build_retry_reinforcement(failures: list[QualityFailure]) -> str:
    """Turn failed checks into a short fix-it instruction for the next prompt."""

    hints: list[str] = []
    for failure in failures:
        hint = REINFORCEMENT_HINTS.get(failure.check)
        if hint and hint not in hints:
            hints.append(hint)
    return "\n".join(hints)


class QualityGate:
    """Pixel checks plus an optional, pluggable character consistency check."""

    def __init__(
        self,
        thresholds: QualityThresholds | None = None,
        character_checker: CharacterChecker | None = None,
        *,
        service_name: str = "orchestrator",
    ) -> None:
        self.thresholds = thresholds or QualityThresholds()
        self.character_checker = character_checker
        self.service_name = service_name

    async def inspect(
        self,
        image_bytes: bytes,
        style: StyleConfig,
        character: CharacterProfile | None = None,
        *,
        checks: QualityChecks = QualityChecks(),
        collect_all: bool = False,
    ) -> QualityReport:
        report = evaluate_image(
            image_bytes,
            style,
            self.thresholds,
            checks=checks,
            collect_all=collect_all,
        )

        run_character = (
            checks.character
            and character is not None
            and self.character_checker is not None
            and (report.hard_passed or collect_all)
        )
        if run_character:
            verdict = await self.character_checker.check(image_bytes, character)
            report.metrics = report.metrics.model_copy(update={"passed_character": verdict.passed})
            report.character_notes = verdict.notes
            if verdict.passed is False:
                failure = QualityFailure(
                    "character",
                    f"Character does not match profile: {verdict.notes or 'mismatch'}",
                )
                report.failures.append(failure)
                report.passed = False
                report.retry_reinforcement = build_retry_reinforcement(report.failures)

        self._record(report, checks)
        if not report.passed:
            logger.info(
                "Quality gate rejected image",
                extra={
                    "failure_reason": report.failure_reason,
                    "black_ratio": report.metrics.black_ratio,
                    "long_run_count": report.metrics.long_run_count,
                    "coverage_ratio": report.metrics.coverage_ratio,
                },
            )
        return report

    def _record(self, report: QualityReport, checks: QualityChecks) -> None:
        metrics = report.metrics
        if checks.outline:
            observe_quality_check("outline", metrics.passed_outline, service_name=self.service_name)
        if checks.composition:
            observe_quality_check(
                "composition", metrics.passed_composition, service_name=self.service_name
            )
        if checks.character:
            observe_quality_check(
                "character", metrics.passed_character, service_name=self.service_name
            )
