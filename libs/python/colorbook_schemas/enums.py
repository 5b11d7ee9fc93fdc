"""Enum definitions shared across the coloring page pipeline."""

from __future__ import annotations

from enum import Enum


class Complexity(str, Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    DETAILED = "detailed"


class LineThickness(str, Enum):
    THIN = "thin"
    MEDIUM = "medium"
    BOLD = "bold"


class Orientation(str, Enum):
    SQUARE = "square"
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


class CanvasSize(str, Enum):
    SQUARE = "1024x1024"
    PORTRAIT = "1024x1536"
    LANDSCAPE = "1536x1024"

    @property
    def width(self) -> int:
        return int(self.value.split("x")[0])

    @property
    def height(self) -> int:
        return int(self.value.split("x")[1])

    @property
    def orientation(self) -> Orientation:
        if self.width == self.height:
            return Orientation.SQUARE
        if self.height > self.width:
            return Orientation.PORTRAIT
        return Orientation.LANDSCAPE


class GenerationMode(str, Enum):
    STORYBOOK = "storybook"
    THEME = "theme"


class PageStatus(str, Enum):
    DONE = "done"
    FAILED = "failed"


class PageState(str, Enum):
    """States of the per-page retry state machine."""

    PENDING = "pending"
    COMPILING = "compiling"
    SYNTHESIZING = "synthesizing"
    VALIDATING = "validating"
    REINFORCING = "reinforcing"
    PASSED = "passed"
    EXHAUSTED = "exhausted"

    @property
    def is_terminal(self) -> bool:
        return self in (PageState.PASSED, PageState.EXHAUSTED)


class PageErrorCode(str, Enum):
    CONTENT_POLICY = "CONTENT_POLICY"
    RATE_LIMIT = "RATE_LIMIT"
    TRANSIENT = "TRANSIENT"
    FATAL = "FATAL"
    QUALITY_GATE = "QUALITY_GATE"
    GENERATION_FAILED = "GENERATION_FAILED"
    CANCELLED = "CANCELLED"
    INTERNAL = "INTERNAL"


class AssetType(str, Enum):
    PAGE_IMAGE = "page_image"
    FRONT_MATTER = "front_matter"
    PDF = "pdf"
    ZIP = "zip"
    PREVIEW = "preview"


class AssetStatus(str, Enum):
    READY = "ready"
    EXPIRED = "expired"
