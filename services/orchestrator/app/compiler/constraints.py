"""Catalog of constraint text blocks injected into every page prompt."""

from __future__ import annotations

from dataclasses import dataclass

from colorbook_schemas import CanvasSize, Complexity, GenerationMode, LineThickness, Orientation

MAX_REINFORCEMENT_LEVEL = 2


@dataclass(frozen=True)
class ConstraintFragment:
    """A literal phrase that must survive compilation verbatim."""

    key: str
    phrase: str


OUTLINE_ONLY = ConstraintFragment("outline_only", "OUTLINE-ONLY")
NO_FILL = ConstraintFragment("no_fill", "NO solid black fills ANYWHERE")
WHITE_INTERIOR = ConstraintFragment("white_interior", "interior regions must remain WHITE")
NO_BORDER = ConstraintFragment("no_border", "NO border")
CANVAS_COVERAGE = ConstraintFragment("canvas_coverage", "fill 85-95% of the canvas")
BOTTOM_FILL = ConstraintFragment("bottom_fill", "artwork must reach the bottom edge")
SAME_CHARACTER = ConstraintFragment("same_character", "SAME character design on every page")
SAME_STYLE = ConstraintFragment("same_style", "SAME line style on every page")

_BASE_FRAGMENTS = (OUTLINE_ONLY, NO_FILL, WHITE_INTERIOR, NO_BORDER, CANVAS_COVERAGE)


def required_fragments(mode: GenerationMode, canvas_size: CanvasSize) -> tuple[ConstraintFragment, ...]:
    """Return every fragment a prompt for ``mode`` and ``canvas_size`` must contain."""

    fragments = list(_BASE_FRAGMENTS)
    if canvas_size.orientation != Orientation.SQUARE:
        fragments.append(BOTTOM_FILL)
    fragments.append(SAME_CHARACTER if mode == GenerationMode.STORYBOOK else SAME_STYLE)
    return tuple(fragments)


COMPLEXITY_RULES: dict[Complexity, str] = {
    Complexity.SIMPLE: (
        "COMPLEXITY: SIMPLE (ages 3-6)\n"
        "- 3 to 5 large main shapes, big open areas to color\n"
        "- Minimal background: a ground line and one or two simple props\n"
        "- No small repeating patterns, no texture"
    ),
    Complexity.MEDIUM: (
        "COMPLEXITY: MEDIUM (ages 6-10)\n"
        "- 6 to 10 distinct shapes with moderate background detail\n"
        "- Coloring areas stay comfortably large\n"
        "- Light patterns allowed only as open outlines"
    ),
    Complexity.DETAILED: (
        "COMPLEXITY: DETAILED (older kids and adults)\n"
        "- Rich scene with layered background elements\n"
        "- Patterns and decorative detail drawn as open outlines\n"
        "- Every region must still be closed and colorable"
    ),
}

LINE_THICKNESS_RULES: dict[LineThickness, str] = {
    LineThickness.THIN: "LINE WEIGHT: THIN, about 2-3pt, consistent everywhere, crisp pen strokes.",
    LineThickness.MEDIUM: "LINE WEIGHT: MEDIUM, about 4-5pt, consistent everywhere, smooth clean strokes.",
    LineThickness.BOLD: "LINE WEIGHT: BOLD, about 6-8pt, consistent everywhere, thick confident strokes.",
}

FORBIDDEN_BLOCK = (
    "=== OUTLINE RULES ===\n"
    "STYLE: OUTLINE-ONLY black line art on a pure white background.\n"
    "- NO solid black fills ANYWHERE: eyes, hair, clothing and shadows are drawn as outlines.\n"
    "- All interior regions must remain WHITE and ready to color.\n"
    "- NO shading, NO gray tones, NO hatching, NO color.\n"
    "=== NO BORDER ===\n"
    "- NO border, NO frame, NO outline around the page edges."
)

NEGATIVE_TERMS: tuple[str, ...] = (
    "solid black fill",
    "filled areas",
    "large black patches",
    "black silhouettes",
    "filled eyes",
    "black hair fill",
    "shading",
    "gradients",
    "gray tones",
    "crosshatching",
    "stippling",
    "texture",
    "color",
    "photorealism",
    "text",
    "watermark",
    "signature",
    "border",
    "frame",
    "crop marks",
    "edge lines",
)

CANVAS_BLOCKS: dict[Orientation, str] = {
    Orientation.PORTRAIT: (
        "CANVAS: PORTRAIT. The main subject is tall and centered; "
        "a ground line or floor runs across the lower part of the page."
    ),
    Orientation.LANDSCAPE: (
        "CANVAS: LANDSCAPE. Spread the scene horizontally with the subject "
        "slightly off-center; the ground extends edge to edge."
    ),
    Orientation.SQUARE: (
        "CANVAS: SQUARE. Center the subject with balanced space on every side."
    ),
}

COMPOSITION_BLOCK = (
    "=== COMPOSITION ===\n"
    "- Zoom in: the artwork must fill 85-95% of the canvas, no large empty margins."
)

BOTTOM_FILL_BLOCK = (
    "- The scene and its ground plane continue downward: the artwork must reach the bottom edge, "
    "no blank band at the bottom."
)

MODE_BLOCKS: dict[GenerationMode, str] = {
    GenerationMode.STORYBOOK: (
        "- Storybook series: keep the SAME character design on every page; only pose and action change."
    ),
    GenerationMode.THEME: (
        "- Themed collection: keep the SAME line style on every page; subjects may vary."
    ),
}

# Cumulative: level N prompts carry the blocks for every level up to N.
REINFORCEMENT_BLOCKS: dict[int, str] = {
    1: (
        "=== RETRY REINFORCEMENT (LEVEL 1) ===\n"
        "The previous image broke the coloring page rules.\n"
        "- NO solid black fills. NO solid black fills.\n"
        "- Use fewer details and more white space.\n"
        "- Every interior region stays WHITE."
    ),
    2: (
        "=== RETRY REINFORCEMENT (LEVEL 2, STRICTEST) ===\n"
        "- ABSOLUTELY NO solid black fills, NO black patches, NO filled eyes or hair.\n"
        "- Thinner lines, minimal detail, maximum white space.\n"
        "- Zoom in so the artwork touches the margins and the bottom edge."
    ),
}

CHARACTER_FEATURE_LIMIT = 8
