"""Compile scene descriptions into constraint-complete generation prompts."""

from __future__ import annotations

from colorbook_schemas import CharacterProfile, CompiledPrompt, Orientation, StyleConfig

from .constraints import (
    BOTTOM_FILL_BLOCK,
    CANVAS_BLOCKS,
    CHARACTER_FEATURE_LIMIT,
    COMPLEXITY_RULES,
    COMPOSITION_BLOCK,
    FORBIDDEN_BLOCK,
    LINE_THICKNESS_RULES,
    MAX_REINFORCEMENT_LEVEL,
    MODE_BLOCKS,
    NEGATIVE_TERMS,
    REINFORCEMENT_BLOCKS,
    required_fragments,
)

DEFAULT_MAX_LENGTH = 4000
MIN_SCENE_CHARS = 200
FEEDBACK_LIMIT = 600
LEAD_LINE = "Black-and-white coloring book page, clean line art on pure white paper."
SCENE_LABEL = "SCENE: "
SECTION_SEPARATOR = "\n\n"

# Dropped first-to-last when the scene would otherwise shrink below MIN_SCENE_CHARS.
# The choice is made against the strongest reinforcement so every level keeps the same sections.
_DROP_ORDER = ("feedback", "style", "character")


class PromptCompilationError(ValueError):
    """Raised when a prompt cannot be compiled from the given input."""


def render_character_block(profile: CharacterProfile) -> str:
    """Fixed-format description that pins a character's appearance."""

    lines = [
        "=== CHARACTER CONSISTENCY LOCK ===",
        f"The SAME character, {profile.canonical_name}, must look IDENTICAL on every page.",
    ]
    if profile.species:
        lines.append(f"- Species/type: {profile.species}")
    if profile.proportions:
        lines.append(f"- Proportions: {profile.proportions}")
    if profile.face_style:
        lines.append(f"- Face: {profile.face_style}")
    features = profile.distinguishing_features[:CHARACTER_FEATURE_LIMIT]
    if features:
        lines.append(f"- Key features: {'; '.join(features)}")
    if profile.outfit:
        lines.append(f"- Outfit: {profile.outfit}")
    if profile.negative_rules:
        lines.append(f"- NEVER: {'; '.join(profile.negative_rules)}")
    lines.append("- Only pose, expression and action may change between pages.")
    return "\n".join(lines)


def render_style_block(style: StyleConfig) -> str:
    return "\n".join(
        [
            "=== STYLE ===",
            COMPLEXITY_RULES[style.complexity],
            LINE_THICKNESS_RULES[style.line_thickness],
        ]
    )


def render_forbidden_block() -> str:
    return f"{FORBIDDEN_BLOCK}\nAVOID: {', '.join(NEGATIVE_TERMS)}"


def render_canvas_block(style: StyleConfig) -> str:
    orientation = style.canvas_size.orientation
    lines = [COMPOSITION_BLOCK, f"- {CANVAS_BLOCKS[orientation]}"]
    if orientation != Orientation.SQUARE:
        lines.append(BOTTOM_FILL_BLOCK)
    lines.append(MODE_BLOCKS[style.mode])
    return "\n".join(lines)


def render_reinforcement(level: int) -> str:
    return SECTION_SEPARATOR.join(REINFORCEMENT_BLOCKS[step] for step in range(1, level + 1))


def compile_prompt(
    raw_text: str,
    style: StyleConfig,
    *,
    character: CharacterProfile | None = None,
    reinforcement_level: int = 0,
    feedback: str | None = None,
    page_index: int = 1,
    attempt: int = 1,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> CompiledPrompt:
    """Build the final prompt for one attempt.

    Sections appear in a fixed order: lead line, scene, character lock, style,
    forbidden list, canvas/composition, reinforcement, then feedback from the
    previous attempt. Constraint sections always follow the scene so that
    trimming the scene can never cut a required phrase.

    Raises:
        PromptCompilationError: If ``raw_text`` is empty or blank.
    """

    if not raw_text or not raw_text.strip():
        raise PromptCompilationError("Scene text must not be empty")

    level = max(0, min(reinforcement_level, MAX_REINFORCEMENT_LEVEL))
    scene = " ".join(raw_text.split())

    optional: dict[str, str] = {}
    if character is not None:
        optional["character"] = render_character_block(character)
    optional["style"] = render_style_block(style)
    if feedback and feedback.strip():
        trimmed = feedback.strip()[:FEEDBACK_LIMIT]
        optional["feedback"] = f"=== FIX FROM PREVIOUS ATTEMPT ===\n{trimmed}"

    forbidden = render_forbidden_block()
    canvas = render_canvas_block(style)
    reinforcement = render_reinforcement(level)
    strongest = render_reinforcement(MAX_REINFORCEMENT_LEVEL)

    def assemble(scene_text: str, reinforcement: str = reinforcement) -> str:
        sections = [LEAD_LINE, f"{SCENE_LABEL}{scene_text}"]
        if "character" in optional:
            sections.append(optional["character"])
        if "style" in optional:
            sections.append(optional["style"])
        sections.extend([forbidden, canvas])
        if reinforcement:
            sections.append(reinforcement)
        if "feedback" in optional:
            sections.append(optional["feedback"])
        text = SECTION_SEPARATOR.join(sections)
        missing = [
            fragment.phrase
            for fragment in required_fragments(style.mode, style.canvas_size)
            if fragment.phrase not in text
        ]
        if missing:
            text += SECTION_SEPARATOR + "\n".join(f"REQUIRED: {phrase}." for phrase in missing)
        return text

    truncated = False
    if len(assemble(scene, strongest)) > max_length:
        scene_floor = min(MIN_SCENE_CHARS, len(scene))
        for key in _DROP_ORDER:
            if max_length - len(assemble("", strongest)) >= scene_floor:
                break
            if optional.pop(key, None) is not None:
                truncated = True

    text = assemble(scene)
    if len(text) > max_length:
        truncated = True
        budget = max_length - len(assemble(""))
        if budget <= 0:
            raise PromptCompilationError(
                f"Constraint sections alone exceed the maximum prompt length of {max_length}"
            )
        text = assemble(_truncate_words(scene, budget))

    return CompiledPrompt(
        page_index=page_index,
        text=text,
        attempt=attempt,
        reinforcement_level=level,
        truncated=truncated,
    )


def _truncate_words(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    cut = text[:limit]
    if " " in cut and not text[limit].isspace():
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip()
