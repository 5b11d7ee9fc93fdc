"""Prompt text used by the quality gate."""

REINFORCEMENT_HINTS: dict[str, str] = {
    "black_ratio": (
        "Too much black ink: draw outlines only, remove every filled shape and shadow, "
        "leave far more white space."
    ),
    "long_run": (
        "Solid black regions detected: eyes, hair, pupils and clothing must be open outlines "
        "with WHITE interiors, never filled."
    ),
    "border": (
        "PURE WHITE BACKGROUND ONLY: no dark edges, no frames, no borders around the page."
    ),
    "shading": (
        "Gray shading detected: no gray tones, gradients or hatching, only pure black outlines "
        "on a pure white background."
    ),
    "coverage": (
        "Subject too small: zoom in so the artwork spans 85-95% of the canvas width and height."
    ),
    "bottom_band": (
        "Empty strip at the bottom: extend the ground, floor or scenery all the way to the "
        "bottom edge of the page."
    ),
    "character": (
        "Character drifted from the reference: keep the exact species, face, proportions and "
        "outfit described in the character lock, and add no new markings."
    ),
}

CHARACTER_CHECK_SYSTEM_PROMPT = (
    "You review black-and-white coloring book pages for character consistency. "
    "Answer with a single JSON object and nothing else."
)

CHARACTER_CHECK_PROMPT = """Compare the character in this coloring page with the reference description.

REFERENCE
Name: {name}
Species/type: {species}
Proportions: {proportions}
Face: {face}
Key features: {features}
Outfit: {outfit}
Must never have: {negative_rules}

Return JSON with these keys:
{{
  "detected_species": string,
  "matches_species": boolean,
  "matches_face": boolean,
  "matches_proportions": boolean,
  "has_unexpected_markings": boolean,
  "confidence": number between 0 and 1,
  "notes": short string explaining any mismatch
}}"""
