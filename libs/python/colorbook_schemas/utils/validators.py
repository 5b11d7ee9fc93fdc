"""Reusable validation helpers."""

from __future__ import annotations


class BlankTextError(ValueError):
    """Raised when a required text field is empty or whitespace."""


def ensure_not_blank(value: str, *, field_name: str) -> str:
    """Validate that ``value`` contains at least one non-whitespace character.

    Args:
        value: Input text to evaluate.
        field_name: Name used in the raised error message.

    Returns:
        The original string when validation succeeds.

    Raises:
        BlankTextError: If the string is empty after stripping whitespace.
    """

    if not value or not value.strip():
        raise BlankTextError(f"{field_name} must not be blank")
    return value


def dedupe_preserving_order(values: list[str]) -> list[str]:
    """Drop blank and repeated entries while keeping the first occurrence order."""

    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        cleaned = value.strip()
        key = cleaned.lower()
        if not cleaned or key in seen:
            continue
        seen.add(key)
        result.append(cleaned)
    return result
