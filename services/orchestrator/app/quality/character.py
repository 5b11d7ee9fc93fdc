"""Pluggable character consistency checks.

The vision-model checker is non-deterministic: the same image can receive a
different verdict on a second call. Its result is treated as a soft signal by
the retry state machine.
"""

from __future__ import annotations

import base64
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, Field, ValidationError

from colorbook_schemas import CharacterProfile

from .prompts import CHARACTER_CHECK_PROMPT, CHARACTER_CHECK_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

CHECKER_ENV_VAR = "CHARACTER_CHECK_PROVIDER"
MODEL_ENV_VAR = "CHARACTER_CHECK_MODEL"
DEFAULT_MODEL = "gpt-4o"


@dataclass(frozen=True)
class CharacterCheckResult:
    """``passed`` is ``None`` when the check could not produce a verdict."""

    passed: bool | None
    notes: str | None = None
    confidence: float | None = None


class CharacterChecker(ABC):
    @abstractmethod
    async def check(self, image_bytes: bytes, profile: CharacterProfile) -> CharacterCheckResult:
        """Compare a rendered page against the character profile."""


class CharacterVerdict(BaseModel):
    detected_species: str = ""
    matches_species: bool
    matches_face: bool
    matches_proportions: bool = True
    has_unexpected_markings: bool = False
    confidence: float = Field(0.5, ge=0, le=1)
    notes: str = ""

    @property
    def passed(self) -> bool:
        return self.matches_species and self.matches_face and not self.has_unexpected_markings


class VisionCharacterChecker(CharacterChecker):
    """Ask an OpenAI vision model whether the page still shows the same character."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, timeout_seconds: float = 60.0) -> None:
        self.model = model
        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=1)

    async def check(self, image_bytes: bytes, profile: CharacterProfile) -> CharacterCheckResult:
        prompt = CHARACTER_CHECK_PROMPT.format(
            name=profile.canonical_name,
            species=profile.species or "unspecified",
            proportions=profile.proportions or "unspecified",
            face=profile.face_style or "unspecified",
            features="; ".join(profile.distinguishing_features) or "none listed",
            outfit=profile.outfit or "none",
            negative_rules="; ".join(profile.negative_rules) or "none listed",
        )
        encoded = base64.b64encode(image_bytes).decode("ascii")

        start = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                temperature=0.1,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": CHARACTER_CHECK_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:image/png;base64,{encoded}", "detail": "low"},
                            },
                        ],
                    },
                ],
            )
            content = response.choices[0].message.content or ""
            verdict = CharacterVerdict.model_validate_json(content)
        except (openai.OpenAIError, ValidationError, IndexError, AttributeError) as exc:
            logger.warning(
                "Character check unavailable; leaving page unverified",
                extra={"error": str(exc), "model": self.model},
            )
            return CharacterCheckResult(passed=None, notes="character check unavailable")

        logger.info(
            "Character check completed",
            extra={
                "passed": verdict.passed,
                "detected_species": verdict.detected_species,
                "confidence": verdict.confidence,
                "latency_ms": (time.perf_counter() - start) * 1000,
            },
        )
        return CharacterCheckResult(
            passed=verdict.passed,
            notes=verdict.notes or None,
            confidence=verdict.confidence,
        )


def build_character_checker() -> CharacterChecker | None:
    """Create the configured checker, or ``None`` when the check is disabled."""

    provider = os.getenv(CHECKER_ENV_VAR, "openai").strip().lower()
    if provider in ("", "none", "off", "mock"):
        return None
    if provider != "openai":
        raise ValueError(f"Unknown character check provider: {provider}")
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        logger.warning("OPENAI_API_KEY not set; character checks disabled")
        return None
    return VisionCharacterChecker(api_key=api_key, model=os.getenv(MODEL_ENV_VAR, DEFAULT_MODEL))
