from .character import CharacterChecker, CharacterCheckResult, VisionCharacterChecker, build_character_checker
from .engine import (
    ImageDecodeError,
    QualityChecks,
    QualityFailure,
    QualityGate,
    QualityReport,
    evaluate_image,
)

__all__ = [
    "CharacterChecker",
    "CharacterCheckResult",
    "ImageDecodeError",
    "QualityChecks",
    "QualityFailure",
    "QualityGate",
    "QualityReport",
    "VisionCharacterChecker",
    "build_character_checker",
    "evaluate_image",
]
