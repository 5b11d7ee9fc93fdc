"""Shared domain schemas for the coloring page pipeline."""

from .enums import (
    AssetStatus,
    AssetType,
    CanvasSize,
    Complexity,
    GenerationMode,
    LineThickness,
    Orientation,
    PageErrorCode,
    PageState,
    PageStatus,
)
from .models import (
    CharacterProfile,
    CompiledPrompt,
    PageOutcome,
    QualityMetrics,
    ScenePrompt,
    StoredAsset,
    StyleConfig,
)

__all__ = [
    "AssetStatus",
    "AssetType",
    "CanvasSize",
    "CharacterProfile",
    "CompiledPrompt",
    "Complexity",
    "GenerationMode",
    "LineThickness",
    "Orientation",
    "PageErrorCode",
    "PageOutcome",
    "PageState",
    "PageStatus",
    "QualityMetrics",
    "ScenePrompt",
    "StoredAsset",
    "StyleConfig",
]
