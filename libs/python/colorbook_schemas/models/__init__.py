from .assets import StoredAsset
from .page import (
    CharacterProfile,
    CompiledPrompt,
    PageOutcome,
    QualityMetrics,
    ScenePrompt,
    StyleConfig,
)

__all__ = [
    "CharacterProfile",
    "CompiledPrompt",
    "PageOutcome",
    "QualityMetrics",
    "ScenePrompt",
    "StoredAsset",
    "StyleConfig",
]
