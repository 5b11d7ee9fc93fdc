"""Factory utilities for instantiating image providers."""

from __future__ import annotations

from typing import Dict, Type

from .base import ImageProvider
from .config import ProviderConfig, load_provider_config
from .exceptions import ProviderConfigError
from .gemini import GeminiImageProvider
from .mock import MockImageProvider
from .openai import OpenAIImageProvider

PROVIDER_MAP: Dict[str, Type[ImageProvider]] = {
    "gemini": GeminiImageProvider,
    "openai": OpenAIImageProvider,
    "mock": MockImageProvider,
}


class ProviderFactory:
    """Factory for creating image providers based on configuration."""

    @staticmethod
    def create(config: ProviderConfig | None = None) -> ImageProvider:
        if config is None:
            config = load_provider_config()
        provider_cls = PROVIDER_MAP.get(config.name.lower())
        if provider_cls is None:
            raise ProviderConfigError(f"Unknown provider: {config.name}")
        return provider_cls(config)
