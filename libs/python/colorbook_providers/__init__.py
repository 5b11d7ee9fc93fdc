"""Image synthesis provider abstraction for OpenAI, Imagen, and a local mock."""

from .base import ImageCapabilities, ImageProvider, ImageRequest, ImageResponse
from .config import PROVIDER_ENV_VAR, ProviderConfig, ProviderSettings, load_provider_config
from .exceptions import (
    ContentPolicyError,
    FatalProviderError,
    ProviderConfigError,
    ProviderError,
    ProviderErrorKind,
    ProviderResponseError,
    RateLimitError,
    TransientProviderError,
)
from .factory import ProviderFactory
from .mock import MockImageProvider, render_outline_page

__all__ = [
    "ImageCapabilities",
    "ImageProvider",
    "ImageRequest",
    "ImageResponse",
    "PROVIDER_ENV_VAR",
    "ProviderConfig",
    "ProviderSettings",
    "load_provider_config",
    "ContentPolicyError",
    "FatalProviderError",
    "ProviderConfigError",
    "ProviderError",
    "ProviderErrorKind",
    "ProviderResponseError",
    "RateLimitError",
    "TransientProviderError",
    "ProviderFactory",
    "MockImageProvider",
    "render_outline_page",
]
