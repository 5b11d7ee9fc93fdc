"""Utilities for working with image provider configurations inside the orchestrator."""

from __future__ import annotations

import os

from colorbook_providers import (
    PROVIDER_ENV_VAR,
    ProviderConfig,
    ProviderSettings,
    load_provider_config,
)

from .models import ImageProviderOverride


def resolve_provider_config(override: ImageProviderOverride | None) -> ProviderConfig:
    provider_name = override.name if override and override.name else os.getenv(PROVIDER_ENV_VAR, "mock")

    if provider_name and provider_name.lower() == "mock":
        return ProviderConfig(
            name="mock",
            api_key="mock",
            model="mock",
            settings=ProviderSettings(),
        )

    if override and override.name:
        config = load_provider_config(prefix=override.name)
    else:
        config = load_provider_config()

    update_kwargs = {}
    if override:
        if override.model:
            update_kwargs["model"] = override.model

        settings_updates = {}
        if override.quality is not None:
            settings_updates["quality"] = override.quality
        if override.timeout_seconds is not None:
            settings_updates["timeout_seconds"] = override.timeout_seconds

        if settings_updates:
            update_kwargs["settings"] = config.settings.model_copy(update=settings_updates)

    if update_kwargs:
        config = config.model_copy(update=update_kwargs)

    return config
