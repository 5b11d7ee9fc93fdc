"""Tests for provider configuration loading."""

import os

import pytest

from colorbook_providers import ProviderConfig, ProviderSettings, load_provider_config
from colorbook_providers.config import DEFAULT_PROVIDER, PROVIDER_ENV_VAR

from services.orchestrator.app.models import ImageProviderOverride
from services.orchestrator.app.providers import resolve_provider_config
from services.orchestrator.app.settings import PipelineSettings, load_pipeline_settings


@pytest.fixture(autouse=True)
def clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith(("OPENAI_", "GEMINI_", "COLORBOOK_")):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv(PROVIDER_ENV_VAR, raising=False)


def test_load_openai_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(PROVIDER_ENV_VAR, "openai")
    monkeypatch.setenv("OPENAI_API_KEY", "key")
    monkeypatch.setenv("OPENAI_IMAGE_MODEL", "gpt-image-1")
    cfg = load_provider_config()
    assert cfg.name == "openai"
    assert cfg.api_key == "key"
    assert cfg.settings.timeout_seconds == 120.0


def test_default_provider_is_openai(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "key")
    monkeypatch.setenv("OPENAI_IMAGE_MODEL", "gpt-image-1")
    assert load_provider_config().name == DEFAULT_PROVIDER


def test_missing_variables_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(PROVIDER_ENV_VAR, "gemini")
    with pytest.raises(Exception):
        load_provider_config()


def test_custom_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MYPROV_API_KEY", "abc")
    monkeypatch.setenv("MYPROV_IMAGE_MODEL", "model")
    monkeypatch.setenv("MYPROV_TIMEOUT_SECONDS", "45")
    monkeypatch.setenv("MYPROV_IMAGE_QUALITY", " high ")
    cfg = load_provider_config(prefix="myprov")
    assert cfg.name == "myprov"
    assert cfg.settings.timeout_seconds == 45
    assert cfg.settings.quality == "high"


def test_override_resolves_mock_without_credentials() -> None:
    cfg = resolve_provider_config(ImageProviderOverride(name="mock"))
    assert cfg == ProviderConfig(name="mock", api_key="mock", model="mock", settings=ProviderSettings())


def test_override_updates_model_and_quality(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    monkeypatch.setenv("GEMINI_IMAGE_MODEL", "imagen-3.0-generate-002")
    cfg = resolve_provider_config(
        ImageProviderOverride(name="gemini", model="imagen-4.0-generate-001", timeout_seconds=30)
    )
    assert cfg.name == "gemini"
    assert cfg.model == "imagen-4.0-generate-001"
    assert cfg.settings.timeout_seconds == 30


def test_pipeline_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COLORBOOK_MAX_ATTEMPTS", "4")
    monkeypatch.setenv("COLORBOOK_INTER_BATCH_DELAY_SECONDS", "0")
    settings = load_pipeline_settings()
    assert settings.max_attempts == 4
    assert settings.inter_batch_delay_seconds == 0
    assert settings.default_concurrency == PipelineSettings().default_concurrency


def test_pipeline_settings_reject_out_of_range(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COLORBOOK_MAX_ATTEMPTS", "9")
    with pytest.raises(ValueError):
        load_pipeline_settings()
