"""Prefect flows coordinating batch generation and single-page regeneration."""

from __future__ import annotations

import asyncio
import base64
import logging
from time import perf_counter
from uuid import uuid4

from prefect import flow

from colorbook_assets import AssetLifecycleManager, AssetWrite, build_lifecycle_from_env
from colorbook_observability import log_context, observe_stage_duration
from colorbook_providers import ProviderFactory
from colorbook_schemas import AssetType, PageOutcome, PageState, PageStatus, ScenePrompt, StyleConfig

from .batch import BatchScheduler
from .models import (
    BatchGenerateRequest,
    BatchGenerateResponse,
    BatchPageResult,
    RegenerateRequest,
    RegenerateResponse,
    StyleFields,
)
from .providers import resolve_provider_config
from .quality import CharacterChecker, QualityChecks, QualityGate, build_character_checker
from .retry import PageRetryOrchestrator
from .settings import load_pipeline_settings, load_quality_thresholds

logger = logging.getLogger(__name__)
SERVICE_NAME = "orchestrator"

UNSAVED_PAGE_WARNING = "Page was not saved because it did not pass the quality checks"

_lifecycle: AssetLifecycleManager | None = None
_character_checker: CharacterChecker | None = None
_character_checker_loaded = False


class PersistenceUnavailableError(RuntimeError):
    """Raised when a batch asks for persistence but no asset store is configured."""


def get_lifecycle_manager() -> AssetLifecycleManager | None:
    global _lifecycle
    if _lifecycle is None:
        _lifecycle = build_lifecycle_from_env(service_name=SERVICE_NAME)
    return _lifecycle


def get_character_checker() -> CharacterChecker | None:
    global _character_checker, _character_checker_loaded
    if not _character_checker_loaded:
        _character_checker = build_character_checker()
        _character_checker_loaded = True
    return _character_checker


def _style_from(payload: StyleFields) -> StyleConfig:
    return StyleConfig(
        complexity=payload.complexity,
        line_thickness=payload.line_thickness,
        canvas_size=payload.size,
        mode=payload.mode,
    )


def _build_orchestrator(
    payload: StyleFields,
    character_checker: CharacterChecker | None,
) -> PageRetryOrchestrator:
    provider_config = resolve_provider_config(payload.provider)
    provider = ProviderFactory.create(provider_config)
    if character_checker is None and payload.character_profile is not None:
        character_checker = get_character_checker()
    gate = QualityGate(
        load_quality_thresholds(),
        character_checker,
        service_name=SERVICE_NAME,
    )
    return PageRetryOrchestrator(provider, gate, load_pipeline_settings(), service_name=SERVICE_NAME)


def _encode(image_bytes: bytes | None) -> str | None:
    return base64.b64encode(image_bytes).decode("ascii") if image_bytes else None


async def execute_batch(
    payload: BatchGenerateRequest,
    *,
    character_checker: CharacterChecker | None = None,
    lifecycle: AssetLifecycleManager | None = None,
    cancel_event: asyncio.Event | None = None,
) -> BatchGenerateResponse:
    """Generate every page of ``payload`` and persist the ones that finished.

    Raises:
        PersistenceUnavailableError: If ``project_id``/``user_id`` were given
            without a lifecycle manager.
    """

    if payload.persist and lifecycle is None:
        raise PersistenceUnavailableError("Asset persistence is not configured")

    batch_id = uuid4()
    orchestrator = _build_orchestrator(payload, character_checker)
    concurrency = payload.concurrency or orchestrator.settings.default_concurrency
    scheduler = BatchScheduler(
        orchestrator,
        concurrency=concurrency,
        inter_batch_delay=orchestrator.settings.inter_batch_delay_seconds,
        service_name=SERVICE_NAME,
    )
    scenes = [
        ScenePrompt(page_index=page.page, title=page.title, raw_text=page.prompt)
        for page in payload.pages
    ]
    titles = {page.page: page.title for page in payload.pages}
    storage_paths: dict[int, str] = {}
    unsaved: set[int] = set()

    async def persist_page(outcome: PageOutcome) -> None:
        if outcome.status != PageStatus.DONE:
            return
        # Best-effort images must not overwrite a previously stored page.
        if outcome.final_state != PageState.PASSED:
            unsaved.add(outcome.page_index)
            logger.info("Skipping persistence for degraded page", extra={"page_index": outcome.page_index})
            return
        assert lifecycle is not None and payload.project_id and payload.user_id
        persisted = await asyncio.to_thread(
            lifecycle.persist,
            AssetWrite(
                project_id=payload.project_id,
                user_id=payload.user_id,
                asset_type=AssetType.PAGE_IMAGE,
                data=outcome.image_bytes,
                page_number=outcome.page_index,
                meta={
                    "batch_id": str(batch_id),
                    "title": titles.get(outcome.page_index, ""),
                    "attempts": outcome.attempts,
                    "degraded": outcome.degraded,
                },
            ),
        )
        storage_paths[outcome.page_index] = persisted.storage_path

    context = {"batch_id": str(batch_id)}
    if payload.project_id:
        context["project_id"] = str(payload.project_id)

    start = perf_counter()
    outcome_status = "success"
    with log_context(**context):
        logger.info(
            "Starting batch generation",
            extra={
                "page_count": len(scenes),
                "concurrency": concurrency,
                "persist": payload.persist,
            },
        )
        try:
            result = await scheduler.run(
                scenes,
                _style_from(payload),
                payload.character_profile,
                max_attempts=payload.max_attempts,
                cancel_event=cancel_event,
                on_page_complete=persist_page if payload.persist else None,
            )
        except Exception:
            outcome_status = "error"
            logger.exception("Batch generation failed")
            raise
        finally:
            observe_stage_duration(
                "batch",
                perf_counter() - start,
                service_name=SERVICE_NAME,
                status=outcome_status,
            )

        logger.info(
            "Batch generation finished",
            extra={
                "success_count": result.success_count,
                "fail_count": result.fail_count,
                "cancelled": result.cancelled,
            },
        )

    return BatchGenerateResponse(
        batch_id=batch_id,
        provider_name=orchestrator.provider.name,
        results=[
            BatchPageResult(
                page=outcome.page_index,
                status=outcome.status,
                image_base64=_encode(outcome.image_bytes),
                error=outcome.last_error if outcome.status == PageStatus.FAILED else None,
                error_code=outcome.error_code,
                warning=_page_warning(outcome, outcome.page_index in unsaved),
                attempts=outcome.attempts,
                storage_path=storage_paths.get(outcome.page_index),
            )
            for outcome in result.outcomes
        ],
        success_count=result.success_count,
        fail_count=result.fail_count,
        cancelled=result.cancelled,
    )


def _page_warning(outcome: PageOutcome, unsaved: bool) -> str | None:
    if not unsaved:
        return outcome.warning
    return f"{outcome.warning}; {UNSAVED_PAGE_WARNING}" if outcome.warning else UNSAVED_PAGE_WARNING


async def execute_regenerate(
    page_index: int,
    payload: RegenerateRequest,
    *,
    character_checker: CharacterChecker | None = None,
) -> RegenerateResponse:
    orchestrator = _build_orchestrator(payload, character_checker)
    scene = ScenePrompt(page_index=page_index, title=payload.title, raw_text=payload.prompt)
    checks = QualityChecks(
        outline=payload.validate_outline,
        composition=payload.validate_composition,
        character=payload.validate_character,
    )

    with log_context(page_index=page_index, stage="regenerate"):
        outcome = await orchestrator.run(
            scene,
            _style_from(payload),
            payload.character_profile,
            checks=checks,
            max_attempts=payload.max_attempts,
        )

    if outcome.status == PageStatus.DONE:
        return RegenerateResponse(
            ok=True,
            image_base64=_encode(outcome.image_bytes),
            attempts=outcome.attempts,
            warning=outcome.warning,
            validation=outcome.metrics,
        )
    return RegenerateResponse(
        ok=False,
        attempts=outcome.attempts,
        error=outcome.last_error,
        error_code=outcome.error_code,
        validation=outcome.metrics,
    )


@flow(name="colorbook-batch-flow", version="0.1.0")
async def run_batch_flow(payload: BatchGenerateRequest) -> BatchGenerateResponse:
    lifecycle = get_lifecycle_manager() if payload.persist else None
    return await execute_batch(payload, lifecycle=lifecycle)


@flow(name="colorbook-regenerate-flow", version="0.1.0")
async def regenerate_page_flow(page_index: int, payload: RegenerateRequest) -> RegenerateResponse:
    return await execute_regenerate(page_index, payload)
