"""FastAPI entrypoint for the Prefect-powered page generation service."""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Path
from fastapi.responses import JSONResponse

from colorbook_observability import (
    log_context,
    setup_fastapi_metrics,
    setup_logging,
)

from .flows import get_lifecycle_manager, regenerate_page_flow, run_batch_flow
from .models import (
    BatchGenerateRequest,
    BatchGenerateResponse,
    RegenerateRequest,
    RegenerateResponse,
)

SERVICE_NAME = "orchestrator"
setup_logging(SERVICE_NAME)
logger = logging.getLogger(__name__)

app = FastAPI(title="Colorbook Page Orchestrator", version="0.1.0")
setup_fastapi_metrics(app, service_name=SERVICE_NAME)


@app.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/pages/batch", response_model=BatchGenerateResponse, tags=["pages"])
async def generate_batch(payload: BatchGenerateRequest) -> BatchGenerateResponse:
    project_context = {}
    if payload.project_id:
        project_context["project_id"] = str(payload.project_id)

    if payload.persist and get_lifecycle_manager() is None:
        raise HTTPException(status_code=503, detail="Asset persistence is not configured")

    with log_context(stage="batch", **project_context):
        logger.info(
            "Dispatching batch generation",
            extra={"page_count": len(payload.pages), "concurrency": payload.concurrency},
        )

    response = await run_batch_flow(payload)

    with log_context(batch_id=str(response.batch_id), **project_context):
        logger.info(
            "Completed batch generation",
            extra={
                "success_count": response.success_count,
                "fail_count": response.fail_count,
                "provider": response.provider_name,
            },
        )

    return response


@app.post(
    "/pages/{page_index}/regenerate",
    response_model=RegenerateResponse,
    response_model_exclude_none=True,
    tags=["pages"],
)
async def regenerate_page(
    payload: RegenerateRequest,
    page_index: int = Path(..., ge=1),
):
    response = await regenerate_page_flow(page_index, payload)
    if not response.ok:
        with log_context(page_index=page_index):
            logger.warning(
                "Regeneration failed",
                extra={"error_code": response.error_code.value if response.error_code else None},
            )
        return JSONResponse(
            status_code=422,
            content={
                "ok": False,
                "error": response.error,
                "error_code": response.error_code.value if response.error_code else None,
            },
        )
    return response
