"""Asset persistence and retention API for the colorbook stack."""
from __future__ import annotations

import base64
import binascii
import logging
import os
import secrets
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, model_validator

from colorbook_assets import (
    AssetImageError,
    AssetLifecycleManager,
    AssetMetadataError,
    AssetWrite,
    StorageError,
    build_lifecycle_from_env,
)
from colorbook_observability import (
    log_context,
    setup_fastapi_metrics,
    setup_logging,
)
from colorbook_schemas import AssetType

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("COLORBOOK_ALLOWED_ORIGINS", "http://localhost:3100").split(",")
    if origin.strip()
]

MAX_SWEEP_BATCH_SIZE = 1000

SERVICE_NAME = "api"
setup_logging(SERVICE_NAME)
logger = logging.getLogger(__name__)

_lifecycle: AssetLifecycleManager | None = None


class AssetCreateRequest(BaseModel):
    project_id: UUID
    user_id: UUID
    page_number: Optional[int] = Field(None, ge=1)
    asset_type: AssetType = AssetType.PAGE_IMAGE
    image_base64: str = Field(..., min_length=1)
    mime_type: str = "image/png"
    meta: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_page_number(self) -> "AssetCreateRequest":
        if self.asset_type == AssetType.PAGE_IMAGE and self.page_number is None:
            raise ValueError("page_number is required for page images")
        return self


class AssetCreateResponse(BaseModel):
    asset_id: UUID
    storage_path: str
    expires_at: datetime


class CleanupResponse(BaseModel):
    processed: int
    deleted: int
    errors: int
    has_more: bool


def get_lifecycle_manager() -> AssetLifecycleManager:
    global _lifecycle
    if _lifecycle is None:
        _lifecycle = build_lifecycle_from_env(service_name=SERVICE_NAME)
    if _lifecycle is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Asset storage is not configured",
        )
    return _lifecycle


def require_cleanup_secret(request: Request) -> None:
    secret = os.getenv("CLEANUP_SECRET")
    if not secret:
        return
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid cleanup token")


def _decode_base64(value: str) -> bytes:
    payload = value.split(",", 1)[1] if value.startswith("data:") else value
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="image_base64 is not valid base64") from exc


app = FastAPI(title="Colorbook Asset API", version="0.1.0")
setup_fastapi_metrics(app, service_name=SERVICE_NAME)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/assets", response_model=AssetCreateResponse, status_code=status.HTTP_201_CREATED, tags=["assets"])
async def create_asset(
    payload: AssetCreateRequest,
    lifecycle: AssetLifecycleManager = Depends(get_lifecycle_manager),
) -> AssetCreateResponse:
    data = _decode_base64(payload.image_base64)
    write = AssetWrite(
        project_id=payload.project_id,
        user_id=payload.user_id,
        asset_type=payload.asset_type,
        data=data,
        page_number=payload.page_number,
        meta=payload.meta,
        mime_type=payload.mime_type,
    )

    with log_context(project_id=str(payload.project_id), stage="persist"):
        try:
            persisted = await run_in_threadpool(lifecycle.persist, write)
        except AssetImageError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        except StorageError as exc:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to store asset") from exc
        except AssetMetadataError as exc:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to record asset metadata",
            ) from exc

    return AssetCreateResponse(
        asset_id=persisted.asset_id,
        storage_path=persisted.storage_path,
        expires_at=persisted.expires_at,
    )


@app.post(
    "/assets/cleanup",
    response_model=CleanupResponse,
    dependencies=[Depends(require_cleanup_secret)],
    tags=["assets"],
)
async def cleanup_assets(
    batch_size: int = Query(100, ge=1, le=MAX_SWEEP_BATCH_SIZE),
    lifecycle: AssetLifecycleManager = Depends(get_lifecycle_manager),
) -> CleanupResponse:
    try:
        report = await run_in_threadpool(lifecycle.sweep_expired, batch_size)
    except AssetMetadataError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list expired assets",
        ) from exc
    return CleanupResponse(
        processed=report.processed,
        deleted=report.deleted,
        errors=report.errors,
        has_more=report.has_more,
    )
