"""Persist generated images and reclaim them once their retention expires."""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Callable
from uuid import UUID

from colorbook_observability import log_context, observe_stage_duration, observe_sweep
from colorbook_schemas import AssetStatus, AssetType, StoredAsset

from .exceptions import AssetMetadataError, StorageError
from .images import to_print_safe_png
from .repository import AssetRepository, PostgresAssetRepository
from .retention import RetentionPolicy, load_retention_policy
from .storage import LocalObjectStore, ObjectStore

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = "generated"
DEFAULT_SWEEP_BATCH_SIZE = 100

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "application/pdf": "pdf",
    "application/zip": "zip",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class AssetWrite:
    """Request to persist one asset."""

    project_id: UUID
    user_id: UUID
    asset_type: AssetType
    data: bytes
    page_number: int | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    mime_type: str = "image/png"
    skip_sanitize: bool = False


@dataclass(slots=True)
class PersistedAsset:
    asset_id: UUID
    storage_path: str
    expires_at: datetime


@dataclass(slots=True)
class SweepReport:
    processed: int = 0
    deleted: int = 0
    errors: int = 0
    has_more: bool = False


def build_storage_path(
    *,
    user_id: UUID,
    project_id: UUID,
    asset_type: AssetType,
    page_number: int | None,
    meta: dict[str, Any],
    mime_type: str,
    now: datetime,
) -> str:
    """Deterministic object key; page and front matter paths are stable so regeneration overwrites."""

    prefix = f"{user_id}/{project_id}"
    if asset_type == AssetType.PAGE_IMAGE and page_number is not None:
        return f"{prefix}/pages/page-{page_number:03d}.png"
    if asset_type == AssetType.FRONT_MATTER:
        kind = str(meta.get("front_matter_type") or "cover").strip().lower().replace("/", "-")
        return f"{prefix}/front/{kind}.png"
    extension = _EXTENSIONS.get(mime_type, "bin")
    return f"{prefix}/{asset_type.value}-{int(now.timestamp() * 1000)}.{extension}"


class AssetLifecycleManager:
    """Write assets with an expiry and sweep them once expired.

    All methods are blocking; async callers run them in a worker thread.
    """

    def __init__(
        self,
        repository: AssetRepository,
        store: ObjectStore,
        retention: RetentionPolicy | None = None,
        *,
        bucket: str = DEFAULT_BUCKET,
        clock: Callable[[], datetime] = _utcnow,
        write_attempts: int = 3,
        retry_delay_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
        service_name: str = "api",
    ) -> None:
        if write_attempts < 1:
            raise ValueError("write_attempts must be at least 1")
        self.repository = repository
        self.store = store
        self.retention = retention or RetentionPolicy()
        self.bucket = bucket
        self._clock = clock
        self.write_attempts = write_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep
        self.service_name = service_name

    def persist(self, write: AssetWrite) -> PersistedAsset:
        """Store the bytes, then upsert the metadata row.

        Raises:
            ValueError: If a page image has no page number.
            AssetImageError: If an image asset cannot be decoded.
            StorageError: If every write attempt failed.
            AssetMetadataError: If the metadata store rejected the row.
        """

        if write.asset_type == AssetType.PAGE_IMAGE and write.page_number is None:
            raise ValueError("Page images require a page number")

        start = perf_counter()
        outcome = "success"
        with log_context(project_id=str(write.project_id), stage="persist"):
            try:
                data = write.data
                mime_type = write.mime_type
                if write.asset_type in (AssetType.PAGE_IMAGE, AssetType.FRONT_MATTER) and not write.skip_sanitize:
                    data = to_print_safe_png(data)
                    mime_type = "image/png"

                now = self._clock()
                plan = self.repository.get_user_plan(write.user_id)
                expires_at = self.retention.expires_at(plan, now)
                storage_path = build_storage_path(
                    user_id=write.user_id,
                    project_id=write.project_id,
                    asset_type=write.asset_type,
                    page_number=write.page_number,
                    meta=write.meta,
                    mime_type=mime_type,
                    now=now,
                )

                self._put_with_retry(storage_path, data, mime_type)

                stored = self.repository.upsert_asset(
                    StoredAsset(
                        project_id=write.project_id,
                        user_id=write.user_id,
                        page_number=write.page_number,
                        asset_type=write.asset_type,
                        storage_bucket=self.bucket,
                        storage_path=storage_path,
                        mime_type=mime_type,
                        status=AssetStatus.READY,
                        expires_at=expires_at,
                        meta={**write.meta, "plan": plan or self.retention.default_plan},
                    )
                )
            except Exception:
                outcome = "error"
                logger.exception(
                    "Asset persistence failed",
                    extra={"asset_type": write.asset_type.value, "page_number": write.page_number},
                )
                raise
            finally:
                observe_stage_duration(
                    "persist",
                    perf_counter() - start,
                    service_name=self.service_name,
                    status=outcome,
                )

            logger.info(
                "Asset persisted",
                extra={
                    "asset_id": str(stored.id),
                    "storage_path": storage_path,
                    "expires_at": expires_at.isoformat(),
                },
            )
        return PersistedAsset(asset_id=stored.id, storage_path=storage_path, expires_at=expires_at)

    def _put_with_retry(self, path: str, data: bytes, mime_type: str) -> None:
        for attempt in range(1, self.write_attempts + 1):
            try:
                self.store.put(self.bucket, path, data, mime_type)
                return
            except StorageError:
                if attempt == self.write_attempts:
                    raise
                logger.warning(
                    "Storage write failed; retrying",
                    extra={"path": path, "attempt": attempt},
                )
                self._sleep(self.retry_delay_seconds * attempt)

    def sweep_expired(self, batch_size: int = DEFAULT_SWEEP_BATCH_SIZE) -> SweepReport:
        """Delete expired objects and flip their rows to ``expired``.

        Rows whose object deletion or metadata update fails stay ``ready`` and
        are picked up again by the next sweep; deleting an already missing
        object counts as success, so re-running is safe.
        """

        if batch_size < 1:
            raise ValueError("batch_size must be positive")

        start = perf_counter()
        now = self._clock()
        report = SweepReport()
        candidates = self.repository.list_expired(now, batch_size + 1)
        report.has_more = len(candidates) > batch_size

        for asset in candidates[:batch_size]:
            report.processed += 1
            with log_context(asset_id=str(asset.id), project_id=str(asset.project_id)):
                if asset.storage_path:
                    try:
                        removed = self.store.delete(asset.storage_bucket, asset.storage_path)
                    except StorageError:
                        report.errors += 1
                        logger.exception("Failed to delete expired object; will retry next sweep")
                        continue
                    if not removed:
                        logger.info("Expired object already absent", extra={"path": asset.storage_path})
                try:
                    self.repository.mark_expired(asset.id, now)
                except AssetMetadataError:
                    report.errors += 1
                    logger.exception("Object deleted but metadata update failed; will retry next sweep")
                    continue
                report.deleted += 1

        observe_sweep(deleted=report.deleted, errors=report.errors, service_name=self.service_name)
        observe_stage_duration(
            "sweep",
            perf_counter() - start,
            service_name=self.service_name,
            status="error" if report.errors else "success",
        )
        logger.info(
            "Expired asset sweep finished",
            extra={
                "processed": report.processed,
                "deleted": report.deleted,
                "errors": report.errors,
                "has_more": report.has_more,
            },
        )
        return report


def build_lifecycle_from_env(service_name: str = "api") -> AssetLifecycleManager | None:
    """Create a manager from ``DATABASE_URL``/``STORAGE_ROOT``, or ``None`` when either is unset."""

    database_url = os.getenv("DATABASE_URL", "").strip()
    storage_root = os.getenv("STORAGE_ROOT", "").strip()
    if not database_url or not storage_root:
        logger.info(
            "Asset persistence not configured",
            extra={"has_database_url": bool(database_url), "has_storage_root": bool(storage_root)},
        )
        return None
    return AssetLifecycleManager(
        PostgresAssetRepository.from_url(database_url),
        LocalObjectStore(storage_root),
        load_retention_policy(),
        bucket=os.getenv("ASSET_BUCKET", DEFAULT_BUCKET).strip() or DEFAULT_BUCKET,
        service_name=service_name,
    )
