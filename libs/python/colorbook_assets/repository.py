"""Metadata stores for generated asset rows."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from colorbook_schemas import AssetStatus, StoredAsset

from .exceptions import AssetMetadataError


class AssetRepository(ABC):
    """Persistence operations the lifecycle manager relies on."""

    @abstractmethod
    def upsert_asset(self, asset: StoredAsset) -> StoredAsset:
        """Insert the row, or update the existing row for the same project/page/type."""

    @abstractmethod
    def get_asset(self, asset_id: UUID) -> Optional[StoredAsset]:
        """Fetch a single row by id."""

    @abstractmethod
    def get_user_plan(self, user_id: UUID) -> Optional[str]:
        """Return the user's plan identifier, or ``None`` when unknown."""

    @abstractmethod
    def list_expired(self, now: datetime, limit: int) -> list[StoredAsset]:
        """Ready rows whose expiry is before ``now``, oldest first."""

    @abstractmethod
    def mark_expired(self, asset_id: UUID, deleted_at: datetime) -> None:
        """Flip a ready row to expired and clear its storage path."""


_UPSERT_SQL = """
    INSERT INTO generated_assets (
        id, project_id, user_id, page_number, asset_type, storage_bucket,
        storage_path, mime_type, status, expires_at, deleted_at, meta
    )
    VALUES (
        %(id)s, %(project_id)s, %(user_id)s, %(page_number)s, %(asset_type)s, %(storage_bucket)s,
        %(storage_path)s, %(mime_type)s, %(status)s, %(expires_at)s, NULL, %(meta)s
    )
    ON CONFLICT (project_id, page_number, asset_type) WHERE page_number IS NOT NULL
    DO UPDATE SET
        user_id = EXCLUDED.user_id,
        storage_bucket = EXCLUDED.storage_bucket,
        storage_path = EXCLUDED.storage_path,
        mime_type = EXCLUDED.mime_type,
        status = EXCLUDED.status,
        expires_at = EXCLUDED.expires_at,
        deleted_at = NULL,
        meta = EXCLUDED.meta,
        updated_at = NOW()
    RETURNING *
"""


class PostgresAssetRepository(AssetRepository):
    """``generated_assets`` table access through a psycopg connection pool."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    @classmethod
    def from_url(cls, database_url: str, *, max_size: int = 10) -> "PostgresAssetRepository":
        # psycopg connection URLs do not use SQLAlchemy's driver suffix.
        conninfo = database_url.replace("+psycopg", "")
        return cls(ConnectionPool(conninfo, min_size=1, max_size=max_size, open=True))

    def close(self) -> None:
        self._pool.close()

    def upsert_asset(self, asset: StoredAsset) -> StoredAsset:
        params = {
            "id": asset.id,
            "project_id": asset.project_id,
            "user_id": asset.user_id,
            "page_number": asset.page_number,
            "asset_type": asset.asset_type.value,
            "storage_bucket": asset.storage_bucket,
            "storage_path": asset.storage_path,
            "mime_type": asset.mime_type,
            "status": asset.status.value,
            "expires_at": asset.expires_at,
            "meta": Jsonb(asset.meta),
        }
        row = self._fetch_one(_UPSERT_SQL, params, commit=True)
        if row is None:
            raise AssetMetadataError("Upsert returned no row")
        return _row_to_asset(row)

    def get_asset(self, asset_id: UUID) -> Optional[StoredAsset]:
        row = self._fetch_one("SELECT * FROM generated_assets WHERE id = %s", (asset_id,))
        return _row_to_asset(row) if row else None

    def get_user_plan(self, user_id: UUID) -> Optional[str]:
        row = self._fetch_one("SELECT plan FROM user_plans WHERE user_id = %s", (user_id,))
        return row["plan"] if row else None

    def list_expired(self, now: datetime, limit: int) -> list[StoredAsset]:
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        """
                        SELECT * FROM generated_assets
                        WHERE status = %s AND expires_at < %s AND deleted_at IS NULL
                        ORDER BY expires_at
                        LIMIT %s
                        """,
                        (AssetStatus.READY.value, now, limit),
                    )
                    rows = cur.fetchall()
        except psycopg.Error as exc:
            raise AssetMetadataError(f"Failed to list expired assets: {exc}") from exc
        return [_row_to_asset(row) for row in rows]

    def mark_expired(self, asset_id: UUID, deleted_at: datetime) -> None:
        try:
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE generated_assets
                        SET status = %s, storage_path = NULL, deleted_at = %s, updated_at = NOW()
                        WHERE id = %s AND status = %s
                        """,
                        (AssetStatus.EXPIRED.value, deleted_at, asset_id, AssetStatus.READY.value),
                    )
                conn.commit()
        except psycopg.Error as exc:
            raise AssetMetadataError(f"Failed to expire asset {asset_id}: {exc}") from exc

    def _fetch_one(self, sql: str, params: Any, *, commit: bool = False) -> Optional[dict[str, Any]]:
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(sql, params)
                    row = cur.fetchone()
                if commit:
                    conn.commit()
        except psycopg.Error as exc:
            raise AssetMetadataError(f"Metadata query failed: {exc}") from exc
        return row


def _row_to_asset(row: dict[str, Any]) -> StoredAsset:
    payload = dict(row)
    payload["meta"] = payload.get("meta") or {}
    return StoredAsset.model_validate(payload)


class InMemoryAssetRepository(AssetRepository):
    """Thread-safe dictionary-backed repository for tests and local runs."""

    def __init__(self, plans: dict[UUID, str] | None = None) -> None:
        self._rows: dict[UUID, StoredAsset] = {}
        self._plans = dict(plans or {})
        self._lock = threading.Lock()

    def upsert_asset(self, asset: StoredAsset) -> StoredAsset:
        with self._lock:
            existing = None
            if asset.page_number is not None:
                existing = next(
                    (
                        row
                        for row in self._rows.values()
                        if row.project_id == asset.project_id
                        and row.page_number == asset.page_number
                        and row.asset_type == asset.asset_type
                    ),
                    None,
                )
            if existing is not None:
                stored = asset.model_copy(
                    update={
                        "id": existing.id,
                        "created_at": existing.created_at,
                        "deleted_at": None,
                        "updated_at": datetime.utcnow(),
                    }
                )
            else:
                stored = asset
            self._rows[stored.id] = stored
            return stored

    def get_asset(self, asset_id: UUID) -> Optional[StoredAsset]:
        with self._lock:
            return self._rows.get(asset_id)

    def get_user_plan(self, user_id: UUID) -> Optional[str]:
        return self._plans.get(user_id)

    def list_expired(self, now: datetime, limit: int) -> list[StoredAsset]:
        with self._lock:
            expired = [
                row
                for row in self._rows.values()
                if row.status == AssetStatus.READY
                and row.expires_at is not None
                and row.expires_at < now
                and row.deleted_at is None
            ]
        expired.sort(key=lambda row: row.expires_at)
        return expired[:limit]

    def mark_expired(self, asset_id: UUID, deleted_at: datetime) -> None:
        with self._lock:
            row = self._rows.get(asset_id)
            if row is None or row.status != AssetStatus.READY:
                return
            self._rows[asset_id] = row.model_copy(
                update={
                    "status": AssetStatus.EXPIRED,
                    "storage_path": None,
                    "deleted_at": deleted_at,
                    "updated_at": datetime.utcnow(),
                }
            )

    def all(self) -> list[StoredAsset]:
        with self._lock:
            return list(self._rows.values())
