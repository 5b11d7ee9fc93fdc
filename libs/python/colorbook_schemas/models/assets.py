"""Models describing persisted generated assets."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator

from ..enums import AssetStatus, AssetType


class StoredAsset(BaseModel):
    """Metadata row for an object written to durable storage."""

    id: UUID = Field(default_factory=uuid4)
    project_id: UUID
    user_id: UUID
    page_number: Optional[int] = Field(None, ge=1)
    asset_type: AssetType
    storage_bucket: str = "generated"
    storage_path: Optional[str] = None
    mime_type: str = "image/png"
    status: AssetStatus = AssetStatus.READY
    expires_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    meta: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode="after")
    def check_ready_has_path(self) -> "StoredAsset":
        if self.status == AssetStatus.READY and not self.storage_path:
            raise ValueError("A ready asset must have a storage path")
        return self
