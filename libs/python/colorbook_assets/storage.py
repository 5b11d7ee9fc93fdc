"""Object storage backends for generated assets."""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from uuid import uuid4

from .exceptions import StorageError

logger = logging.getLogger(__name__)


class ObjectStore(ABC):
    """Minimal bucket/path object store used by the lifecycle manager."""

    @abstractmethod
    def put(self, bucket: str, path: str, data: bytes, content_type: str) -> None:
        """Write ``data`` at ``bucket/path``, replacing any existing object."""

    @abstractmethod
    def delete(self, bucket: str, path: str) -> bool:
        """Remove an object. Returns ``False`` when it was already absent."""


class LocalObjectStore(ObjectStore):
    """Filesystem-backed store rooted at ``STORAGE_ROOT``."""

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self.root = Path(root).resolve()

    def _resolve(self, bucket: str, path: str) -> Path:
        target = (self.root / bucket / path).resolve()
        if self.root not in target.parents:
            raise StorageError(f"Path escapes storage root: {bucket}/{path}")
        return target

    def put(self, bucket: str, path: str, data: bytes, content_type: str) -> None:
        target = self._resolve(bucket, path)
        temp = target.with_name(f".{target.name}.{uuid4().hex}.tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            temp.write_bytes(data)
            os.replace(temp, target)
        except OSError as exc:
            temp.unlink(missing_ok=True)
            raise StorageError(f"Failed to write {bucket}/{path}: {exc}") from exc
        logger.debug(
            "Stored object",
            extra={"bucket": bucket, "path": path, "bytes": len(data), "content_type": content_type},
        )

    def delete(self, bucket: str, path: str) -> bool:
        target = self._resolve(bucket, path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Failed to delete {bucket}/{path}: {exc}") from exc
        return True
