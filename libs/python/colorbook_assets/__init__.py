from .exceptions import AssetError, AssetImageError, AssetMetadataError, StorageError
from .images import to_print_safe_png
from .lifecycle import (
    AssetLifecycleManager,
    AssetWrite,
    PersistedAsset,
    SweepReport,
    build_lifecycle_from_env,
    build_storage_path,
)
from .repository import AssetRepository, InMemoryAssetRepository, PostgresAssetRepository
from .retention import RetentionPolicy, load_retention_policy
from .storage import LocalObjectStore, ObjectStore

__all__ = [
    "AssetError",
    "AssetImageError",
    "AssetLifecycleManager",
    "AssetMetadataError",
    "AssetRepository",
    "AssetWrite",
    "InMemoryAssetRepository",
    "LocalObjectStore",
    "ObjectStore",
    "PersistedAsset",
    "PostgresAssetRepository",
    "RetentionPolicy",
    "StorageError",
    "SweepReport",
    "build_lifecycle_from_env",
    "build_storage_path",
    "load_retention_policy",
    "to_print_safe_png",
]
