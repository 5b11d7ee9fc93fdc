"""Errors raised while persisting or reclaiming generated assets."""

from __future__ import annotations


class AssetError(RuntimeError):
    """Base error for asset lifecycle failures."""


class StorageError(AssetError):
    """Raised when the object store cannot write or delete an object."""


class AssetMetadataError(AssetError):
    """Raised when the metadata store rejects a read or write."""


class AssetImageError(AssetError, ValueError):
    """Raised when asset bytes cannot be decoded as an image."""
