"""Storage backends and the configuration-driven factory."""

from __future__ import annotations

import logging
from pathlib import Path

from dupkeep.config.models import StorageSettings

from .base import ListedObject, StorageBackend, StoredObject
from .content_store import GridFSStorageBackend
from .local import LocalStorageBackend

LOGGER = logging.getLogger(__name__)


def create_storage(settings: StorageSettings) -> StorageBackend:
    """Return the backend variant selected by ``settings.backend``.

    Variants that cannot be built degrade to local storage while keeping their
    intended ``backend_type``; records written through them are flagged as
    degraded.
    """
    root = Path(settings.root)
    if settings.backend == "local":
        return LocalStorageBackend(root)

    if settings.backend == "content_store" and settings.mongo_uri:
        import gridfs
        from pymongo import MongoClient

        client: MongoClient = MongoClient(settings.mongo_uri, serverSelectionTimeoutMS=5000)
        fs = gridfs.GridFS(client[settings.mongo_database], collection=settings.bucket)
        return GridFSStorageBackend(fs)

    if settings.backend == "content_store":
        reason = "no mongo_uri configured"
    else:
        reason = "object storage is not implemented yet"
    LOGGER.warning(
        "Storage backend %r unavailable (%s); degrading to local storage at %s",
        settings.backend,
        reason,
        root,
    )
    return LocalStorageBackend(root, backend_type=settings.backend, degraded=True)


__all__ = [
    "StorageBackend",
    "StoredObject",
    "ListedObject",
    "LocalStorageBackend",
    "GridFSStorageBackend",
    "create_storage",
]
