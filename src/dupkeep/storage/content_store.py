"""GridFS-backed content store."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterator

from bson import ObjectId
from bson.errors import InvalidId
from gridfs.errors import NoFile
from pymongo.errors import PyMongoError

from dupkeep.errors import StorageError, StorageNotFoundError

from .base import ListedObject, StorageBackend, StoredObject, unique_name

LOGGER = logging.getLogger(__name__)

LOCATION_SCHEME = "gridfs://"


class GridFSStorageBackend(StorageBackend):
    """Store bytes in a MongoDB GridFS bucket.

    Locations have the form ``gridfs://<ObjectId>``.
    """

    backend_type = "content_store"

    def __init__(self, fs: Any) -> None:
        """Wrap an existing ``gridfs.GridFS`` instance."""
        self._fs = fs

    def put(self, data: bytes, suggested_name: str, *, owner: str | None = None) -> StoredObject:
        stored_name = unique_name(suggested_name, owner, prefix="gridfs_")
        metadata = {
            "originalFileName": suggested_name,
            "uploadedBy": owner,
            "uploadedDate": datetime.now(timezone.utc).isoformat(),
            "fileSize": len(data),
        }
        try:
            file_id = self._fs.put(data, filename=stored_name, metadata=metadata)
        except PyMongoError as exc:
            raise StorageError(f"GridFS write failed for {suggested_name}: {exc}") from exc

        LOGGER.debug("Stored %d bytes in GridFS as %s", len(data), file_id)
        return StoredObject(
            location=f"{LOCATION_SCHEME}{file_id}",
            stored_name=stored_name,
            backend_type=self.backend_type,
        )

    def get(self, location: str) -> bytes:
        file_id = self._parse(location)
        try:
            return self._fs.get(file_id).read()
        except NoFile as exc:
            raise StorageNotFoundError(f"No GridFS file at {location}") from exc
        except PyMongoError as exc:
            raise StorageError(f"GridFS read failed for {location}: {exc}") from exc

    def delete(self, location: str) -> None:
        file_id = self._parse(location)
        try:
            self._fs.delete(file_id)
        except NoFile:
            return
        except PyMongoError as exc:
            raise StorageError(f"GridFS delete failed for {location}: {exc}") from exc

    def exists(self, location: str) -> bool:
        file_id = self._parse(location)
        try:
            return bool(self._fs.exists(file_id))
        except PyMongoError as exc:
            raise StorageError(f"GridFS lookup failed for {location}: {exc}") from exc

    def list_objects(self) -> Iterator[ListedObject]:
        try:
            for grid_out in self._fs.find():
                uploaded = grid_out.upload_date
                if uploaded.tzinfo is None:
                    uploaded = uploaded.replace(tzinfo=timezone.utc)
                yield ListedObject(location=f"{LOCATION_SCHEME}{grid_out._id}", stored_at=uploaded)
        except PyMongoError as exc:
            raise StorageError(f"GridFS listing failed: {exc}") from exc

    def _parse(self, location: str) -> ObjectId:
        if not location.startswith(LOCATION_SCHEME):
            raise StorageError(f"Not a GridFS location: {location}")
        try:
            return ObjectId(location[len(LOCATION_SCHEME) :])
        except InvalidId as exc:
            raise StorageError(f"Malformed GridFS location: {location}") from exc


__all__ = ["GridFSStorageBackend", "LOCATION_SCHEME"]
