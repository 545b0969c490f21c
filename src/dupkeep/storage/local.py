"""Local filesystem storage backend."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from dupkeep.errors import StorageError, StorageNotFoundError

from .base import ListedObject, StorageBackend, StoredObject, sanitize_owner, unique_name

LOGGER = logging.getLogger(__name__)

_MAX_NAME_ATTEMPTS = 5


class LocalStorageBackend(StorageBackend):
    """Store bytes as files under ``<root>/<owner>/<YYYY>/<MM>/<DD>/``.

    The same class serves as the explicit fallback for variants that are not
    available; in that case ``backend_type`` names the intended variant and
    ``degraded`` is set so records can be labelled accordingly.
    """

    def __init__(self, root: Path, *, backend_type: str = "local", degraded: bool = False) -> None:
        self.root = root.expanduser().resolve()
        self.backend_type = backend_type
        self.degraded = degraded

    def put(self, data: bytes, suggested_name: str, *, owner: str | None = None) -> StoredObject:
        day = datetime.now(timezone.utc)
        directory = self.root / sanitize_owner(owner) / f"{day:%Y}" / f"{day:%m}" / f"{day:%d}"
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Unable to prepare storage directory {directory}: {exc}") from exc

        for _ in range(_MAX_NAME_ATTEMPTS):
            stored_name = unique_name(suggested_name, owner)
            target = directory / stored_name
            try:
                handle = target.open("xb")
            except FileExistsError:
                continue
            except OSError as exc:
                raise StorageError(f"Unable to create {target}: {exc}") from exc

            try:
                with handle:
                    handle.write(data)
            except OSError as exc:
                target.unlink(missing_ok=True)
                raise StorageError(f"Unable to write {target}: {exc}") from exc

            LOGGER.debug("Stored %d bytes at %s", len(data), target)
            return StoredObject(
                location=str(target),
                stored_name=stored_name,
                backend_type=self.backend_type,
                degraded=self.degraded,
            )

        raise StorageError(f"Could not find a free name for {suggested_name} in {directory}")

    def get(self, location: str) -> bytes:
        path = self._resolve(location)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise StorageNotFoundError(f"No stored file at {location}") from exc
        except OSError as exc:
            raise StorageError(f"Unable to read {location}: {exc}") from exc

    def delete(self, location: str) -> None:
        path = self._resolve(location)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Unable to delete {location}: {exc}") from exc

    def exists(self, location: str) -> bool:
        return self._resolve(location).is_file()

    def list_objects(self) -> Iterator[ListedObject]:
        if not self.root.exists():
            return
        try:
            for path in sorted(self.root.rglob("*")):
                if not path.is_file():
                    continue
                modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
                yield ListedObject(location=str(path), stored_at=modified)
        except OSError as exc:
            raise StorageError(f"Unable to list storage root {self.root}: {exc}") from exc

    def _resolve(self, location: str) -> Path:
        path = Path(location).expanduser().resolve()
        if self.root not in path.parents:
            raise StorageError(f"Location {location} is outside storage root {self.root}")
        return path


__all__ = ["LocalStorageBackend"]
