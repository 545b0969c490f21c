"""Storage backend contract."""

from __future__ import annotations

import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Iterator

_UNSAFE_OWNER = re.compile(r"[^a-zA-Z0-9._-]")


@dataclass(frozen=True, slots=True)
class StoredObject:
    """Result of a successful ``put``.

    Attributes:
        location: Opaque token accepted by ``get``/``delete``/``exists``.
        stored_name: Unique physical name chosen for the bytes.
        backend_type: Variant the caller asked for.
        degraded: True when the bytes actually live on the local fallback.
    """

    location: str
    stored_name: str
    backend_type: str
    degraded: bool = False


@dataclass(frozen=True, slots=True)
class ListedObject:
    """One object found by ``StorageBackend.list_objects``."""

    location: str
    stored_at: datetime


def sanitize_owner(owner: str | None) -> str:
    """Return a filesystem-safe, lowercase owner segment."""
    if not owner:
        return "anonymous"
    return _UNSAFE_OWNER.sub("_", owner).lower()


def unique_name(suggested_name: str, owner: str | None = None, *, prefix: str = "") -> str:
    """Build ``owner_YYYYmmdd_HHMMSS_<8 hex><ext>`` from a suggested name."""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    suffix = PurePath(suggested_name).suffix.lower()
    return f"{prefix}{sanitize_owner(owner)}_{timestamp}_{uuid.uuid4().hex[:8]}{suffix}"


class StorageBackend(ABC):
    """Stores, retrieves and deletes physical bytes behind a uniform interface.

    Once ``put`` returns, ``get`` with the returned location yields identical bytes
    until ``delete`` is called. ``delete`` is idempotent.
    """

    backend_type: str = "local"
    degraded: bool = False

    @abstractmethod
    def put(self, data: bytes, suggested_name: str, *, owner: str | None = None) -> StoredObject:
        """Write ``data`` under a fresh unique name and return its location."""

    @abstractmethod
    def get(self, location: str) -> bytes:
        """Return the bytes stored at ``location``.

        Raises:
            StorageNotFoundError: If nothing is stored there.
        """

    @abstractmethod
    def delete(self, location: str) -> None:
        """Remove the bytes at ``location``; missing locations are ignored."""

    @abstractmethod
    def exists(self, location: str) -> bool:
        """Return whether ``location`` currently resolves to stored bytes."""

    @abstractmethod
    def list_objects(self) -> Iterator[ListedObject]:
        """Yield every object currently held by the backend."""


__all__ = [
    "StorageBackend",
    "StoredObject",
    "ListedObject",
    "sanitize_owner",
    "unique_name",
]
