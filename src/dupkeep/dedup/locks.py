"""Per-key mutual exclusion."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator

from dupkeep.errors import PersistenceError


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users = 0


class KeyedLock:
    """Table of reentrant locks keyed by string, created on demand.

    Entries are reference counted and dropped once no thread holds or waits on
    them, so the table stays proportional to in-flight work. Different keys
    never contend with each other.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    @contextmanager
    def hold(self, key: str, timeout: float | None = None) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the ``with`` block.

        Args:
            key: Lock key, typically a content fingerprint.
            timeout: Seconds to wait; ``None`` waits indefinitely.

        Raises:
            PersistenceError: If the lock is not acquired within ``timeout``.
        """
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1

        acquired = False
        try:
            acquired = entry.lock.acquire(timeout=-1 if timeout is None else max(timeout, 0))
            if not acquired:
                raise PersistenceError(f"Timed out waiting for lock on {key[:12]}")
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


__all__ = ["KeyedLock"]
