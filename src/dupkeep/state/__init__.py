"""Record persistence for ingested files."""

from __future__ import annotations

import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol

from pydantic import ValidationError

from .errors import CorruptStateError, StateError
from .models import FileRecord, RecordStore

RECORDS_FILENAME = "records.json"


class RecordRepository(Protocol):
    """Contract the engine expects from a record store.

    Implementations return copies, so callers mutate a record and then ``save`` it.
    Reads must observe every write completed earlier in the same process.
    """

    def find_by_id(self, record_id: str) -> Optional[FileRecord]: ...

    def find_by_fingerprint(self, fingerprint: str) -> List[FileRecord]: ...

    def find_all(self) -> List[FileRecord]: ...

    def save(self, record: FileRecord) -> FileRecord: ...

    def delete_by_id(self, record_id: str) -> None: ...


class InMemoryRecordRepository:
    """Process-local record store, used in tests and ephemeral hosts."""

    def __init__(self, records: Iterable[FileRecord] | None = None) -> None:
        self._lock = threading.RLock()
        self._records: Dict[str, FileRecord] = {}
        for record in records or ():
            self._records[record.id] = record.model_copy(deep=True)

    def find_by_id(self, record_id: str) -> Optional[FileRecord]:
        with self._lock:
            record = self._records.get(record_id)
            return record.model_copy(deep=True) if record is not None else None

    def find_by_fingerprint(self, fingerprint: str) -> List[FileRecord]:
        with self._lock:
            return [
                record.model_copy(deep=True)
                for record in self._records.values()
                if record.content_hash == fingerprint
            ]

    def find_all(self) -> List[FileRecord]:
        with self._lock:
            return [record.model_copy(deep=True) for record in self._records.values()]

    def save(self, record: FileRecord) -> FileRecord:
        with self._lock:
            stored = record.model_copy(deep=True)
            self._write({**self._records, stored.id: stored})
            self._records[stored.id] = stored
            return stored.model_copy(deep=True)

    def delete_by_id(self, record_id: str) -> None:
        with self._lock:
            if record_id not in self._records:
                return
            remaining = {key: value for key, value in self._records.items() if key != record_id}
            self._write(remaining)
            self._records = remaining

    def _write(self, records: Dict[str, FileRecord]) -> None:
        """Hook for durable subclasses; called before the in-memory view changes."""


class JsonRecordRepository(InMemoryRecordRepository):
    """Record store persisted as a single JSON document under a state directory."""

    def __init__(self, state_dir: Path) -> None:
        """Open (or create) the store rooted at ``state_dir``.

        Args:
            state_dir: Directory holding ``records.json``.

        Raises:
            CorruptStateError: If an existing store cannot be parsed.
        """
        self._state_dir = state_dir.expanduser()
        self._created_at = datetime.now(timezone.utc)
        super().__init__()
        store = self._load()
        if store is not None:
            self._created_at = store.created_at
            self._records = dict(store.records)

    @property
    def path(self) -> Path:
        """Return the path of the JSON document backing the store."""
        return self._state_dir / RECORDS_FILENAME

    def _load(self) -> RecordStore | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return RecordStore.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as exc:
            raise CorruptStateError(f"Invalid record store at {self.path}: {exc}") from exc

    def _write(self, records: Dict[str, FileRecord]) -> None:
        store = RecordStore(
            records=records,
            created_at=self._created_at,
            updated_at=datetime.now(timezone.utc),
        )
        tmp_path = self.path.with_suffix(".json.tmp")
        try:
            self._state_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(store.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise StateError(f"Unable to write record store {self.path}: {exc}") from exc


__all__ = [
    "RecordRepository",
    "InMemoryRecordRepository",
    "JsonRecordRepository",
    "RECORDS_FILENAME",
    "FileRecord",
    "RecordStore",
    "StateError",
    "CorruptStateError",
]
