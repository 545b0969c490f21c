"""Record repository tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from dupkeep.errors import PersistenceError
from dupkeep.state import (
    RECORDS_FILENAME,
    CorruptStateError,
    InMemoryRecordRepository,
    JsonRecordRepository,
    StateError,
)
from dupkeep.state.models import FileRecord


def _record(**overrides: object) -> FileRecord:
    """Return a sample record for repository tests.

    Args:
        overrides: Field values replacing the defaults.

    Returns:
        FileRecord: Record populated with placeholder hashes and location.
    """
    data: dict[str, object] = {
        "file_name": "report.txt",
        "stored_name": "anonymous_20240101_000000_deadbeef.txt",
        "storage_location": "/tmp/uploads/report.txt",
        "content_hash": "a" * 64,
        "file_hash": "b" * 64,
        "file_size": 12,
        "extension": "txt",
    }
    data.update(overrides)
    return FileRecord.model_validate(data)


def test_record_requires_hashes() -> None:
    with pytest.raises(ValueError):
        _record(content_hash="")


def test_in_memory_repository_returns_copies() -> None:
    repo = InMemoryRecordRepository()
    saved = repo.save(_record())

    saved.tags.append("mutated")

    fetched = repo.find_by_id(saved.id)
    assert fetched is not None
    assert fetched.tags == []


def test_find_by_fingerprint_filters_on_content_hash() -> None:
    repo = InMemoryRecordRepository([_record(), _record(), _record(content_hash="c" * 64)])

    assert len(repo.find_by_fingerprint("a" * 64)) == 2
    assert len(repo.find_by_fingerprint("c" * 64)) == 1
    assert repo.find_by_fingerprint("d" * 64) == []


def test_delete_by_id_is_idempotent() -> None:
    record = _record()
    repo = InMemoryRecordRepository([record])

    repo.delete_by_id(record.id)
    repo.delete_by_id(record.id)

    assert repo.find_by_id(record.id) is None
    assert repo.find_all() == []


def test_json_repository_round_trip(tmp_path: Path) -> None:
    """Ensure records written by one repository are visible to a fresh one.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    repo = JsonRecordRepository(tmp_path / "state")
    record = repo.save(_record(tags=["finance"]))

    reopened = JsonRecordRepository(tmp_path / "state")
    loaded = reopened.find_by_id(record.id)

    assert loaded is not None
    assert loaded.tags == ["finance"]
    assert loaded.content_hash == record.content_hash
    assert (tmp_path / "state" / RECORDS_FILENAME).exists()
    assert not (tmp_path / "state" / f"{RECORDS_FILENAME}.tmp").exists()


def test_json_repository_delete_persists(tmp_path: Path) -> None:
    repo = JsonRecordRepository(tmp_path)
    record = repo.save(_record())

    repo.delete_by_id(record.id)

    payload = json.loads((tmp_path / RECORDS_FILENAME).read_text(encoding="utf-8"))
    assert payload["records"] == {}


def test_json_repository_rejects_corrupt_store(tmp_path: Path) -> None:
    (tmp_path / RECORDS_FILENAME).write_text("{not json", encoding="utf-8")

    with pytest.raises(CorruptStateError):
        JsonRecordRepository(tmp_path)


def test_json_repository_write_failure_keeps_memory_view(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    repo = JsonRecordRepository(tmp_path)
    first = repo.save(_record())

    def _fail(*_: object, **__: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr("dupkeep.state.os.replace", _fail)

    with pytest.raises(StateError) as excinfo:
        repo.save(_record(file_name="second.txt"))

    assert isinstance(excinfo.value, PersistenceError)
    assert [record.id for record in repo.find_all()] == [first.id]
