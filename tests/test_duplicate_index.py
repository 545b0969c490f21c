"""Duplicate index tests."""

from __future__ import annotations

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest

from dupkeep.dedup import DuplicateIndex, KeyedLock
from dupkeep.errors import PersistenceError, RecordNotFoundError
from dupkeep.state import InMemoryRecordRepository
from dupkeep.state.errors import StateError
from dupkeep.state.models import FileRecord

FINGERPRINT = "f" * 64
OTHER = "e" * 64


def _record(fingerprint: str = FINGERPRINT, **overrides: object) -> FileRecord:
    data: dict[str, object] = {
        "file_name": "doc.txt",
        "stored_name": "doc.txt",
        "storage_location": f"/uploads/{uuid.uuid4().hex}",
        "content_hash": fingerprint,
        "file_hash": "1" * 64,
        "file_size": 10,
        "extension": "txt",
    }
    data.update(overrides)
    return FileRecord.model_validate(data)


def test_first_registration_is_unique() -> None:
    repo = InMemoryRecordRepository()
    index = DuplicateIndex(repo)
    record = _record()

    registration = index.register(FINGERPRINT, record.id, pending=record)

    assert not registration.is_duplicate
    assert registration.group_id is None
    assert registration.group_size == 1
    assert repo.find_by_id(record.id) is not None


def test_second_registration_creates_group_for_both() -> None:
    repo = InMemoryRecordRepository()
    index = DuplicateIndex(repo)
    first, second = _record(), _record()

    index.register(FINGERPRINT, first.id, pending=first)
    registration = index.register(FINGERPRINT, second.id, pending=second)

    assert registration.is_duplicate
    assert registration.group_size == 2
    stored_first = repo.find_by_id(first.id)
    stored_second = repo.find_by_id(second.id)
    assert stored_first is not None and stored_second is not None
    assert stored_first.is_duplicate and stored_second.is_duplicate
    assert stored_first.duplicate_group_id == stored_second.duplicate_group_id
    assert stored_first.duplicate_group_id == registration.group_id


def test_third_registration_reuses_group_id() -> None:
    repo = InMemoryRecordRepository()
    index = DuplicateIndex(repo)
    records = [_record() for _ in range(3)]

    registrations = [index.register(FINGERPRINT, r.id, pending=r) for r in records]

    assert registrations[2].group_id == registrations[1].group_id
    assert registrations[2].group_size == 3
    # existing members keep the count they were marked with
    stored_first = repo.find_by_id(records[0].id)
    assert stored_first is not None
    assert stored_first.duplicate_count == 2


def test_different_fingerprints_do_not_group() -> None:
    repo = InMemoryRecordRepository()
    index = DuplicateIndex(repo)
    a, b = _record(), _record(OTHER)

    index.register(FINGERPRINT, a.id, pending=a)
    registration = index.register(OTHER, b.id, pending=b)

    assert not registration.is_duplicate
    assert index.groups() == []


def test_register_existing_record_by_id() -> None:
    first, second = _record(), _record()
    repo = InMemoryRecordRepository([first, second])
    index = DuplicateIndex(repo)

    registration = index.register(FINGERPRINT, second.id)

    assert registration.is_duplicate
    assert registration.group_size == 2


def test_register_unknown_record_raises() -> None:
    index = DuplicateIndex(InMemoryRecordRepository())

    with pytest.raises(RecordNotFoundError):
        index.register(FINGERPRINT, "missing")


def test_concurrent_registrations_form_one_group() -> None:
    workers = 16
    records = [_record() for _ in range(workers)]
    repo = InMemoryRecordRepository()
    index = DuplicateIndex(repo)
    barrier = threading.Barrier(workers)

    def _register(record: FileRecord) -> int:
        barrier.wait()
        return index.register(FINGERPRINT, record.id, pending=record).group_size

    with ThreadPoolExecutor(max_workers=workers) as pool:
        sizes = sorted(pool.map(_register, records))

    assert sizes == list(range(1, workers + 1))
    stored = repo.find_by_fingerprint(FINGERPRINT)
    assert len(stored) == workers
    group_ids = {record.duplicate_group_id for record in stored}
    assert len(group_ids) == 1 and None not in group_ids
    assert all(record.is_duplicate for record in stored)
    assert max(record.duplicate_count for record in stored) == workers


class _FailingRepository(InMemoryRecordRepository):
    def __init__(self, fail_on: str) -> None:
        super().__init__()
        self.fail_on = fail_on

    def save(self, record: FileRecord) -> FileRecord:
        if record.id == self.fail_on:
            raise StateError("disk full")
        return super().save(record)


def test_failed_persist_restores_stamped_members() -> None:
    first, second = _record(), _record()
    repo = _FailingRepository(fail_on=second.id)
    index = DuplicateIndex(repo)
    index.register(FINGERPRINT, first.id, pending=first)

    with pytest.raises(PersistenceError):
        index.register(FINGERPRINT, second.id, pending=second)

    stored_first = repo.find_by_id(first.id)
    assert stored_first is not None
    assert not stored_first.is_duplicate
    assert stored_first.duplicate_group_id is None
    assert repo.find_by_id(second.id) is None


def test_lock_timeout_raises_persistence_error() -> None:
    locks = KeyedLock()
    index = DuplicateIndex(InMemoryRecordRepository(), locks=locks)
    record = _record()
    held = threading.Event()
    release = threading.Event()

    def _holder() -> None:
        with locks.hold(FINGERPRINT):
            held.set()
            release.wait(5)

    thread = threading.Thread(target=_holder)
    thread.start()
    held.wait(5)
    try:
        with pytest.raises(PersistenceError):
            index.register(FINGERPRINT, record.id, pending=record, timeout=0.05)
    finally:
        release.set()
        thread.join()
    assert len(locks) == 0


def test_rescan_is_idempotent() -> None:
    records = [_record(), _record(), _record(OTHER)]
    repo = InMemoryRecordRepository(records)
    index = DuplicateIndex(repo)

    first = index.rescan()
    second = index.rescan()

    assert first.groups_processed == 1
    assert first.new_duplicates_found == 2
    assert first.groups_dissolved == 0
    assert second.groups_processed == 1
    assert second.new_duplicates_found == 0
    assert second.groups_dissolved == 0
    groups = index.groups()
    assert len(groups) == 1
    assert set(groups[0].record_ids) == {records[0].id, records[1].id}


def test_rescan_clears_stale_singletons_and_merges_group_ids() -> None:
    stale = _record(OTHER, is_duplicate=True, duplicate_group_id="old", duplicate_count=2)
    a = _record(is_duplicate=True, duplicate_group_id="g1", duplicate_count=2)
    b = _record(is_duplicate=True, duplicate_group_id="g2", duplicate_count=2)
    repo = InMemoryRecordRepository([stale, a, b])
    index = DuplicateIndex(repo)

    result = index.rescan()

    assert result.groups_dissolved == 1
    assert result.new_duplicates_found == 0
    cleared = repo.find_by_id(stale.id)
    assert cleared is not None and not cleared.is_duplicate
    merged = {r.duplicate_group_id for r in repo.find_by_fingerprint(FINGERPRINT)}
    assert len(merged) == 1
    assert merged.isdisjoint({"g1", "g2", None})


def test_remove_dissolves_group_at_one_member() -> None:
    first, second = _record(), _record()
    repo = InMemoryRecordRepository()
    index = DuplicateIndex(repo)
    index.register(FINGERPRINT, first.id, pending=first)
    index.register(FINGERPRINT, second.id, pending=second)

    removed = index.remove(first.id, hard=False)

    assert not removed.active
    survivor = repo.find_by_id(second.id)
    assert survivor is not None
    assert not survivor.is_duplicate
    assert survivor.duplicate_group_id is None
    soft_deleted = repo.find_by_id(first.id)
    assert soft_deleted is not None and not soft_deleted.active


def test_hard_remove_deletes_record() -> None:
    record = _record()
    repo = InMemoryRecordRepository([record])
    index = DuplicateIndex(repo)

    index.remove(record.id, hard=True)

    assert repo.find_by_id(record.id) is None
    with pytest.raises(RecordNotFoundError):
        index.remove(record.id)


def test_update_preserves_index_fields() -> None:
    first, second = _record(), _record()
    repo = InMemoryRecordRepository()
    index = DuplicateIndex(repo)
    index.register(FINGERPRINT, first.id, pending=first)
    index.register(FINGERPRINT, second.id, pending=second)

    def _mutate(record: FileRecord) -> None:
        record.tags = ["kept"]
        record.clear_duplicate()

    updated = index.update(first.id, _mutate)

    assert updated.tags == ["kept"]
    assert updated.is_duplicate
    assert updated.duplicate_group_id is not None


def test_indexes_share_an_injected_lock_table() -> None:
    shared = KeyedLock()
    repo = InMemoryRecordRepository()
    first_index = DuplicateIndex(repo, locks=shared)
    second_index = DuplicateIndex(repo, locks=shared)

    assert first_index.locks is shared
    assert second_index.locks is shared


def test_registrations_through_two_indexes_form_one_group() -> None:
    shared = KeyedLock()
    repo = InMemoryRecordRepository()
    indexes = [DuplicateIndex(repo, locks=shared), DuplicateIndex(repo, locks=shared)]
    workers = 8
    records = [_record() for _ in range(workers)]
    barrier = threading.Barrier(workers)

    def _register(position: int) -> int:
        record = records[position]
        barrier.wait()
        index = indexes[position % 2]
        return index.register(FINGERPRINT, record.id, pending=record).group_size

    with ThreadPoolExecutor(max_workers=workers) as pool:
        sizes = sorted(pool.map(_register, range(workers)))

    assert sizes == list(range(1, workers + 1))
    group_ids = {record.duplicate_group_id for record in repo.find_by_fingerprint(FINGERPRINT)}
    assert len(group_ids) == 1 and None not in group_ids


def test_rescan_keeps_group_id_minted_at_registration() -> None:
    records = [_record() for _ in range(3)]
    repo = InMemoryRecordRepository()
    index = DuplicateIndex(repo)
    registrations = [index.register(FINGERPRINT, r.id, pending=r) for r in records]
    minted = registrations[-1].group_id

    index.rescan()
    after_first = {r.duplicate_group_id for r in repo.find_by_fingerprint(FINGERPRINT)}
    index.rescan()
    after_second = {r.duplicate_group_id for r in repo.find_by_fingerprint(FINGERPRINT)}

    assert minted is not None
    assert after_first == {minted}
    assert after_second == {minted}
    assert {r.duplicate_count for r in repo.find_by_fingerprint(FINGERPRINT)} == {3}


def test_removing_one_of_three_keeps_the_rest_grouped() -> None:
    records = [_record() for _ in range(3)]
    repo = InMemoryRecordRepository()
    index = DuplicateIndex(repo)
    registrations = [index.register(FINGERPRINT, r.id, pending=r) for r in records]
    group_id = registrations[-1].group_id

    index.remove(records[0].id)

    survivors = [repo.find_by_id(r.id) for r in records[1:]]
    assert all(s is not None and s.is_duplicate for s in survivors)
    assert {s.duplicate_group_id for s in survivors if s is not None} == {group_id}
    groups = index.groups()
    assert len(groups) == 1
    assert groups[0].group_id == group_id
    assert set(groups[0].record_ids) == {records[1].id, records[2].id}
