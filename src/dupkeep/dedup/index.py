"""Duplicate group bookkeeping over the record repository."""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Tuple

from dupkeep.bounded import BoundedCalls
from dupkeep.errors import PersistenceError, RecordNotFoundError
from dupkeep.state import RecordRepository
from dupkeep.state.models import FileRecord

from .locks import KeyedLock
from .models import DuplicateGroup, Registration, RescanResult

LOGGER = logging.getLogger(__name__)

_INDEX_FIELDS = ("content_hash", "is_duplicate", "duplicate_group_id", "duplicate_count", "active")

Snapshot = Dict[str, Optional[FileRecord]]


def _new_group_id() -> str:
    return uuid.uuid4().hex


class DuplicateIndex:
    """Maintain the fingerprint to duplicate-group mapping.

    Every change to group membership happens while holding the lock for the
    affected fingerprint, so concurrent registrations of identical content are
    serialised while unrelated fingerprints proceed in parallel. ``timeout``
    bounds both the lock wait and each batch of repository writes.
    """

    def __init__(
        self,
        repository: RecordRepository,
        *,
        locks: KeyedLock | None = None,
        timeout: float | None = None,
        calls: BoundedCalls | None = None,
    ) -> None:
        self.repository = repository
        self.locks = locks if locks is not None else KeyedLock()
        self.timeout = timeout
        self.calls = calls if calls is not None else BoundedCalls(name="dupkeep-index")

    def register(
        self,
        fingerprint: str,
        record_id: str,
        *,
        pending: FileRecord | None = None,
        timeout: float | None = None,
    ) -> Registration:
        """Register ``record_id`` under ``fingerprint`` and persist the record.

        Args:
            fingerprint: Content hash of the record.
            record_id: Identifier of the record being registered.
            pending: Record not yet persisted; saved for the first time here.
            timeout: Seconds to wait for the fingerprint lock and for the writes.

        Returns:
            Registration: Whether the record is a duplicate and of which group.

        Raises:
            RecordNotFoundError: If ``pending`` is omitted and the record is unknown.
            PersistenceError: If the lock or the writes time out, or a write fails.
        """
        bound = self._timeout(timeout)
        with self.locks.hold(fingerprint, bound):
            record = (
                pending.model_copy(deep=True)
                if pending is not None
                else self.repository.find_by_id(record_id)
            )
            if record is None:
                raise RecordNotFoundError(f"Unknown record: {record_id}")
            if record.id != record_id or record.content_hash != fingerprint:
                raise ValueError(f"Record {record_id} does not carry fingerprint {fingerprint}")

            others = [
                member
                for member in self.repository.find_by_fingerprint(fingerprint)
                if member.active and member.id != record_id
            ]
            if not others:
                record.clear_duplicate()
                self._persist([], record, bound)
                LOGGER.debug("Registered unique record %s", record_id)
                return Registration(is_duplicate=False, group_id=None, group_size=1)

            group_size = len(others) + 1
            known = {member.duplicate_group_id for member in others if member.duplicate_group_id}
            group_id = known.pop() if len(known) == 1 else _new_group_id()

            stamped = []
            for member in others:
                if member.duplicate_group_id != group_id or not member.is_duplicate:
                    member.mark_duplicate(group_id, group_size)
                    stamped.append(member)
            record.mark_duplicate(group_id, group_size)
            self._persist(stamped, record, bound)

        LOGGER.info(
            "Record %s joined duplicate group %s (%d members)", record_id, group_id, group_size
        )
        return Registration(is_duplicate=True, group_id=group_id, group_size=group_size)

    def rescan(self, *, timeout: float | None = None) -> RescanResult:
        """Rebuild duplicate groups from the current set of active records.

        Running a rescan twice in a row changes nothing the second time, and a
        group whose members already agree on an id keeps it.
        """
        bound = self._timeout(timeout)
        result = RescanResult()
        fingerprints = list(
            OrderedDict.fromkeys(
                record.content_hash for record in self.repository.find_all() if record.active
            )
        )
        for fingerprint in fingerprints:
            with self.locks.hold(fingerprint, bound):
                processed, found, dissolved = self.calls.run(
                    self._rescan_one,
                    fingerprint,
                    timeout=bound,
                    error=PersistenceError,
                    action=f"Rescan of {fingerprint[:12]}",
                )
            result.groups_processed += processed
            result.new_duplicates_found += found
            result.groups_dissolved += dissolved

        LOGGER.info(
            "Rescan processed %d groups, found %d new duplicates, dissolved %d groups",
            result.groups_processed,
            result.new_duplicates_found,
            result.groups_dissolved,
        )
        return result

    def remove(
        self, record_id: str, *, hard: bool = False, timeout: float | None = None
    ) -> FileRecord:
        """Soft- or hard-delete a record and refresh its duplicate group.

        A group left with one or zero active members is dissolved. Larger groups
        keep their id and the counts their members were stamped with.

        Raises:
            RecordNotFoundError: If the record is unknown.
            PersistenceError: If the lock or the writes time out, or a write fails.
        """
        bound = self._timeout(timeout)
        fingerprint = self._fingerprint_of(record_id)
        with self.locks.hold(fingerprint, bound):
            record = self.repository.find_by_id(record_id)
            if record is None:
                raise RecordNotFoundError(f"Unknown record: {record_id}")
            self.calls.run(
                self._remove_one,
                record,
                hard,
                timeout=bound,
                error=PersistenceError,
                action=f"Removing record {record_id}",
            )
        return record

    def update(
        self,
        record_id: str,
        mutate: Callable[[FileRecord], None],
        *,
        timeout: float | None = None,
    ) -> FileRecord:
        """Apply ``mutate`` to the stored record under its fingerprint lock.

        Index fields (fingerprint, group membership, active flag) are preserved
        regardless of what ``mutate`` does to them.
        """
        bound = self._timeout(timeout)
        fingerprint = self._fingerprint_of(record_id)
        with self.locks.hold(fingerprint, bound):
            record = self.repository.find_by_id(record_id)
            if record is None:
                raise RecordNotFoundError(f"Unknown record: {record_id}")
            preserved = {name: getattr(record, name) for name in _INDEX_FIELDS}
            mutate(record)
            for name, value in preserved.items():
                setattr(record, name, value)
            return self.calls.run(
                self.repository.save,
                record,
                timeout=bound,
                error=PersistenceError,
                action=f"Saving record {record_id}",
            )

    def groups(self) -> List[DuplicateGroup]:
        """Return the current duplicate groups, largest first."""
        by_fingerprint: Dict[str, List[FileRecord]] = OrderedDict()
        for record in self.repository.find_all():
            if record.active and record.is_duplicate:
                by_fingerprint.setdefault(record.content_hash, []).append(record)

        groups = []
        for fingerprint, members in by_fingerprint.items():
            if len(members) < 2:
                continue
            group_id = next(m.duplicate_group_id for m in members if m.duplicate_group_id)
            groups.append(
                DuplicateGroup(
                    group_id=group_id,
                    fingerprint=fingerprint,
                    record_ids=[member.id for member in members],
                )
            )
        groups.sort(key=lambda group: group.size, reverse=True)
        return groups

    def _persist(
        self, stamped: List[FileRecord], record: FileRecord, timeout: float | None
    ) -> None:
        before = self._snapshot([*stamped, record])
        self.calls.run(
            self._save_all,
            stamped,
            record,
            before,
            timeout=timeout,
            error=PersistenceError,
            action=f"Persisting record {record.id}",
            on_late=lambda _: self._restore(before),
        )

    def _save_all(self, stamped: List[FileRecord], record: FileRecord, before: Snapshot) -> None:
        try:
            for member in stamped:
                self.repository.save(member)
            self.repository.save(record)
        except Exception as exc:
            self._restore(before)
            if isinstance(exc, PersistenceError):
                raise
            raise PersistenceError(f"Unable to persist record {record.id}: {exc}") from exc

    def _snapshot(self, records: List[FileRecord]) -> Snapshot:
        return {record.id: self.repository.find_by_id(record.id) for record in records}

    def _restore(self, before: Snapshot) -> None:
        for record_id, original in reversed(list(before.items())):
            try:
                if original is None:
                    self.repository.delete_by_id(record_id)
                else:
                    self.repository.save(original)
            except Exception:
                LOGGER.exception("Failed to restore record %s", record_id)

    def _rescan_one(self, fingerprint: str) -> Tuple[int, int, int]:
        members = self._active_members(fingerprint)
        if len(members) > 1:
            return 1, self._restamp(members), 0
        if len(members) == 1 and self._is_marked(members[0]):
            members[0].clear_duplicate()
            self.repository.save(members[0])
            return 0, 0, 1
        return 0, 0, 0

    def _remove_one(self, record: FileRecord, hard: bool) -> None:
        group_id = record.duplicate_group_id
        record.clear_duplicate()
        if hard:
            self.repository.delete_by_id(record.id)
        else:
            record.active = False
            self.repository.save(record)

        survivors = self._active_members(record.content_hash)
        if len(survivors) <= 1:
            for survivor in survivors:
                if self._is_marked(survivor):
                    survivor.clear_duplicate()
                    self.repository.save(survivor)
                    LOGGER.info("Duplicate group %s dissolved", group_id)

    def _restamp(self, members: List[FileRecord]) -> int:
        known = {member.duplicate_group_id for member in members if member.duplicate_group_id}
        group_id = known.pop() if len(known) == 1 else _new_group_id()
        newly_marked = 0
        for member in members:
            if not member.is_duplicate:
                newly_marked += 1
            if (
                member.is_duplicate
                and member.duplicate_group_id == group_id
                and member.duplicate_count == len(members)
            ):
                continue
            member.mark_duplicate(group_id, len(members))
            self.repository.save(member)
        return newly_marked

    def _active_members(self, fingerprint: str) -> List[FileRecord]:
        return [
            member for member in self.repository.find_by_fingerprint(fingerprint) if member.active
        ]

    def _fingerprint_of(self, record_id: str) -> str:
        record = self.repository.find_by_id(record_id)
        if record is None:
            raise RecordNotFoundError(f"Unknown record: {record_id}")
        return record.content_hash

    def _timeout(self, timeout: float | None) -> float | None:
        return timeout if timeout is not None else self.timeout

    @staticmethod
    def _is_marked(record: FileRecord) -> bool:
        return record.is_duplicate or record.duplicate_group_id is not None


__all__ = ["DuplicateIndex"]
