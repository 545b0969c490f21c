"""Deletion, bulk duplicate resolution and orphan cleanup."""

from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List

from dupkeep.bounded import BoundedCalls
from dupkeep.errors import DupkeepError, InvalidInputError, RecordNotFoundError, StorageError
from dupkeep.state.models import FileRecord
from dupkeep.storage import ListedObject, StorageBackend

from .index import DuplicateIndex
from .models import BatchResult, CleanupResult, ResolutionResult, ResolutionStrategy

LOGGER = logging.getLogger(__name__)


class DuplicateResolver:
    """Delete records (and their stored bytes) singly, in batches or by policy.

    Records are removed before their bytes are released. A release that fails
    leaves an unreferenced object behind, which ``cleanup_orphans`` reclaims.
    """

    def __init__(
        self,
        index: DuplicateIndex,
        storage: StorageBackend,
        *,
        soft_delete: bool = False,
        timeout: float | None = None,
        calls: BoundedCalls | None = None,
    ) -> None:
        self.index = index
        self.storage = storage
        self.soft_delete = soft_delete
        self.timeout = timeout
        self.calls = calls if calls is not None else index.calls

    def delete(self, record_id: str, *, timeout: float | None = None) -> FileRecord:
        """Remove a record, then release its stored bytes.

        Raises:
            RecordNotFoundError: If the record is unknown or already deleted.
            PersistenceError: If the record cannot be removed; its bytes are kept.
        """
        record = self.index.repository.find_by_id(record_id)
        if record is None or not record.active:
            raise RecordNotFoundError(f"Unknown record: {record_id}")
        removed = self.index.remove(record_id, hard=not self.soft_delete)
        if record.storage_location:
            self._release(record, timeout)
        LOGGER.info(
            "Deleted record %s (%s)", record_id, "soft" if self.soft_delete else "hard"
        )
        return removed

    def delete_many(self, record_ids: Iterable[str]) -> BatchResult:
        """Delete each record independently, collecting per-record failures."""
        result = BatchResult()
        for record_id in OrderedDict.fromkeys(record_ids):
            try:
                self.delete(record_id)
            except DupkeepError as exc:
                result.errors.append(f"{record_id}: {exc}")
            else:
                result.succeeded.append(record_id)
        return result

    def resolve(
        self,
        strategy: ResolutionStrategy | str,
        candidate_ids: Iterable[str] | None = None,
    ) -> ResolutionResult:
        """Apply ``strategy`` to the candidate records.

        Candidates are grouped by fingerprint. ``keep_newest`` and ``keep_largest``
        keep one survivor per fingerprint; ties keep the earliest candidate.
        ``delete_all`` deletes every candidate.

        Args:
            strategy: Resolution policy or its name.
            candidate_ids: Records the caller selected; every member of every
                current duplicate group when omitted.

        Returns:
            ResolutionResult: Number of deleted records and per-record errors.

        Raises:
            InvalidInputError: If ``strategy`` is unknown.
        """
        try:
            policy = ResolutionStrategy(strategy)
        except ValueError as exc:
            raise InvalidInputError(f"Unknown resolution strategy: {strategy!r}") from exc

        if candidate_ids is None:
            candidate_ids = [
                record_id for group in self.index.groups() for record_id in group.record_ids
            ]

        result = ResolutionResult(strategy=policy)
        grouped: Dict[str, List[FileRecord]] = OrderedDict()
        for record_id in OrderedDict.fromkeys(candidate_ids):
            record = self.index.repository.find_by_id(record_id)
            if record is None or not record.active:
                result.errors.append(f"{record_id}: record not found")
                continue
            grouped.setdefault(record.content_hash, []).append(record)

        for members in grouped.values():
            victims = self._victims(policy, members)
            victim_ids = {victim.id for victim in victims}
            result.kept.extend(member.id for member in members if member.id not in victim_ids)
            for victim in victims:
                try:
                    self.delete(victim.id)
                except DupkeepError as exc:
                    LOGGER.warning("Resolution could not delete %s: %s", victim.id, exc)
                    result.errors.append(f"{victim.id}: {exc}")
                else:
                    result.resolved_count += 1

        LOGGER.info(
            "Resolved %d records with %s (%d errors)",
            result.resolved_count,
            policy.value,
            len(result.errors),
        )
        return result

    def cleanup_orphans(
        self, *, min_age_seconds: float = 3600.0, timeout: float | None = None
    ) -> CleanupResult:
        """Remove records whose bytes are gone and objects no record references.

        Objects younger than ``min_age_seconds`` are left alone so uploads still
        in flight are not mistaken for orphans.
        """
        bound = self._timeout(timeout)
        result = CleanupResult()

        for record in self.index.repository.find_all():
            if not record.active or not record.storage_location:
                continue
            try:
                present = self.calls.run(
                    self.storage.exists,
                    record.storage_location,
                    timeout=bound,
                    error=StorageError,
                    action=f"Checking {record.storage_location}",
                )
                if present:
                    continue
                self.index.remove(record.id, hard=not self.soft_delete)
            except DupkeepError as exc:
                result.errors.append(f"{record.id}: {exc}")
            else:
                LOGGER.info("Removed record %s with missing bytes", record.id)
                result.orphaned_records.append(record.id)

        referenced = {
            record.storage_location
            for record in self.index.repository.find_all()
            if record.active and record.storage_location
        }
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=min_age_seconds)
        try:
            listed: List[ListedObject] = self.calls.run(
                lambda: list(self.storage.list_objects()),
                timeout=bound,
                error=StorageError,
                action="Listing stored objects",
            )
        except DupkeepError as exc:
            result.errors.append(f"storage: {exc}")
            return result

        for item in listed:
            if item.location in referenced or item.stored_at > cutoff:
                continue
            try:
                self.calls.run(
                    self.storage.delete,
                    item.location,
                    timeout=bound,
                    error=StorageError,
                    action=f"Deleting {item.location}",
                )
            except DupkeepError as exc:
                result.errors.append(f"{item.location}: {exc}")
            else:
                result.orphaned_objects.append(item.location)

        LOGGER.info(
            "Cleanup removed %d records and %d objects (%d errors)",
            len(result.orphaned_records),
            len(result.orphaned_objects),
            len(result.errors),
        )
        return result

    def _release(self, record: FileRecord, timeout: float | None) -> None:
        try:
            self.calls.run(
                self.storage.delete,
                record.storage_location,
                timeout=self._timeout(timeout),
                error=StorageError,
                action=f"Releasing {record.storage_location}",
            )
        except DupkeepError as exc:
            LOGGER.warning(
                "Record %s was removed but its bytes at %s remain: %s",
                record.id,
                record.storage_location,
                exc,
            )

    def _timeout(self, timeout: float | None) -> float | None:
        return timeout if timeout is not None else self.timeout

    @staticmethod
    def _victims(policy: ResolutionStrategy, members: List[FileRecord]) -> List[FileRecord]:
        if policy is ResolutionStrategy.DELETE_ALL:
            return list(members)
        if policy is ResolutionStrategy.KEEP_NEWEST:
            ranked = sorted(members, key=lambda record: record.uploaded_at, reverse=True)
        else:
            ranked = sorted(members, key=lambda record: record.file_size, reverse=True)
        return ranked[1:]


__all__ = ["DuplicateResolver"]
