"""Integrity verification of stored bytes against recorded hashes."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Iterable, List, Literal, Optional

from pydantic import BaseModel, Field

from dupkeep.bounded import BoundedCalls
from dupkeep.dedup import DuplicateIndex
from dupkeep.errors import IntegrityError, RecordNotFoundError, StorageError, StorageNotFoundError
from dupkeep.ingestion.detectors import Hasher
from dupkeep.state.models import FileRecord, VerificationStatus
from dupkeep.storage import StorageBackend

LOGGER = logging.getLogger(__name__)

VerificationReason = Literal["ok", "mismatch", "missing", "no_location"]

_STATUS_FOR_REASON: dict[str, VerificationStatus] = {
    "ok": "valid",
    "mismatch": "invalid",
    "missing": "missing",
    "no_location": "missing",
}


class VerificationResult(BaseModel):
    """Outcome of verifying one record."""

    record_id: str
    is_valid: bool
    expected_hash: str
    actual_hash: Optional[str] = None
    reason: VerificationReason


class VerificationReport(BaseModel):
    """Aggregate outcome of a bulk verification run."""

    total: int = 0
    valid: int = 0
    invalid: int = 0
    missing: int = 0
    errors: List[str] = Field(default_factory=list)
    results: List[VerificationResult] = Field(default_factory=list)


class VerificationService:
    """Re-read stored bytes and compare them with the recorded raw-byte hash."""

    def __init__(
        self,
        index: DuplicateIndex,
        storage: StorageBackend,
        hasher: Hasher | None = None,
        *,
        max_workers: int = 8,
        timeout: float | None = None,
        calls: BoundedCalls | None = None,
    ) -> None:
        self.index = index
        self.storage = storage
        self.hasher = hasher or Hasher()
        self.max_workers = max_workers
        self.timeout = timeout
        self.calls = calls if calls is not None else index.calls

    def verify(self, record_id: str, *, timeout: float | None = None) -> VerificationResult:
        """Verify one record and update its verification status.

        Args:
            record_id: Record to verify.
            timeout: Bound in seconds on reading the stored bytes.

        Returns:
            VerificationResult: Expected and actual hashes plus the outcome reason.

        Raises:
            RecordNotFoundError: If the record is unknown.
            IntegrityError: If the record carries no valid raw-byte hash.
            StorageError: If the backend fails or times out for reasons other than
                a missing object.
            PersistenceError: If the new status cannot be saved.
        """
        record = self.index.repository.find_by_id(record_id)
        if record is None:
            raise RecordNotFoundError(f"Unknown record: {record_id}")

        result = self._check(record, timeout if timeout is not None else self.timeout)
        status = _STATUS_FOR_REASON[result.reason]
        checked_at = datetime.now(timezone.utc)

        def apply(target: FileRecord) -> None:
            target.verification_status = status
            target.last_verified_at = checked_at

        self.index.update(record_id, apply)
        if not result.is_valid:
            LOGGER.warning("Record %s failed verification: %s", record_id, result.reason)
        return result

    def verify_all(
        self, record_ids: Iterable[str] | None = None, *, timeout: float | None = None
    ) -> VerificationReport:
        """Verify many records concurrently; one failure never stops the rest.

        Args:
            record_ids: Records to verify; all active records when omitted.
            timeout: Bound in seconds on each read of stored bytes.
        """
        if record_ids is None:
            ids = [record.id for record in self.index.repository.find_all() if record.active]
        else:
            ids = list(dict.fromkeys(record_ids))

        report = VerificationReport(total=len(ids))
        if not ids:
            return report

        with ThreadPoolExecutor(
            max_workers=max(1, self.max_workers), thread_name_prefix="dupkeep-verify"
        ) as pool:
            futures = [
                (record_id, pool.submit(self.verify, record_id, timeout=timeout))
                for record_id in ids
            ]
            for record_id, future in futures:
                try:
                    result = future.result()
                except Exception as exc:
                    LOGGER.warning("Verification of %s failed: %s", record_id, exc)
                    report.errors.append(f"{record_id}: {exc}")
                    continue
                report.results.append(result)
                if result.is_valid:
                    report.valid += 1
                elif result.reason == "mismatch":
                    report.invalid += 1
                else:
                    report.missing += 1

        LOGGER.info(
            "Verified %d records: %d valid, %d invalid, %d missing, %d errors",
            report.total,
            report.valid,
            report.invalid,
            report.missing,
            len(report.errors),
        )
        return report

    def ensure_intact(self, record_id: str) -> VerificationResult:
        """Verify a record and raise when it is not intact.

        Raises:
            IntegrityError: If the stored bytes are missing or do not match.
        """
        result = self.verify(record_id)
        if not result.is_valid:
            raise IntegrityError(f"Record {record_id} failed verification: {result.reason}")
        return result

    def _check(self, record: FileRecord, timeout: float | None) -> VerificationResult:
        if not self.hasher.is_valid_sha256(record.file_hash):
            raise IntegrityError(f"Record {record.id} has no valid raw-byte hash")
        if not record.storage_location:
            return VerificationResult(
                record_id=record.id,
                is_valid=False,
                expected_hash=record.file_hash,
                reason="no_location",
            )
        try:
            data = self.calls.run(
                self.storage.get,
                record.storage_location,
                timeout=timeout,
                error=StorageError,
                action=f"Reading {record.storage_location}",
            )
        except StorageNotFoundError:
            return VerificationResult(
                record_id=record.id,
                is_valid=False,
                expected_hash=record.file_hash,
                reason="missing",
            )

        actual = self.hasher.digest(data)
        matches = actual == record.file_hash
        return VerificationResult(
            record_id=record.id,
            is_valid=matches,
            expected_hash=record.file_hash,
            actual_hash=actual,
            reason="ok" if matches else "mismatch",
        )


__all__ = ["VerificationService", "VerificationResult", "VerificationReport"]
