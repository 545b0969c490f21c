"""High-level ingestion pipeline orchestration."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Iterable, List, Tuple

from dupkeep.bounded import BoundedCalls
from dupkeep.classification import CategoryClassifier
from dupkeep.config.models import IngestionSettings
from dupkeep.dedup import DuplicateIndex
from dupkeep.errors import DupkeepError, IngestionCancelledError, StorageError
from dupkeep.state.models import FileRecord
from dupkeep.storage import StorageBackend, StoredObject

from .detectors import Hasher
from .discovery import DirectoryScanner
from .extractors import ContentExtractor
from .models import IngestionResult, IngestionStage, Upload
from .validation import UploadValidator

LOGGER = logging.getLogger(__name__)

SYSTEM_SCAN_UPLOADER = "SYSTEM_SCAN"


class IngestionPipeline:
    """Validate, extract, hash, classify, store and index uploads.

    Each upload moves through the stages of ``IngestionStage`` in order. Once
    bytes have been stored, any later failure (including cancellation) deletes
    them again before the error propagates, so a failed ingestion leaves
    neither a record nor orphaned bytes behind.
    """

    def __init__(
        self,
        *,
        validator: UploadValidator,
        extractor: ContentExtractor,
        hasher: Hasher,
        classifier: CategoryClassifier,
        storage: StorageBackend,
        index: DuplicateIndex,
        settings: IngestionSettings,
        calls: BoundedCalls | None = None,
    ) -> None:
        self.validator = validator
        self.extractor = extractor
        self.hasher = hasher
        self.classifier = classifier
        self.storage = storage
        self.index = index
        self.settings = settings
        self.calls = calls if calls is not None else index.calls

    def ingest(
        self,
        data: bytes,
        name: str,
        declared_format: str | None = None,
        uploader: str | None = None,
        *,
        mime_type: str | None = None,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> FileRecord:
        """Ingest a single upload and return its persisted record.

        Args:
            data: Raw upload bytes.
            name: Display name supplied by the uploader.
            declared_format: Declared format; derived from ``name`` when omitted.
            uploader: Opaque uploader identity.
            mime_type: Declared MIME type, if any.
            timeout: Bound in seconds on the storage write, the fingerprint lock,
                the record writes and any compensating delete; defaults to
                ``ingestion.timeout_seconds``.
            cancel_event: Event that aborts the ingestion when set.

        Returns:
            FileRecord: The persisted record, duplicate flags included.

        Raises:
            InvalidInputError: If validation fails.
            CorruptInputError: If content extraction fails.
            StorageError: If the bytes cannot be stored in time.
            PersistenceError: If indexing or persisting the record fails.
            IngestionCancelledError: If ``cancel_event`` is set before persisting.
        """
        bound = self.settings.timeout_seconds if timeout is None else timeout
        stage = IngestionStage.RECEIVED
        stored: StoredObject | None = None
        try:
            self._check_cancelled(cancel_event)

            stage = IngestionStage.VALIDATED
            upload = self.validator.validate(data, name, declared_format, mime_type)

            stage = IngestionStage.EXTRACTED
            content = self.extractor.extract(data, upload.format)

            stage = IngestionStage.HASHED
            file_hash = self.hasher.digest(data)
            fingerprint = self.hasher.fingerprint(content, data)

            stage = IngestionStage.CLASSIFIED
            category = self.classifier.classify(upload.format, upload.mime_type, upload.size)
            self._check_cancelled(cancel_event)

            stage = IngestionStage.STORED
            stored = self._store(data, upload.name, uploader, bound)
            self._check_cancelled(cancel_event)

            stage = IngestionStage.INDEXED
            record = FileRecord(
                file_name=upload.name,
                stored_name=stored.stored_name,
                storage_location=stored.location,
                storage_type=stored.backend_type,
                storage_degraded=stored.degraded,
                content_hash=fingerprint,
                file_hash=file_hash,
                file_size=upload.size,
                extension=upload.format,
                mime_type=upload.mime_type,
                category=category,
                uploaded_by=uploader or "anonymous",
            )
            registration = self.index.register(
                fingerprint, record.id, pending=record, timeout=bound
            )
            if registration.is_duplicate and registration.group_id is not None:
                record.mark_duplicate(registration.group_id, registration.group_size)
            stage = IngestionStage.PERSISTED
        except BaseException as exc:
            if stored is not None:
                self._compensate(stored, bound)
            if isinstance(exc, DupkeepError) and exc.stage is None:
                exc.stage = stage.value
            LOGGER.warning("Ingestion of %r failed at stage %s: %s", name, stage.value, exc)
            raise

        LOGGER.info(
            "Ingested %s as %s (category=%s, duplicate=%s)",
            name,
            record.id,
            record.category,
            record.is_duplicate,
        )
        return record

    def ingest_many(
        self,
        uploads: Iterable[Upload],
        *,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> IngestionResult:
        """Ingest several uploads concurrently with per-item error isolation."""
        jobs = [
            (
                upload.name,
                self._job(
                    upload.data,
                    upload.name,
                    upload.declared_format,
                    upload.uploader,
                    upload.mime_type,
                    timeout,
                    cancel_event,
                ),
            )
            for upload in uploads
        ]
        return self._run_batch(jobs)

    def ingest_directory(
        self,
        root: Path,
        *,
        recursive: bool = True,
        include_hidden: bool = False,
        uploader: str = SYSTEM_SCAN_UPLOADER,
        cancel_event: threading.Event | None = None,
    ) -> IngestionResult:
        """Discover supported files under ``root`` and ingest each of them.

        Oversized and unreadable files are reported in ``skipped`` and
        ``errors`` without being read.
        """
        scanner = DirectoryScanner(
            recursive=recursive,
            include_hidden=include_hidden,
            max_size_bytes=self.validator.max_size_bytes,
            formats=self.settings.allowed_formats,
        )
        skipped: List[Path] = []
        skip_errors: List[str] = []
        jobs: List[Tuple[str, Callable[[], FileRecord]]] = []
        for pending in scanner.scan(root):
            if pending.oversized or pending.locked:
                reason = "exceeds the size limit" if pending.oversized else "is not readable"
                skipped.append(pending.path)
                skip_errors.append(f"{pending.path}: file {reason}; skipped.")
                continue
            jobs.append((str(pending.path), self._file_job(pending.path, uploader, cancel_event)))

        result = self._run_batch(jobs)
        result.skipped.extend(skipped)
        result.errors[:0] = skip_errors
        LOGGER.info(
            "Scan of %s ingested %d files with %d errors",
            root,
            len(result.processed),
            len(result.errors),
        )
        return result

    def _job(
        self,
        data: bytes,
        name: str,
        declared_format: str | None,
        uploader: str | None,
        mime_type: str | None,
        timeout: float | None,
        cancel_event: threading.Event | None,
    ) -> Callable[[], FileRecord]:
        def run() -> FileRecord:
            return self.ingest(
                data,
                name,
                declared_format,
                uploader,
                mime_type=mime_type,
                timeout=timeout,
                cancel_event=cancel_event,
            )

        return run

    def _file_job(
        self, path: Path, uploader: str, cancel_event: threading.Event | None
    ) -> Callable[[], FileRecord]:
        def run() -> FileRecord:
            try:
                data = path.read_bytes()
            except OSError as exc:
                raise StorageError(f"Unable to read {path}: {exc}") from exc
            return self.ingest(data, path.name, None, uploader, cancel_event=cancel_event)

        return run

    def _run_batch(self, jobs: List[Tuple[str, Callable[[], FileRecord]]]) -> IngestionResult:
        result = IngestionResult()
        if not jobs:
            return result
        with ThreadPoolExecutor(
            max_workers=max(1, self.settings.workers), thread_name_prefix="dupkeep-ingest"
        ) as pool:
            futures = [(label, pool.submit(job)) for label, job in jobs]
            for label, future in futures:
                try:
                    result.processed.append(future.result())
                except Exception as exc:
                    result.errors.append(f"{label}: {exc}")
        return result

    def _store(
        self, data: bytes, name: str, uploader: str | None, timeout: float | None
    ) -> StoredObject:
        return self.calls.run(
            self.storage.put,
            data,
            name,
            owner=uploader,
            timeout=timeout,
            error=StorageError,
            action=f"Storage write for {name!r}",
            on_late=self._discard_late_put,
        )

    def _discard_late_put(self, stored: StoredObject) -> None:
        LOGGER.warning("Discarding late storage write at %s", stored.location)
        self._compensate(stored, None)

    def _compensate(self, stored: StoredObject, timeout: float | None) -> None:
        try:
            self.calls.run(
                self.storage.delete,
                stored.location,
                timeout=timeout,
                error=StorageError,
                action=f"Deleting {stored.location}",
            )
        except Exception:
            LOGGER.exception("Failed to delete stored bytes at %s", stored.location)
        else:
            LOGGER.debug("Deleted stored bytes at %s", stored.location)

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise IngestionCancelledError("Ingestion cancelled")


__all__ = ["IngestionPipeline", "SYSTEM_SCAN_UPLOADER"]
