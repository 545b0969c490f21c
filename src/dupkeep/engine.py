"""Engine facade consumed by the CLI and any hosting API layer."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List

from dupkeep.bounded import BoundedCalls
from dupkeep.classification import CategoryClassifier, CategoryRules
from dupkeep.config.models import DupkeepConfig
from dupkeep.dedup import (
    BatchResult,
    CleanupResult,
    DuplicateGroup,
    DuplicateIndex,
    DuplicateResolver,
    RescanResult,
    ResolutionResult,
    ResolutionStrategy,
)
from dupkeep.errors import DupkeepError, InvalidInputError, RecordNotFoundError, StorageError
from dupkeep.ingestion import (
    ContentExtractor,
    Hasher,
    IngestionPipeline,
    IngestionResult,
    Upload,
    UploadValidator,
)
from dupkeep.state import JsonRecordRepository, RecordRepository
from dupkeep.state.models import FileRecord
from dupkeep.storage import StorageBackend, create_storage
from dupkeep.verification import VerificationReport, VerificationResult, VerificationService

LOGGER = logging.getLogger(__name__)


class DedupEngine:
    """Bundle the pipeline, index, resolver and verifier behind one interface."""

    def __init__(
        self,
        config: DupkeepConfig,
        *,
        repository: RecordRepository,
        storage: StorageBackend,
        rules: CategoryRules | None = None,
    ) -> None:
        self.config = config
        self.repository = repository
        self.storage = storage
        self.rules = rules or CategoryRules()
        self.hasher = Hasher()
        self.classifier = CategoryClassifier(self.rules)
        self.calls = BoundedCalls(
            max_workers=config.ingestion.workers + config.verification.max_workers,
            name="dupkeep-io",
        )
        self.index = DuplicateIndex(
            repository, timeout=config.duplicates.timeout_seconds, calls=self.calls
        )
        self.resolver = DuplicateResolver(
            self.index,
            storage,
            soft_delete=config.duplicates.soft_delete,
            timeout=config.storage.timeout_seconds,
            calls=self.calls,
        )
        self.pipeline = IngestionPipeline(
            validator=UploadValidator(config.ingestion),
            extractor=ContentExtractor(),
            hasher=self.hasher,
            classifier=self.classifier,
            storage=storage,
            index=self.index,
            settings=config.ingestion,
            calls=self.calls,
        )
        self.verifier = VerificationService(
            self.index,
            storage,
            self.hasher,
            max_workers=config.verification.max_workers,
            timeout=config.storage.timeout_seconds,
            calls=self.calls,
        )

    # Ingestion -----------------------------------------------------------

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
        return self.pipeline.ingest(
            data,
            name,
            declared_format,
            uploader,
            mime_type=mime_type,
            timeout=timeout,
            cancel_event=cancel_event,
        )

    def ingest_many(self, uploads: Iterable[Upload]) -> IngestionResult:
        return self.pipeline.ingest_many(uploads)

    def ingest_directory(
        self, root: Path, *, recursive: bool = True, include_hidden: bool = False
    ) -> IngestionResult:
        return self.pipeline.ingest_directory(
            root, recursive=recursive, include_hidden=include_hidden
        )

    # Duplicates ----------------------------------------------------------

    def rescan(self) -> RescanResult:
        return self.index.rescan()

    def duplicate_groups(self) -> List[DuplicateGroup]:
        return self.index.groups()

    def resolve_duplicates(
        self, strategy: ResolutionStrategy | str, record_ids: Iterable[str] | None = None
    ) -> ResolutionResult:
        """Resolve the given records, or every current duplicate group when omitted."""
        return self.resolver.resolve(strategy, record_ids)

    def delete(self, record_id: str) -> FileRecord:
        return self.resolver.delete(record_id)

    def delete_many(self, record_ids: Iterable[str]) -> BatchResult:
        return self.resolver.delete_many(record_ids)

    def cleanup_orphans(self, *, min_age_seconds: float = 3600.0) -> CleanupResult:
        return self.resolver.cleanup_orphans(min_age_seconds=min_age_seconds)

    # Verification --------------------------------------------------------

    def verify(self, record_id: str) -> VerificationResult:
        return self.verifier.verify(record_id)

    def verify_all(self, record_ids: Iterable[str] | None = None) -> VerificationReport:
        return self.verifier.verify_all(record_ids)

    # Records -------------------------------------------------------------

    def get_record(self, record_id: str) -> FileRecord:
        """Return an active record.

        Raises:
            RecordNotFoundError: If the record is unknown or deleted.
        """
        record = self.repository.find_by_id(record_id)
        if record is None or not record.active:
            raise RecordNotFoundError(f"Unknown record: {record_id}")
        return record

    def list_records(self) -> List[FileRecord]:
        return [record for record in self.repository.find_all() if record.active]

    def read_content(self, record_id: str) -> bytes:
        """Return a record's stored bytes and stamp its last access time."""
        record = self.get_record(record_id)
        data = self.calls.run(
            self.storage.get,
            record.storage_location,
            timeout=self.config.storage.timeout_seconds,
            error=StorageError,
            action=f"Reading {record.storage_location}",
        )
        accessed_at = datetime.now(timezone.utc)
        self.index.update(
            record_id, lambda target: setattr(target, "last_accessed_at", accessed_at)
        )
        return data

    def update_tags(self, record_id: str, tags: Iterable[str]) -> FileRecord:
        cleaned = list(dict.fromkeys(tag.strip() for tag in tags if tag and tag.strip()))
        self.get_record(record_id)
        return self.index.update(record_id, lambda target: setattr(target, "tags", cleaned))

    def update_description(self, record_id: str, description: str | None) -> FileRecord:
        value = description.strip() if description else None
        self.get_record(record_id)
        return self.index.update(
            record_id, lambda target: setattr(target, "description", value or None)
        )

    def update_category(self, record_id: str, category: str) -> FileRecord:
        """Assign ``category`` to a record.

        Raises:
            InvalidInputError: If ``category`` is blank.
            RecordNotFoundError: If the record is unknown.
        """
        label = self._category_label(category)
        self.get_record(record_id)
        return self.index.update(record_id, lambda target: setattr(target, "category", label))

    def bulk_update_categories(self, record_ids: Iterable[str], category: str) -> BatchResult:
        label = self._category_label(category)
        result = BatchResult()
        for record_id in dict.fromkeys(record_ids):
            try:
                self.update_category(record_id, label)
            except DupkeepError as exc:
                result.errors.append(f"{record_id}: {exc}")
            else:
                result.succeeded.append(record_id)
        return result

    def reclassify(self, record_ids: Iterable[str] | None = None) -> BatchResult:
        """Re-run the classifier over existing records with the current rules.

        Only records whose category changes are listed in ``succeeded``.
        """
        if record_ids is None:
            targets = [record.id for record in self.list_records()]
        else:
            targets = list(dict.fromkeys(record_ids))

        result = BatchResult()
        for record_id in targets:
            try:
                record = self.get_record(record_id)
            except RecordNotFoundError as exc:
                result.errors.append(f"{record_id}: {exc}")
                continue
            category = self.classifier.classify(
                record.extension, record.mime_type, record.file_size
            )
            if category == record.category:
                continue
            self.index.update(record_id, lambda target: setattr(target, "category", category))
            result.succeeded.append(record_id)
        LOGGER.info("Reclassified %d of %d records", len(result.succeeded), len(targets))
        return result

    def update_category_rule(self, extension: str, category: str) -> Path | None:
        """Map ``extension`` to ``category`` for later uploads.

        The change is written to the rules file when one is configured.

        Returns:
            Path | None: The rules file that was updated, if any.
        """
        try:
            self.rules.update_extension(extension, category)
        except ValueError as exc:
            raise InvalidInputError(str(exc)) from exc
        if self.rules.source is None:
            return None
        return self.rules.save()

    def close(self) -> None:
        self.calls.close()

    @staticmethod
    def _category_label(category: str) -> str:
        label = (category or "").strip()
        if not label:
            raise InvalidInputError("Category must not be empty")
        return label


def build_engine(
    config: DupkeepConfig,
    *,
    repository: RecordRepository | None = None,
    storage: StorageBackend | None = None,
) -> DedupEngine:
    """Assemble an engine from configuration.

    Args:
        config: Resolved configuration.
        repository: Record store override; defaults to the JSON store under
            ``repository.state_dir``.
        storage: Storage override; defaults to ``create_storage(config.storage)``.
    """
    rules_path = Path(config.categories.rules_path) if config.categories.rules_path else None
    rules = CategoryRules.load(
        rules_path,
        large_bytes=config.categories.large_file_mb * 1024 * 1024,
        small_bytes=config.categories.small_file_bytes,
    )
    if repository is None:
        repository = JsonRecordRepository(Path(config.repository.state_dir))
    if storage is None:
        storage = create_storage(config.storage)
    return DedupEngine(config, repository=repository, storage=storage, rules=rules)


__all__ = ["DedupEngine", "build_engine"]
