"""Configuration models describing dupkeep settings."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

SUPPORTED_FORMATS = ("txt", "pdf", "docx")


class DupkeepBaseModel(BaseModel):
    """Shared configuration for dupkeep Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class StorageSettings(DupkeepBaseModel):
    """Storage backend selection.

    Attributes:
        backend: Backend variant used for physical bytes.
        root: Directory used by the local backend and by degraded variants.
        mongo_uri: Connection string for the GridFS content store.
        mongo_database: Database holding the GridFS bucket.
        bucket: Bucket name for the content store or object store.
        timeout_seconds: Bound on each storage read, existence check and delete
            made outside ingestion.
    """

    backend: Literal["local", "content_store", "object_store"] = "local"
    root: str = "~/.dupkeep/uploads"
    mongo_uri: Optional[str] = None
    mongo_database: str = "dupkeep"
    bucket: str = "fs"
    timeout_seconds: float = 30.0


class IngestionSettings(DupkeepBaseModel):
    """Upload validation and pipeline limits.

    Attributes:
        max_file_size_mb: Largest accepted upload.
        max_name_length: Longest accepted display name.
        allowed_formats: Formats accepted by validation; a subset of the extractor formats.
        timeout_seconds: Default bound on storage writes and index registration.
        workers: Thread pool size for multi-file ingestion.
    """

    max_file_size_mb: int = 100
    max_name_length: int = 255
    allowed_formats: List[str] = Field(default_factory=lambda: list(SUPPORTED_FORMATS))
    timeout_seconds: float = 30.0
    workers: int = 4

    @field_validator("allowed_formats")
    @classmethod
    def _known_formats(cls, value: List[str]) -> List[str]:
        normalized = [item.lower().lstrip(".") for item in value]
        unknown = sorted(set(normalized) - set(SUPPORTED_FORMATS))
        if unknown:
            raise ValueError(f"unsupported formats: {', '.join(unknown)}")
        return normalized


class CategorySettings(DupkeepBaseModel):
    """Category rule table configuration.

    Attributes:
        rules_path: Optional YAML/JSON rules file overlaid on the built-in table.
        large_file_mb: Size above which files fall into "Large Files".
        small_file_bytes: Size below which files fall into "Small Files".
    """

    rules_path: Optional[str] = None
    large_file_mb: int = 100
    small_file_bytes: int = 1024


class DuplicateSettings(DupkeepBaseModel):
    """Duplicate handling preferences.

    Attributes:
        soft_delete: Keep deleted records as inactive instead of removing them.
        timeout_seconds: Bound on waiting for a fingerprint lock and on each batch
            of record writes.
    """

    soft_delete: bool = False
    timeout_seconds: float = 10.0


class VerificationSettings(DupkeepBaseModel):
    """Integrity verification settings.

    Attributes:
        max_workers: Thread pool size for bulk verification.
    """

    max_workers: int = 8


class RepositorySettings(DupkeepBaseModel):
    """Record store settings.

    Attributes:
        state_dir: Directory holding the JSON record store and logs.
    """

    state_dir: str = "~/.dupkeep/state"


class LoggingSettings(DupkeepBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    max_size_mb: int = 100
    backup_count: int = 5


class CLIOptions(DupkeepBaseModel):
    """CLI behavior defaults.

    Attributes:
        quiet_default: Whether commands suppress non-error output when
            ``--quiet`` is not given.
    """

    quiet_default: bool = False


class DupkeepConfig(DupkeepBaseModel):
    """Top-level configuration struct for dupkeep."""

    storage: StorageSettings = Field(default_factory=StorageSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    categories: CategorySettings = Field(default_factory=CategorySettings)
    duplicates: DuplicateSettings = Field(default_factory=DuplicateSettings)
    verification: VerificationSettings = Field(default_factory=VerificationSettings)
    repository: RepositorySettings = Field(default_factory=RepositorySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "SUPPORTED_FORMATS",
    "DupkeepBaseModel",
    "StorageSettings",
    "IngestionSettings",
    "CategorySettings",
    "DuplicateSettings",
    "VerificationSettings",
    "RepositorySettings",
    "LoggingSettings",
    "CLIOptions",
    "DupkeepConfig",
]
