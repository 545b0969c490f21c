"""Error taxonomy shared by the ingestion and deduplication engine."""

from __future__ import annotations


class DupkeepError(Exception):
    """Base exception for engine operations.

    Attributes:
        stage: Ingestion stage in which the error surfaced, when known.
    """

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage


class InvalidInputError(DupkeepError):
    """Raised for client-correctable problems such as bad names or sizes."""


class UnsupportedFormatError(InvalidInputError):
    """Raised when a declared format is outside the supported set."""


class CorruptInputError(DupkeepError):
    """Raised when content cannot be fully extracted from an upload."""


class StorageError(DupkeepError):
    """Raised when a storage backend operation fails or times out."""


class StorageNotFoundError(StorageError):
    """Raised when a storage location does not resolve to stored bytes."""


class PersistenceError(DupkeepError):
    """Raised when the record store fails after bytes have been stored."""


class IntegrityError(DupkeepError):
    """Raised when stored bytes no longer match their recorded hash."""


class RecordNotFoundError(DupkeepError):
    """Raised when a record identifier is unknown."""


class IngestionCancelledError(DupkeepError):
    """Raised when an in-flight ingestion is cancelled by its caller."""


class ConfigError(DupkeepError):
    """Raised when configuration data cannot be loaded or validated."""


__all__ = [
    "DupkeepError",
    "InvalidInputError",
    "UnsupportedFormatError",
    "CorruptInputError",
    "StorageError",
    "StorageNotFoundError",
    "PersistenceError",
    "IntegrityError",
    "RecordNotFoundError",
    "IngestionCancelledError",
    "ConfigError",
]
