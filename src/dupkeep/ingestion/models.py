"""Models shared across the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from dupkeep.state.models import FileRecord


class IngestionStage(str, Enum):
    """Stages an upload passes through, in order."""

    RECEIVED = "received"
    VALIDATED = "validated"
    EXTRACTED = "extracted"
    HASHED = "hashed"
    CLASSIFIED = "classified"
    STORED = "stored"
    INDEXED = "indexed"
    PERSISTED = "persisted"


@dataclass(frozen=True, slots=True)
class ExtractedContent:
    """Canonical text extracted from an upload.

    Attributes:
        text: Canonicalised text; empty when the document carries none.
        format: Declared format the text was extracted as.
    """

    text: str
    format: str

    @property
    def is_empty(self) -> bool:
        return not self.text


@dataclass(frozen=True, slots=True)
class ValidatedUpload:
    """Upload that passed validation.

    Attributes:
        name: Display name as supplied.
        format: Normalised declared format.
        mime_type: MIME type recorded for the upload.
        size: Raw byte size.
    """

    name: str
    format: str
    mime_type: str
    size: int


class Upload(BaseModel):
    """One item of a multi-file upload."""

    data: bytes
    name: str
    declared_format: Optional[str] = None
    uploader: Optional[str] = None
    mime_type: Optional[str] = None


class PendingFile(BaseModel):
    """File discovered on disk awaiting ingestion."""

    path: Path
    size_bytes: int
    modified_at: datetime
    locked: bool = False
    oversized: bool = False


class IngestionResult(BaseModel):
    """Aggregate outcome of a batch ingestion.

    Attributes:
        processed: Records created, in completion order.
        errors: ``"<item>: <message>"`` strings for failed items.
        skipped: Discovered paths that were not attempted.
    """

    processed: List[FileRecord] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    skipped: List[Path] = Field(default_factory=list)


__all__ = [
    "IngestionStage",
    "ExtractedContent",
    "ValidatedUpload",
    "Upload",
    "PendingFile",
    "IngestionResult",
]
