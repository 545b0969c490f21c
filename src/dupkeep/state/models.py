"""Persisted record models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

VerificationStatus = Literal["unverified", "valid", "invalid", "missing"]
StorageType = Literal["local", "content_store", "object_store"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class FileRecord(BaseModel):
    """Persisted identity of one uploaded file.

    Attributes:
        id: Stable identifier.
        file_name: Original display name.
        stored_name: Physical name chosen by the storage backend.
        storage_location: Backend-specific token resolving to the stored bytes.
        storage_type: Backend variant the record was written through.
        storage_degraded: Whether the intended backend fell back to local storage.
        content_hash: Fingerprint of the extracted content, used for deduplication.
        file_hash: Digest of the raw uploaded bytes, used for verification.
        file_size: Raw byte size.
        extension: Declared format without a leading dot.
        mime_type: MIME type recorded at upload.
        category: Category label assigned by the classifier.
        uploaded_by: Opaque uploader identity.
        is_duplicate: Whether the record belongs to a duplicate group.
        duplicate_group_id: Group shared by all records with this fingerprint.
        duplicate_count: Group size when the record was last marked.
        verification_status: Outcome of the most recent integrity check.
        tags: Free-text tags.
        description: Free-text description.
        active: False once soft-deleted.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    file_name: str
    stored_name: str
    storage_location: str
    storage_type: StorageType = "local"
    storage_degraded: bool = False
    content_hash: str
    file_hash: str
    file_size: int
    extension: str
    mime_type: Optional[str] = None
    category: str = "Other"
    uploaded_by: str = "anonymous"
    scanned_at: datetime = Field(default_factory=_now)
    uploaded_at: datetime = Field(default_factory=_now)
    last_verified_at: Optional[datetime] = None
    last_accessed_at: Optional[datetime] = None
    is_duplicate: bool = False
    duplicate_group_id: Optional[str] = None
    duplicate_count: int = 0
    verification_status: VerificationStatus = "unverified"
    tags: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    active: bool = True

    @field_validator("content_hash", "file_hash")
    @classmethod
    def _hash_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("hash must not be empty")
        return value

    def mark_duplicate(self, group_id: str, group_size: int) -> None:
        """Stamp the record as a member of ``group_id``."""
        self.is_duplicate = True
        self.duplicate_group_id = group_id
        self.duplicate_count = group_size

    def clear_duplicate(self) -> None:
        """Remove any duplicate group membership."""
        self.is_duplicate = False
        self.duplicate_group_id = None
        self.duplicate_count = 0


class RecordStore(BaseModel):
    """On-disk layout of the JSON record store."""

    records: Dict[str, FileRecord] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


__all__ = ["FileRecord", "RecordStore", "VerificationStatus", "StorageType"]
