"""Result models for duplicate tracking and resolution."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Registration(BaseModel):
    """Outcome of registering a record's fingerprint.

    Attributes:
        is_duplicate: Whether another active record shares the fingerprint.
        group_id: Duplicate group the record joined, if any.
        group_size: Active members of the group including this record.
    """

    is_duplicate: bool = False
    group_id: Optional[str] = None
    group_size: int = 1


class RescanResult(BaseModel):
    """Summary of a full duplicate rescan."""

    groups_processed: int = 0
    new_duplicates_found: int = 0
    groups_dissolved: int = 0


class DuplicateGroup(BaseModel):
    """Active records sharing one fingerprint."""

    group_id: str
    fingerprint: str
    record_ids: List[str] = Field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.record_ids)


class ResolutionStrategy(str, Enum):
    """Bulk duplicate resolution policies."""

    KEEP_NEWEST = "keep_newest"
    KEEP_LARGEST = "keep_largest"
    DELETE_ALL = "delete_all"


class ResolutionResult(BaseModel):
    """Outcome of a resolution run.

    Attributes:
        resolved_count: Records deleted.
        errors: ``"<record id>: <message>"`` strings for failed or unknown records.
        strategy: Strategy that was applied.
    """

    resolved_count: int = 0
    errors: List[str] = Field(default_factory=list)
    strategy: ResolutionStrategy
    kept: List[str] = Field(default_factory=list)


class BatchResult(BaseModel):
    """Outcome of a batch operation over record identifiers."""

    succeeded: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class CleanupResult(BaseModel):
    """Outcome of an orphan cleanup run.

    Attributes:
        orphaned_records: Records removed because their bytes were gone.
        orphaned_objects: Storage locations released because no active record
            referenced them.
        errors: ``"<record id or location>: <message>"`` strings.
    """

    orphaned_records: List[str] = Field(default_factory=list)
    orphaned_objects: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


__all__ = [
    "Registration",
    "RescanResult",
    "DuplicateGroup",
    "ResolutionStrategy",
    "ResolutionResult",
    "BatchResult",
    "CleanupResult",
]
