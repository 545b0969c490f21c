"""Duplicate detection, grouping and resolution."""

from .index import DuplicateIndex
from .locks import KeyedLock
from .models import (
    BatchResult,
    CleanupResult,
    DuplicateGroup,
    Registration,
    RescanResult,
    ResolutionResult,
    ResolutionStrategy,
)
from .resolution import DuplicateResolver

__all__ = [
    "DuplicateIndex",
    "DuplicateResolver",
    "KeyedLock",
    "Registration",
    "RescanResult",
    "DuplicateGroup",
    "ResolutionResult",
    "ResolutionStrategy",
    "BatchResult",
    "CleanupResult",
]
