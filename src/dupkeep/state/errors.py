"""Record store errors."""

from dupkeep.errors import PersistenceError


class StateError(PersistenceError):
    """Base exception for record repository operations."""


class CorruptStateError(StateError):
    """Raised when the stored record data cannot be parsed."""
