from abc import ABC


class SequenceError(ABC, Exception):
    """Base class for sequence allocation errors.

    Allocation errors are never swallowed: they propagate to the caller of
    the save or manual allocation that triggered them.
    """


class ConfigurationError(SequenceError):
    """Raised when a counter binding is malformed or cannot be resolved."""


class StorageUnavailable(SequenceError):
    """Raised when the counter store cannot complete the atomic operation."""

    def __init__(self, message: str = "Counter store unavailable") -> None:
        super().__init__(message)


class StorageInvariantViolation(SequenceError):
    """Raised when the counter store returns a malformed or non-monotonic record."""


class NotFoundError(SequenceError):
    """Raised when a requested entity is not found."""

    def __init__(self, message: str = "Document not found") -> None:
        super().__init__(message)
