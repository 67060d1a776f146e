"""Service-layer exception hierarchy."""
from __future__ import annotations


class ServiceError(Exception):
    """Base service error."""


class NotFoundError(ServiceError):
    """Raised when an entity is not found."""


class ConflictError(ServiceError):
    """Raised when a domain conflict occurs."""


class ValidationError(ServiceError):
    """Raised when business validation fails."""


class ImportFailedError(ServiceError):
    """Base error for batch-level import failures.

    Raising one of these aborts the whole import run before anything is persisted.
    """


class UnsupportedSourceTypeError(ImportFailedError):
    """Raised when no parser is registered for the declared source type."""


class UnreadableDocumentError(ImportFailedError):
    """Raised when a document cannot be parsed at all."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class CommitFailedError(ImportFailedError):
    """Raised when the storage collaborator rejects a batch commit."""


class RowError(ValueError):
    """Base error for a single statement row that cannot be normalized."""


class InvalidDateError(RowError):
    """Raised when a date value cannot be parsed or is not a real date."""


class InvalidAmountError(RowError):
    """Raised when a money value is empty, ambiguous or not finite."""
