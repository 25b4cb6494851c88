"""Exception hierarchy shared by the finanzas services and the HTTP layer."""
from __future__ import annotations


class FinanceError(Exception):
    """Base class for every error raised on purpose by the backend."""


class NotFoundError(FinanceError):
    """The requested record does not exist for the current user."""

    def __init__(self, entity: str, record_id: str) -> None:
        super().__init__(f"{entity} {record_id} not found")
        self.entity = entity
        self.record_id = record_id


class ValidationError(FinanceError, ValueError):
    """Input values break a business rule (negative amounts, missing fields...)."""


class ConflictError(FinanceError):
    """The operation is not allowed in the record's current state."""


class ExternalServiceError(FinanceError):
    """An upstream market-data or AI provider failed or is not configured."""

    def __init__(self, message: str, *, configured: bool = True) -> None:
        super().__init__(message)
        self.configured = configured


__all__ = [
    "FinanceError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
]
