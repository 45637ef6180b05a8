"""Error taxonomy for the freshness engine."""
from __future__ import annotations


class ExpiryError(Exception):
    """Base class for errors surfaced to callers with a specific reason."""

    code = "expiry_error"

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ValidationError(ExpiryError):
    """Raised for missing dates or out-of-range settings."""

    code = "validation_error"


class NotFoundError(ExpiryError):
    """Raised when a product or action id is unknown."""

    code = "not_found"


class DomainError(ExpiryError):
    """Raised when a state transition is not allowed."""

    code = "domain_error"


class DependencyError(ExpiryError):
    """Raised when the storage or notification collaborator fails."""

    code = "dependency_error"


__all__ = ["DependencyError", "DomainError", "ExpiryError", "NotFoundError", "ValidationError"]
