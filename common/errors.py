"""Error taxonomy shared by every marketplace operation.

Each error carries the HTTP status the API layer reports it with, so the
routers can translate domain failures without knowing every subclass.
"""

from typing import Dict, List, Optional


class MarketError(Exception):
    """Base class for expected marketplace failures."""
    status_code = 500


class UnauthorizedError(MarketError):
    """Raised when no authenticated actor is present."""
    status_code = 401


class ForbiddenError(MarketError):
    """Raised when the actor lacks permission for the action."""
    status_code = 403


class NotFoundError(MarketError):
    """Raised when a referenced entity does not exist."""
    status_code = 404


class ValidationError(MarketError):
    """Raised when an input payload is malformed.

    Args:
        message: Summary of the failure
        issues: Field level details, each ``{"field": ..., "message": ...}``
    """
    status_code = 400

    def __init__(self, message: str = "Invalid data", issues: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.issues = issues or []


class InvalidRequestError(MarketError):
    """Raised for well-formed requests that make no sense, e.g. buying your own listing."""
    status_code = 400


class ConflictError(MarketError):
    """Raised when the current state of an entity disallows the action."""
    status_code = 409


class IssueCollector:
    """Accumulates field errors and raises them as one ValidationError."""

    def __init__(self):
        self.issues: List[Dict[str, str]] = []

    def add(self, field: str, message: str) -> None:
        self.issues.append({"field": field, "message": message})

    def has_errors(self) -> bool:
        return bool(self.issues)

    def raise_if_any(self, message: str = "Invalid data") -> None:
        if self.issues:
            raise ValidationError(message, list(self.issues))
