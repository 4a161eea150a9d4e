"""
Admission failure taxonomy.

Unavailability is an expected outcome of admission, so every rejection is a
typed error carrying a machine-readable ``code`` and a human-readable message
that can be shown to the end user. The API layer converts them with
``to_http_exception``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainError(Exception):
    """Base class for booking domain errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: str = "DomainError"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class NotFoundError(DomainError):
    """Referenced venue or booking does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NotFound"


class InvalidStateError(DomainError):
    """Entity exists but is not in a state that allows the operation."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "InvalidState"


class BookingValidationError(DomainError):
    """Duration or capacity constraints violated."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "ValidationError"


class ConflictError(DomainError):
    """The requested interval is not available; ``message`` is the resolver reason."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "Conflict"


class ConcurrencyConflictError(DomainError):
    """Lost an admission race for the venue. Safe to retry once."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "ConcurrencyConflict"
