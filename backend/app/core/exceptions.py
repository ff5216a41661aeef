# backend/app/core/exceptions.py
"""
Domain-specific exceptions for the reservation engine.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
Conflicts (409) stay distinguishable from generic failures (500) so the
calling layer can render "time no longer available" versus "something
went wrong".
"""

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from fastapi import HTTPException, status

if TYPE_CHECKING:
    from ..schemas.reservation import BookingConflict


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException using the class status code."""
        return HTTPException(
            status_code=self.http_status,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when input is malformed (missing tenant, end before start, ...)."""

    http_status = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    http_status = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    http_status = status.HTTP_409_CONFLICT


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class BookingConflictException(ConflictException):
    """
    Raised when a window overlaps existing reservations or unavailable staff.

    Carries the full conflict list so callers can offer alternative slots.
    """

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        conflicts: Optional[Sequence["BookingConflict"]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.conflicts: List["BookingConflict"] = list(conflicts or [])
        merged: Dict[str, Any] = dict(details or {})
        if self.conflicts:
            merged["conflicts"] = [conflict.model_dump(mode="json") for conflict in self.conflicts]
        super().__init__(
            message=message or "This time slot conflicts with an existing booking",
            code="BOOKING_CONFLICT",
            details=merged,
        )


class SlotLockedException(ConflictException):
    """Raised when another session holds the advisory lock for a slot."""

    def __init__(
        self,
        slot_key: str,
        message: Optional[str] = None,
        *,
        expires_at: Optional[str] = None,
    ):
        details: Dict[str, Any] = {"slot_key": slot_key}
        if expires_at:
            details["expires_at"] = expires_at
        self.slot_key = slot_key
        super().__init__(
            message=message or "Slot is already locked by another session",
            code="SLOT_LOCKED",
            details=details,
        )


class PersistenceException(ServiceException):
    """Raised when the store fails during lock, query, or insert."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="PERSISTENCE_ERROR", details=details)


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """


class UniqueViolation(RepositoryException):
    """A store-level uniqueness or exclusion constraint rejected a write."""

    def __init__(self, message: str, constraint_name: Optional[str] = None):
        super().__init__(message)
        self.constraint_name = constraint_name
