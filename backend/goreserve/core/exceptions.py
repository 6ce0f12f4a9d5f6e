# backend/goreserve/core/exceptions.py
"""
Domain-specific exceptions for the scheduling core.

These exceptions carry a stable reason code and structured details so the
calling application layer can map them onto its own transport (HTTP status,
CLI exit code, ...) without parsing messages.
"""

from typing import Any, Dict, Optional


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

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

    def to_dict(self) -> Dict[str, Any]:
        """Payload for the caller's error response."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationException(DomainException):
    """Raised when input is malformed or missing."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code or "validation_error", details=details)


class NotFoundException(DomainException):
    """Raised when a referenced business, service, staff member or booking is unknown."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code or "not_found", details=details)


class PolicyViolationException(DomainException):
    """Raised when a booking or cancellation rule is violated."""


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""


# Specific business exceptions


class BookingConflictException(ConflictException):
    """Raised when a requested interval is no longer bookable."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot conflicts with an existing booking",
            code="BOOKING_CONFLICT",
            details=details or {},
        )


class InsufficientNoticeException(PolicyViolationException):
    """Raised when a cancellation comes too late."""

    def __init__(self, required_hours: int, provided_hours: float):
        super().__init__(
            message=f"Bookings must be cancelled at least {required_hours} hours in advance",
            code="insufficient_notice",
            details={
                "required_hours": required_hours,
                "provided_hours": round(provided_hours, 2),
            },
        )


class InvalidTransitionException(PolicyViolationException):
    """Raised when a booking is asked to leave a state it cannot leave."""

    def __init__(self, booking_id: str, current_status: str, action: str):
        super().__init__(
            message=f"Cannot {action} a booking that is {current_status}",
            code="invalid_transition",
            details={
                "booking_id": booking_id,
                "status": current_status,
                "action": action,
            },
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """


class RepositoryConflictException(RepositoryException):
    """A write was rejected by a uniqueness or integrity constraint."""
