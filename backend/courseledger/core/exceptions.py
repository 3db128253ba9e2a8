# backend/courseledger/core/exceptions.py
"""
Domain-specific exceptions for the course ledger engine.

Every rejected operation carries a machine-readable code and the offending
field or state in ``details`` so the admin console can render a specific
message instead of a generic "operation failed".
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

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
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Malformed or missing input; the caller can correct and resubmit."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        *,
        field: Optional[str] = None,
    ) -> None:
        merged = dict(details or {})
        if field is not None:
            merged.setdefault("field", field)
        super().__init__(message, code=code or "VALIDATION_ERROR", details=merged)

    @property
    def field(self) -> Optional[str]:
        return self.details.get("field")


class PolicyViolationException(DomainException):
    """Well-formed input that violates a business rule."""

    status_code = HTTP_422_UNPROCESSABLE


class NotCancellableException(PolicyViolationException):
    """Raised when the booked course type is never subject to cancellation."""

    def __init__(self, booking_id: str, category: str, *, reason: Optional[str] = None):
        super().__init__(
            message="This course type is not cancellable",
            code="NOT_CANCELLABLE",
            details={
                "booking_id": booking_id,
                "category": category,
                "reason": reason,
            },
        )


class InvalidTransitionException(PolicyViolationException):
    """Raised when a status transition is not defined for the current status."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, booking_id: str, action: str, from_status: str):
        super().__init__(
            message=f"Cannot {action} a booking in status '{from_status}'",
            code="INVALID_TRANSITION",
            details={
                "booking_id": booking_id,
                "action": action,
                "from_status": from_status,
            },
        )


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        *,
        resource: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> None:
        merged = dict(details or {})
        if resource is not None:
            merged.setdefault("resource", resource)
        if resource_id is not None:
            merged.setdefault("id", resource_id)
        super().__init__(message, code=code or "NOT_FOUND", details=merged)


class ConflictRetryableException(DomainException):
    """A concurrent writer won the race; re-reading and retrying once is safe."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = dict(details or {})
        merged.setdefault("retryable", True)
        super().__init__(
            message=message or "The booking was modified concurrently, please retry",
            code="CONFLICT_RETRYABLE",
            details=merged,
        )


class StorageFailureException(DomainException):
    """Underlying persistence is unavailable; never retried by the engine."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "Storage temporarily unavailable",
                "code": self.code,
                "details": self.details,
            },
            headers={"Retry-After": "2"},
        )


class DocumentAlreadySentError(Exception):
    """Raised by a mailer when the document was delivered before (HTTP 409 upstream)."""


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
