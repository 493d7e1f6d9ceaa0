# backend/bookpay/core/exceptions.py
"""
Domain exceptions.

Services raise these; routes turn them into HTTP responses with
``to_http_exception()``. The response detail is always
``{"message", "code", "details"}`` so clients can branch on ``code``.
Provider error text belongs in logs, never in ``message``.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
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
        return HTTPException(
            status_code=self.status_code,
            detail={"message": self.message, "code": self.code, "details": self.details},
        )


class ValidationException(DomainException):
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedException(DomainException):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenException(DomainException):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundException(DomainException):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """A valid request the current booking or payment state does not allow."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Unexpected failure inside a service, typically the database."""


class BookingConflictException(ConflictException):
    def __init__(self, message: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message or "This time slot conflicts with an existing booking",
            code="BOOKING_CONFLICT",
            details=details,
        )


class PaymentNotConnectedException(ValidationException):
    """No usable Stripe credential for the organizer, their team or the platform."""

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__("Missing payment credentials", code="PAYMENT_NOT_CONNECTED", details=details)


class PaymentNotCreatedException(DomainException):
    """The provider refused to create a checkout session or setup intent."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            "Payment could not be created. Please try again.",
            code="PAYMENT_NOT_CREATED",
            details=details,
        )


class PaymentProviderException(DomainException):
    """A provider call failed after the payment existed (verify, charge, refund)."""

    status_code = status.HTTP_502_BAD_GATEWAY


class RepositoryException(Exception):
    """Data access failure. Wraps the SQLAlchemy error as ``__cause__``."""
