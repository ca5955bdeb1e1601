"""
Custom exception classes for the Relate15 application.
Provides structured error handling with machine-readable error codes.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes shared with the frontend"""

    # Authentication errors (401)
    AUTH_NOT_AUTHENTICATED = "AUTH_NOT_AUTHENTICATED"

    # Authorization errors (403)
    AUTHZ_FORBIDDEN = "AUTHZ_FORBIDDEN"

    # Resource errors (404, 409)
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_ALREADY_EXISTS = "RESOURCE_ALREADY_EXISTS"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"

    # Queue and appointment errors (409)
    QUEUE_ALREADY_ACTIVE = "QUEUE_ALREADY_ACTIVE"
    MATCH_NOT_ACTIVE = "MATCH_NOT_ACTIVE"
    APPOINTMENT_ALREADY_BOOKED = "APPOINTMENT_ALREADY_BOOKED"

    # Validation errors (400, 422)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    VALIDATION_INVALID_DATE = "VALIDATION_INVALID_DATE"

    # Rate limiting (429)
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Server errors (500+)
    SERVER_ERROR = "SERVER_ERROR"
    SERVER_UNAVAILABLE = "SERVER_UNAVAILABLE"


class AppException(Exception):
    """
    Base exception class for application errors.
    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.SERVER_ERROR,
        status_code: int = 500,
        field: str | None = None,
        metadata: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.field = field
        self.metadata = metadata or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to response dictionary"""
        response = {
            "detail": self.message,
            "code": self.code.value,
        }
        if self.field:
            response["field"] = self.field
        if self.metadata:
            response["metadata"] = self.metadata
        return response


# Authorization Errors (403)


class AuthorizationError(AppException):
    """Base authorization error"""

    def __init__(
        self,
        message: str = "You are not allowed to perform this action",
        code: ErrorCode = ErrorCode.AUTHZ_FORBIDDEN,
        field: str | None = None,
        metadata: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=403,
            field=field,
            metadata=metadata,
        )


# Resource Errors (404, 409)


class NotFoundError(AppException):
    """Resource not found"""

    def __init__(
        self,
        message: str = "The requested resource was not found",
        resource: str | None = None,
    ):
        metadata = {"resource": resource} if resource else None
        super().__init__(
            message=message,
            code=ErrorCode.RESOURCE_NOT_FOUND,
            status_code=404,
            metadata=metadata,
        )


class AlreadyExistsError(AppException):
    """Resource already exists"""

    def __init__(
        self,
        message: str = "This resource already exists",
        field: str | None = None,
    ):
        super().__init__(
            message=message,
            code=ErrorCode.RESOURCE_ALREADY_EXISTS,
            status_code=409,
            field=field,
        )


class ConflictError(AppException):
    """Resource conflict"""

    def __init__(
        self,
        message: str = "The request conflicts with the current state",
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        field: str | None = None,
        metadata: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=409,
            field=field,
            metadata=metadata,
        )


class AlreadyActiveError(ConflictError):
    """User already has a waiting, matched or booked queue entry"""

    def __init__(
        self,
        status: str,
        partner_id: str | None = None,
        message: str = "You already have an active queue entry",
    ):
        super().__init__(
            message=message,
            code=ErrorCode.QUEUE_ALREADY_ACTIVE,
            metadata={"status": status, "partner_id": partner_id},
        )


class NoActiveMatchError(ConflictError):
    """Negotiation requested without a matched pair"""

    def __init__(self, message: str = "No active match"):
        super().__init__(
            message=message,
            code=ErrorCode.MATCH_NOT_ACTIVE,
        )


class AppointmentAlreadyBookedError(ConflictError):
    """A different date was proposed after the appointment was booked"""

    def __init__(
        self,
        appointment: str,
        message: str = "Appointment is already booked",
    ):
        super().__init__(
            message=message,
            code=ErrorCode.APPOINTMENT_ALREADY_BOOKED,
            metadata={"appointment": appointment},
        )


# Validation Errors (400, 422)


class ValidationError(AppException):
    """Validation error"""

    def __init__(
        self,
        message: str = "Please check the submitted data",
        field: str | None = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=422,
            field=field,
        )


class InvalidDateError(ValidationError):
    """Proposed date could not be parsed"""

    def __init__(
        self,
        message: str = "Invalid date format",
        field: str | None = "proposed_date",
    ):
        super().__init__(
            message=message,
            field=field,
            code=ErrorCode.VALIDATION_INVALID_DATE,
        )

