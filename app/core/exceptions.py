"""Custom application exceptions."""

from enum import Enum
from uuid import UUID


class AppException(Exception):
    """Base application exception."""

    code = "APP_ERROR"

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        self.headers: dict[str, str] | None = None
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Extra fields rendered into the error response body."""
        return {}


class NotFoundException(AppException):
    """Resource not found exception."""

    code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class BadRequestException(AppException):
    """Bad request exception."""

    code = "BAD_REQUEST"

    def __init__(self, message: str = "Bad request"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class ConflictException(AppException):
    """Conflict exception."""

    code = "CONFLICT"

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ValidationException(AppException):
    """Validation error exception."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class ServiceUnavailableException(AppException):
    """Temporary failure; the same request may be retried."""

    code = "SERVICE_UNAVAILABLE"

    def __init__(self, message: str = "Service temporarily unavailable", retry_after: int = 1):
        """Initialize with 503 status code and a Retry-After hint."""
        super().__init__(message, status_code=503)
        self.retry_after = retry_after
        self.headers = {"Retry-After": str(retry_after)}


# ============================================================================
# Booking errors
# ============================================================================


class ValidationErrorKind(str, Enum):
    """Why a candidate booking was rejected before touching storage."""

    INVALID_RANGE = "invalid_range"
    CROSSES_MIDNIGHT = "crosses_midnight"
    OUTSIDE_WORKING_HOURS = "outside_working_hours"
    IN_THE_PAST = "in_the_past"


VALIDATION_MESSAGES = {
    ValidationErrorKind.INVALID_RANGE: "Start time must be before end time",
    ValidationErrorKind.CROSSES_MIDNIGHT: "Appointments must be within the same day",
    ValidationErrorKind.OUTSIDE_WORKING_HOURS: "Appointments must fall within clinic working hours",
    ValidationErrorKind.IN_THE_PAST: "Cannot book appointments in the past",
}


class BookingValidationError(BadRequestException):
    """Candidate booking failed a validator check."""

    code = "VALIDATION_ERROR"

    def __init__(self, kind: ValidationErrorKind, message: str | None = None):
        """Initialize with the failing check."""
        self.kind = kind
        super().__init__(message or VALIDATION_MESSAGES[kind])

    def to_dict(self) -> dict:
        return {"kind": self.kind.value}


class BookingConflictError(ConflictException):
    """Requested interval overlaps an existing booked appointment."""

    code = "BOOKING_CONFLICT"

    def __init__(
        self,
        conflicting_id: UUID | None = None,
        message: str = "Time slot not available",
    ):
        """Initialize with the id of the appointment that holds the slot."""
        self.conflicting_id = conflicting_id
        super().__init__(message)

    def to_dict(self) -> dict:
        if self.conflicting_id is None:
            return {}
        return {"conflicting_appointment_id": str(self.conflicting_id)}


class TransientBookingError(ServiceUnavailableException):
    """Storage failure or exhausted write-conflict retries; retry the same request."""

    code = "TRANSIENT_ERROR"

    def __init__(self, message: str = "Booking could not be completed, please retry"):
        """Initialize as a retryable 503."""
        super().__init__(message, retry_after=1)


class ReferenceNotFoundError(NotFoundException):
    """Doctor or patient referenced by a booking does not exist."""

    code = "REFERENCE_NOT_FOUND"


class AppointmentNotFoundError(NotFoundException):
    """Appointment does not exist."""

    code = "NOT_FOUND"

    def __init__(self, message: str = "Appointment not found"):
        """Initialize with 404 status code."""
        super().__init__(message)


class AlreadyCancelledError(ConflictException):
    """Appointment is already cancelled; nothing was changed."""

    code = "ALREADY_CANCELLED"

    def __init__(self, message: str = "Appointment is already cancelled"):
        """Initialize with 409 status code."""
        super().__init__(message)
