"""
Domain-specific exception hierarchy for the booking engine.

Expected negative outcomes of a booking request (closed day, conflict, ...)
are not exceptions; they are returned as ``Rejected`` results by the
validator. Everything here signals a caller or configuration error.
"""


class BookingError(Exception):
    """Base class for all application-level errors."""

    code = "BOOKING_ERROR"


class ConfigNotFoundError(BookingError):
    """Raised when a tenant has no booking policy or hours configured."""

    code = "CONFIG_NOT_FOUND"

    def __init__(self, tenant_id: str, missing: str = "booking policy"):
        self.tenant_id = tenant_id
        self.missing = missing
        super().__init__(f"Tenant '{tenant_id}' has no {missing} configured")


class MalformedInputError(BookingError, ValueError):
    """Raised on precondition violations such as an inverted interval."""

    code = "MALFORMED_INPUT"


class InvalidTransitionError(BookingError):
    """Raised when an appointment status change is not allowed."""

    code = "INVALID_TRANSITION"


class AppointmentNotFoundError(BookingError):
    """Raised when an appointment id is unknown to the store."""

    code = "APPOINTMENT_NOT_FOUND"


class BookingConflictError(BookingError):
    """Raised by a store when an insert would overlap an active appointment."""

    code = "CONFLICT"

    def __init__(self, message: str, conflicting_id: str | None = None):
        self.conflicting_id = conflicting_id
        super().__init__(message)
