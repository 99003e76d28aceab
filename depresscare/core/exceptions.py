"""
Domain errors raised by the service layer.

They carry no request context; the HTTP layer turns them into responses
through a single exception handler registered in ``main``.
"""
from fastapi import status


class AppointmentError(Exception):
    """Base class for expected, caller-correctable errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error: str = "Bad Request"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(AppointmentError):
    """Referenced entity is absent or not owned by the caller."""

    status_code = status.HTTP_404_NOT_FOUND
    error = "Not Found"


class InvalidInputError(AppointmentError):
    """Malformed or out-of-range field, e.g. a past timestamp."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "Invalid Input"


class ConflictError(AppointmentError):
    """Requested slot overlaps an existing active appointment."""

    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"


class InvalidStateError(AppointmentError):
    """Transition not permitted from the current status."""

    status_code = status.HTTP_409_CONFLICT
    error = "Invalid State"


class ForbiddenError(AppointmentError):
    """Caller has the right role but no care relationship with the patient."""

    status_code = status.HTTP_403_FORBIDDEN
    error = "Forbidden"
