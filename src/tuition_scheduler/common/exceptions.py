"""
This file contains custom, application-specific exceptions.

Every error raised by the scheduling core derives from SchedulingError so the
API layer can translate it into a response in one place.
"""
from typing import Any, Optional


class SchedulingError(Exception):
    """Base class for all scheduling / booking errors."""
    status_code: int = 500
    error_code: str = "scheduling_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(SchedulingError):
    """Raised when client input is malformed or missing. Never retried."""
    status_code = 400
    error_code = "validation_error"


class InvalidTimeFormat(ValidationError):
    """Raised when a time-of-day string is not a valid HH:MM value."""
    error_code = "invalid_time_format"


class NotFoundError(SchedulingError):
    """Raised when a tutor, student, slot or pattern id does not resolve."""
    status_code = 404
    error_code = "not_found"


class ConflictError(SchedulingError):
    """Raised when a proposed interval overlaps a booked/completed slot or a unique key."""
    status_code = 409
    error_code = "conflict"


class StateError(SchedulingError):
    """Raised when a transition is not permitted from the slot's current status."""
    status_code = 409
    error_code = "invalid_state"


class UnauthorizedRoleError(StateError):
    """Raised when a user's role does not permit them to perform an action."""
    status_code = 403
    error_code = "unauthorized_role"


class ContentionError(SchedulingError):
    """Raised when the storage layer keeps reporting lock conflicts after all retries."""
    status_code = 503
    error_code = "contention"


class InfrastructureError(SchedulingError):
    """Raised when storage is unreachable or a transaction times out."""
    status_code = 503
    error_code = "infrastructure_error"
