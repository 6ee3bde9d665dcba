"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class SlotConflictException(ConflictException):
    """Requested time range overlaps an existing blocking appointment."""

    def __init__(self, message: str = "Time slot is no longer available"):
        """Initialize with 409 status code."""
        super().__init__(message)


class InvalidTransitionException(ConflictException):
    """Operation is not allowed from the current appointment or queue status."""

    def __init__(self, message: str = "Invalid status transition"):
        """Initialize with 409 status code."""
        super().__init__(message)


class ConsultationInProgressException(ConflictException):
    """Another patient is already in consultation with the doctor."""

    def __init__(self, message: str = "Another patient is currently in consultation"):
        """Initialize with 409 status code."""
        super().__init__(message)


class NoWaitingPatientsException(NotFoundException):
    """Nobody is waiting in the doctor's queue."""

    def __init__(self, message: str = "No patients waiting in the queue"):
        """Initialize with 404 status code."""
        super().__init__(message)


class ScopeBusyException(AppException):
    """A doctor/day scope lock could not be acquired in time."""

    def __init__(self, message: str = "Schedule is busy, retry the request"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)


class ScheduleConfigurationException(AppException):
    """Stored working hours cannot produce slots."""

    def __init__(self, message: str = "Invalid schedule configuration"):
        """Initialize with 500 status code."""
        super().__init__(message, status_code=500)
