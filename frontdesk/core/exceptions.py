"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    retryable = False

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


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, message: str = "Bad request"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class AuthorizationException(AppException):
    """
    The appointment service refused the actor.

    Raised for campus-scope mismatches and rejected credentials. Retrying
    the same request will fail again, so it is never retryable.
    """

    def __init__(
        self,
        message: str = "Not authorized for this appointment",
        status_code: int = 403,
    ):
        """Initialize with 403 (or 401) status code."""
        super().__init__(message, status_code=status_code)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class AlreadyQueuedException(ConflictException):
    """The patient already has an active appointment in the queue."""

    def __init__(self, identity: str):
        """Initialize with the conflicting identity."""
        self.identity = identity
        super().__init__(f"Patient {identity} is already queued")


class InvalidTransitionException(ConflictException):
    """The requested transition is not allowed from the record's current status."""

    def __init__(self, transition: str, current_status: str):
        """Initialize with the attempted transition and the current status."""
        self.transition = transition
        self.current_status = current_status
        super().__init__(f"Cannot {transition} an appointment that is {current_status}")


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(
        self,
        message: str = "Validation error",
        errors: dict[str, str] | None = None,
    ):
        """Initialize with 422 status code and optional field-level errors."""
        self.errors = errors or {}
        super().__init__(message, status_code=422)


class TransportException(AppException):
    """The appointment service could not be reached or failed with a 5xx."""

    retryable = True

    def __init__(self, message: str = "Appointment service unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)


class AppointmentServiceException(AppException):
    """The appointment service answered with something we cannot interpret."""

    def __init__(self, message: str = "Unexpected response from appointment service"):
        """Initialize with 502 status code."""
        super().__init__(message, status_code=502)


class PartialFetchFailure(AppException):
    """One of the queue list retrievals failed for this refresh cycle."""

    def __init__(self, source: str, message: str):
        """Initialize with the failed source name."""
        self.source = source
        super().__init__(f"{source} queue unavailable: {message}", status_code=502)


class EnrichmentFailure(AppException):
    """A preferred-doctor lookup failed for one patient."""

    def __init__(self, identity: str, message: str):
        """Initialize with the identity whose lookup failed."""
        self.identity = identity
        super().__init__(f"Preference lookup failed for {identity}: {message}", status_code=502)
