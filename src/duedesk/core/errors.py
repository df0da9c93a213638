"""Error taxonomy shared by the core, services and adapters."""


class DueDeskError(Exception):
    """Base class for all duedesk errors."""


class InvalidInput(DueDeskError):
    """Raised when a request field is malformed, missing or out of range."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class InvalidDateFormat(InvalidInput):
    """Raised when a date string is not a real calendar date in the expected format."""


class NotFound(DueDeskError):
    """Raised when a referenced occurrence, client or series does not exist."""


class Forbidden(DueDeskError):
    """Raised when the caller's role does not allow the operation."""


class CollaboratorUnavailable(DueDeskError):
    """Raised by calendar, mail and store adapters when the remote call fails."""
