"""
Domain exceptions for taskgrove.

Services raise ValueError for bad input;
these classes cover the cases callers need to tell apart.
"""
from typing import Optional


class TaskGroveError(Exception):
    """Base class for taskgrove errors."""

    code = "INTERNAL_ERROR"
    retryable = False

    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        if code is not None:
            self.code = code

    @property
    def extensions(self) -> dict:
        """Error extensions exposed to GraphQL clients."""
        return {"code": self.code, "retryable": self.retryable}


class NotAuthenticatedError(TaskGroveError):
    """Raised when a caller without a valid access token hits a protected field."""

    code = "UNAUTHENTICATED"

    def __init__(self, message: str = "You are not authenticated."):
        super().__init__(message)


class NotFoundError(TaskGroveError, ValueError):
    """A referenced record does not exist."""

    code = "NOT_FOUND"


class ValidationFailedError(TaskGroveError, ValueError):
    """Input was well-formed but violates a data model rule."""

    code = "BAD_USER_INPUT"


class StorageUnavailableError(TaskGroveError):
    """
    Task or user storage could not be reached (locked database, I/O failure).

    Propagated as-is; nothing in taskgrove retries internally.
    """

    code = "STORAGE_UNAVAILABLE"
    retryable = True
