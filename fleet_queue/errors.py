"""Error types raised by the queue client."""

from enum import Enum


class ErrorCategory(str, Enum):
    """User-facing category of a failed request."""

    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    TRANSIENT = "transient"
    PRECONDITION = "precondition"


DEFAULT_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.AUTHENTICATION: "Authentication required. Please log in again.",
    ErrorCategory.AUTHORIZATION: "You do not have permission to access the queue.",
    ErrorCategory.NOT_FOUND: "Queue item not found.",
    ErrorCategory.CONFLICT: "The item is not in a state that allows this action.",
    ErrorCategory.VALIDATION: "Invalid request.",
    ErrorCategory.TRANSIENT: "Server error. Please try again later.",
    ErrorCategory.PRECONDITION: "No authentication token available.",
}


class QueueClientError(RuntimeError):
    """Base class for queue API failures."""

    category = ErrorCategory.TRANSIENT

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        server_message: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.server_message = server_message

    @property
    def retryable(self) -> bool:
        """Only transient failures are safe to repeat."""
        return self.category == ErrorCategory.TRANSIENT

    def user_message(self) -> str:
        """Message suitable for a transient notification."""
        if self.category in (ErrorCategory.VALIDATION, ErrorCategory.CONFLICT) and self.server_message:
            return self.server_message
        return DEFAULT_MESSAGES[self.category]


class AuthenticationError(QueueClientError):
    """401: the session is no longer valid."""

    category = ErrorCategory.AUTHENTICATION


class AuthorizationError(QueueClientError):
    """403: the user may not perform this operation."""

    category = ErrorCategory.AUTHORIZATION


class NotFoundError(QueueClientError):
    """404: the item does not exist (possibly pruned)."""

    category = ErrorCategory.NOT_FOUND


class ConflictError(QueueClientError):
    """409: the item is in a state that forbids the operation."""

    category = ErrorCategory.CONFLICT


class InvalidStateError(ConflictError):
    """The server refused a retry, reorder or priority change for the item's state."""


class ValidationError(QueueClientError):
    """400, or a success=false envelope."""

    category = ErrorCategory.VALIDATION


class TransientError(QueueClientError):
    """5xx, network failure or timeout."""

    category = ErrorCategory.TRANSIENT


class PreconditionFailedError(QueueClientError):
    """No bearer token is available; the request was not attempted."""

    category = ErrorCategory.PRECONDITION


def error_for_status(status_code: int) -> type[QueueClientError]:
    """Map an HTTP status to the matching error class."""
    if status_code == 400:
        return ValidationError
    if status_code == 401:
        return AuthenticationError
    if status_code == 403:
        return AuthorizationError
    if status_code == 404:
        return NotFoundError
    if status_code == 409:
        return ConflictError
    if status_code >= 500:
        return TransientError
    return ValidationError
