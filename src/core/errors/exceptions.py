"""
Common exception types and error classification for kline_fetcher.

Provides:
- ErrorCategory enum for retry decisions
- Typed exception hierarchy for pipeline errors
- Domain errors for archive fetches
"""

from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that may succeed when retried unchanged
                   (e.g., connection resets, interrupted writes)
        CONFLICT: Failures that only succeed on retry when the caller agrees
                  to replace existing state (e.g., local file already exists)
        PERMANENT: Non-retriable failures that won't succeed without different
                   input (e.g., 404 from the archive host, validation errors)
        UNKNOWN: Unclassified errors, may retry conservatively
    """

    TRANSIENT = "transient"
    CONFLICT = "conflict"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class PipelineError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        context: Optional[dict] = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether this error may succeed on an unchanged retry."""
        return self.category in (ErrorCategory.TRANSIENT, ErrorCategory.UNKNOWN)

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Base categories
# =============================================================================


class TransientError(PipelineError):
    """Base class for transient/retriable errors."""

    category = ErrorCategory.TRANSIENT


class PermanentError(PipelineError):
    """Base class for permanent/non-retriable errors."""

    category = ErrorCategory.PERMANENT


class ValidationError(PermanentError):
    """Input validation failed."""

    pass


class ConfigurationError(PermanentError):
    """Invalid configuration."""

    pass


class InvalidAddressError(ValidationError):
    """A remote archive address could not be built from its components."""

    pass


# =============================================================================
# Fetch errors
# =============================================================================


class FetchErrorKind(str, Enum):
    """Failure taxonomy of a single archive fetch."""

    FAILED_TO_SEND_REQUEST = "failed_to_send_request"
    COULD_NOT_FIND_FILE_AT_HOST = "could_not_find_file_at_host"
    COULD_NOT_OPEN_FILE = "could_not_open_file"
    FAILED_TO_WRITE_TO_FILE = "failed_to_write_to_file"


class OpenFailureReason(str, Enum):
    """Why the local file could not be opened."""

    ALREADY_EXISTS = "already_exists"
    OTHER = "other"


class FetchError(PipelineError):
    """Base class for failures of one archive fetch."""

    kind: FetchErrorKind
    hint: Optional[str] = None


class RequestSendError(FetchError, TransientError):
    """The request never produced a response (DNS, connect, TLS, timeout)."""

    kind = FetchErrorKind.FAILED_TO_SEND_REQUEST


class FileNotFoundAtHostError(FetchError, PermanentError):
    """The archive host answered with a non-success status."""

    kind = FetchErrorKind.COULD_NOT_FIND_FILE_AT_HOST
    hint = "check the ticker, timeframe and dates; the archive may not exist"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
        context: Optional[dict] = None,
    ):
        super().__init__(message, cause, context)
        self.status_code = status_code


class FileOpenError(FetchError):
    """The local destination could not be opened for writing."""

    category = ErrorCategory.TRANSIENT
    kind = FetchErrorKind.COULD_NOT_OPEN_FILE
    reason = OpenFailureReason.OTHER


class FileExistsConflictError(FileOpenError):
    """The local destination exists and overwrite was not requested."""

    category = ErrorCategory.CONFLICT
    reason = OpenFailureReason.ALREADY_EXISTS
    hint = "use --overwrite to replace the existing file"


class FileWriteError(FetchError, TransientError):
    """Writing the response body to disk failed part way through."""

    kind = FetchErrorKind.FAILED_TO_WRITE_TO_FILE


# =============================================================================
# Classification utilities
# =============================================================================


def is_retryable_error(error: Exception) -> bool:
    """Check if error should be retried without user consent beyond a retry."""
    if isinstance(error, PipelineError):
        return error.is_retryable
    return False


def is_conflict_error(error: Exception) -> bool:
    """Check if error is retriable only when overwrite is granted."""
    return (
        isinstance(error, PipelineError)
        and error.category == ErrorCategory.CONFLICT
    )
