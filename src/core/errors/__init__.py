"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- PipelineError hierarchy for typed exceptions
- FetchError hierarchy for per-file download failures
"""

from core.errors.exceptions import (
    # Enums
    ErrorCategory,
    FetchErrorKind,
    OpenFailureReason,
    # Base classes
    PipelineError,
    TransientError,
    PermanentError,
    # Permanent errors
    ValidationError,
    ConfigurationError,
    InvalidAddressError,
    # Fetch errors
    FetchError,
    RequestSendError,
    FileNotFoundAtHostError,
    FileOpenError,
    FileExistsConflictError,
    FileWriteError,
    # Classification utilities
    is_retryable_error,
    is_conflict_error,
)

__all__ = [
    # Enums
    "ErrorCategory",
    "FetchErrorKind",
    "OpenFailureReason",
    # Base classes
    "PipelineError",
    "TransientError",
    "PermanentError",
    # Permanent errors
    "ValidationError",
    "ConfigurationError",
    "InvalidAddressError",
    # Fetch errors
    "FetchError",
    "RequestSendError",
    "FileNotFoundAtHostError",
    "FileOpenError",
    "FileExistsConflictError",
    "FileWriteError",
    # Classification utilities
    "is_retryable_error",
    "is_conflict_error",
]
