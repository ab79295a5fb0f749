"""Error taxonomy for Redash query execution."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Canonical error categories."""

    INVALID_REQUEST = "invalid_request"
    SYNTAX = "syntax"
    CONNECTIVITY = "connectivity"
    AUTH = "auth"
    REMOTE = "remote"
    TIMEOUT = "timeout"
    CONVERSION = "conversion"
    ILLEGAL_STATE = "illegal_state"
    NOT_FOUND = "not_found"
    UNSUPPORTED_CAPABILITY = "unsupported_capability"


class RedashError(Exception):
    """Base class for all redash_dal failures."""

    category: ErrorCategory = ErrorCategory.REMOTE


class ConfigurationError(RedashError, ValueError):
    """Raised for an invalid connection target or a missing API key."""

    category = ErrorCategory.INVALID_REQUEST


class QuerySyntaxError(RedashError):
    """Raised when query text is not one of the accepted command shapes."""

    category = ErrorCategory.SYNTAX


class _RemoteContextError(RedashError):
    """Carries the remote operation context alongside the message."""

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        target_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        """Initialize with a message and optional remote context."""
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.target_id = target_id
        self.status_code = status_code


class TransportError(_RemoteContextError):
    """Raised when the service cannot be reached (network or HTTP layer)."""

    category = ErrorCategory.CONNECTIVITY


class AuthenticationError(_RemoteContextError):
    """Raised when the service rejects the API key (401/403)."""

    category = ErrorCategory.AUTH


class RemoteError(_RemoteContextError):
    """Raised when the service answers but refuses or fails the request.

    ``str(exc)`` is exactly the message supplied by the service.
    """

    category = ErrorCategory.REMOTE


class QueryTimeoutError(_RemoteContextError, TimeoutError):
    """Raised when a job is still pending after the polling bound."""

    category = ErrorCategory.TIMEOUT

    def __init__(self, job_id: str, attempts: int, interval_seconds: float) -> None:
        """Initialize timeout details with job and polling context."""
        super().__init__(
            f"Redash job {job_id} did not finish after {attempts} polling attempts "
            f"({interval_seconds:g}s interval).",
            operation="wait_for_job",
            target_id=job_id,
        )
        self.job_id = job_id
        self.attempts = attempts
        self.interval_seconds = interval_seconds


class ConversionError(RedashError):
    """Raised when a typed accessor cannot coerce a cell value."""

    category = ErrorCategory.CONVERSION


class IllegalStateError(RedashError):
    """Raised on cursor or statement misuse (not positioned, closed)."""

    category = ErrorCategory.ILLEGAL_STATE


class ColumnNotFoundError(RedashError, KeyError):
    """Raised when a column name or index is not part of the result."""

    category = ErrorCategory.NOT_FOUND

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class UnsupportedOperationError(RedashError, NotImplementedError):
    """Raised for any mutating or advanced capability outside scope."""

    category = ErrorCategory.UNSUPPORTED_CAPABILITY

    def __init__(self, operation: str) -> None:
        """Initialize with the name of the rejected operation."""
        super().__init__(f"Operation '{operation}' is not supported by the read-only Redash driver.")
        self.operation = operation
