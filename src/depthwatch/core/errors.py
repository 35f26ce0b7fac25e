"""
Error hierarchy for the order book pipeline.

Errors are split into two families, mirroring how they are handled:
- TransientError: the stream or a fetch went wrong; recovery is possible by
  reconnecting or re-snapshotting.
- PermanentError: the input itself is bad; retrying the same input is useless.

Usage:
    from depthwatch.core.errors import ValidationError, is_retryable

    try:
        levels = normalize_levels(payload, decoder)
    except ValidationError as e:
        log.warning("message_dropped", error=str(e))
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Classification of error types for recovery decisions."""

    TRANSIENT = "transient"  # Transport drops, sequence gaps - recoverable
    PERMANENT = "permanent"  # Malformed data, bad settings - not recoverable
    UNKNOWN = "unknown"


class DepthwatchError(Exception):
    """Base exception for all depthwatch errors."""

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


class TransientError(DepthwatchError):
    """Error that may clear up on its own or after a resync."""

    category = ErrorCategory.TRANSIENT


class TransportError(TransientError):
    """Stream-level failure (connect refused, socket dropped)."""

    pass


class SnapshotFetchError(TransientError):
    """Initial REST snapshot could not be loaded.

    Surfaced to the caller as an `error` status; the coordinator does not
    retry on its own.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, cause)
        self.status_code = status_code


class OutOfOrderUpdate(TransientError):
    """A sequenced delta did not follow the book's last update id."""

    def __init__(self, expected: int, received: int):
        super().__init__(f"expected update {expected}, received {received}")
        self.expected = expected
        self.received = received


class PermanentError(DepthwatchError):
    """Error caused by bad input; retrying will not help."""

    category = ErrorCategory.PERMANENT


class ValidationError(PermanentError):
    """Malformed wire data (unparseable price or size, wrong level shape)."""

    pass


class InvalidConfiguration(PermanentError):
    """Display or feed configuration outside its allowed range."""

    pass


def is_retryable(error: Exception) -> bool:
    """Check if an error is worth another attempt.

    Args:
        error: The exception to check.

    Returns:
        True for transient errors, False otherwise.
    """
    if isinstance(error, DepthwatchError):
        return error.category == ErrorCategory.TRANSIENT
    return False
