"""Error types raised by the sync engine.

Every error carries an `ErrorKind` so that per-item failures can be recorded
on the sync outcome, and a `retryable` flag consumed by the HTTP retry loop.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classification recorded on sync outcomes."""

    AUTHENTICATION = "authentication"
    NETWORK = "network"
    VALIDATION = "validation"
    API_LIMIT = "api_limit"
    INTERNAL = "internal"
    CONFIGURATION = "configuration"


class PriceSyncError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind = ErrorKind.INTERNAL
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retry_after = retry_after
        if retryable is not None:
            self.retryable = retryable


class AuthenticationError(PriceSyncError):
    """Credentials rejected or missing. Never retried."""

    kind = ErrorKind.AUTHENTICATION
    retryable = False


class NotAuthenticatedError(AuthenticationError):
    """A client method was called before `authenticate()` succeeded."""


class NetworkError(PriceSyncError):
    """Connection failure, timeout or server-side error."""

    kind = ErrorKind.NETWORK
    retryable = True


class ApiLimitError(NetworkError):
    """Rate limit hit (HTTP 429). Retried like any network error."""

    kind = ErrorKind.API_LIMIT


class ValidationError(PriceSyncError):
    """Invalid input for a single item; no network call is made."""

    kind = ErrorKind.VALIDATION
    retryable = False


class ConfigurationError(PriceSyncError):
    """Unsupported platform or malformed store configuration."""

    kind = ErrorKind.CONFIGURATION
    retryable = False


def error_kind(exc: BaseException, default: ErrorKind = ErrorKind.NETWORK) -> ErrorKind:
    """Kind of an arbitrary exception, `default` for foreign errors."""
    if isinstance(exc, PriceSyncError):
        return exc.kind
    return default


__all__ = [
    "ErrorKind",
    "PriceSyncError",
    "AuthenticationError",
    "NotAuthenticatedError",
    "NetworkError",
    "ApiLimitError",
    "ValidationError",
    "ConfigurationError",
    "error_kind",
]
