"""
Custom exceptions for transferkit.

All exceptions inherit from TransferError for easy catching of library-specific errors.
Retry decisions in the transport layer are made by exception type, so each class
documents whether the library ever retries it.
"""

from typing import Optional


class TransferError(Exception):
    """
    Base exception for all transferkit errors.

    All library exceptions inherit from this class, allowing callers to catch
    any transfer-specific error with a single exception handler.
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigurationError(TransferError):
    """
    Raised when retry, concurrency or transfer settings are invalid.

    This includes:
    - retry_count set without retry_min_delay / retry_max_delay
    - Non-positive concurrency ceilings
    - Part plans exceeding the maximum part count
    - Invalid YAML/environment configuration

    Configuration errors are raised before any network call is attempted
    and are never retried.
    """

    pass


class CircuitOpenError(TransferError):
    """
    Raised when the circuit breaker is open and rejects a call.

    No network call is made and the retry loop stops immediately,
    regardless of the remaining retry budget.
    """

    def __init__(self, breaker: str, message: Optional[str] = None, details: Optional[dict] = None):
        self.breaker = breaker
        super().__init__(
            message or f"Circuit breaker '{breaker}' is OPEN",
            details={"breaker": breaker, **(details or {})},
        )


class TransportError(TransferError):
    """
    Raised when a request fails below the HTTP layer.

    This includes:
    - Connection refused / reset
    - Per-call timeouts
    - Calls aborted through the circuit breaker's abort signal
    - Stalled or truncated response streams

    Transport errors are retried up to the configured budget.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None, details: Optional[dict] = None):
        self.cause = cause
        merged = dict(details or {})
        if cause is not None:
            merged.setdefault("cause", type(cause).__name__)
        super().__init__(message, details=merged)


class HTTPStatusError(TransferError):
    """Base class for failures that carry a final HTTP status code."""

    def __init__(self, message: str, status_code: int, details: Optional[dict] = None):
        self.status_code = status_code
        super().__init__(message, details={"status": status_code, **(details or {})})


class ServerOverloadError(HTTPStatusError):
    """
    Raised when the server keeps answering 5xx after the executor's retries.

    The outer retry() helper retries this error with a fresh retry budget.
    """

    pass


class ClientError(HTTPStatusError):
    """
    Raised for 4xx responses that are not policy outcomes (304/412).

    Client errors are never retried.
    """

    pass


class IntegrityError(TransferError):
    """
    Raised when a completed transfer does not match what was expected.

    Examples:
        - Upload response ETag does not strong-match the local MD5
        - Download response ETag differs from If-Match without a 412
        - Server ignored the Range header and sent more bytes than the part

    The server has already committed a divergent result, so this is never retried.
    """

    def __init__(self, message: str, expected: Optional[str] = None, actual: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        details = {}
        if expected is not None or actual is not None:
            details = {"expected": expected, "actual": actual}
        super().__init__(message, details=details)
