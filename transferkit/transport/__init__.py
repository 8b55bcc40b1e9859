"""
transferkit - Transport Layer

This module turns a single HTTP request into a dependable network operation.

Components:
    - HttpChannel: single-shot httpx request primitive with redacted logging
    - CircuitBreakerBoundary: pybreaker circuit breaker around the channel
    - RetryingExecutor: retries 5xx answers and transport failures with backoff
    - run_all: bounded concurrency over many retryable operations

Backoff honors server Retry-After hints in both delta-seconds and HTTP-date
form, always capped by the configured maximum delay.

Example:
    from transferkit.transport import HttpChannel, CircuitBreakerBoundary, RetryingExecutor

    async with HttpChannel() as channel:
        boundary = CircuitBreakerBoundary(channel.send)
        executor = RetryingExecutor(channel, breaker=boundary)
        response = await executor.execute(TransferRequest(url), 3, 15.0, 300.0)
"""

from .backoff import (
    compute_delay,
    compute_delay_from_hint,
    parse_retry_after,
    random_between,
)

from .channel import (
    HttpChannel,
    TransferRequest,
    BodyFactory,
    IDENTITY_HEADER,
)

from .circuit import (
    CircuitBreakerBoundary,
    CircuitState,
)

from .retry import (
    RetryingExecutor,
    RETRYABLE_ERRORS,
    retry,
)

from .pool import run_all

__all__ = [
    # Backoff
    "compute_delay",
    "compute_delay_from_hint",
    "parse_retry_after",
    "random_between",

    # Channel
    "HttpChannel",
    "TransferRequest",
    "BodyFactory",
    "IDENTITY_HEADER",

    # Circuit Breaker
    "CircuitBreakerBoundary",
    "CircuitState",

    # Retry
    "RetryingExecutor",
    "RETRYABLE_ERRORS",
    "retry",

    # Pool
    "run_all",
]
