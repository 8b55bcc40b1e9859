"""
Retry logic with exponential backoff for transferkit.

This module provides the retrying request executor, which repeats a request
on 5xx answers and transport failures using server-informed backoff, and a
generic retry() helper for higher-level operations. Each retry chain keeps
its own attempt counter, so backoff grows only across retries of the same
logical request.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from transferkit.config import validate_retry_settings
from transferkit.exceptions import (
    CircuitOpenError,
    ServerOverloadError,
    TransportError,
)
from transferkit.observability.metrics import TransferMetrics
from transferkit.transport.backoff import compute_delay, compute_delay_from_hint
from transferkit.transport.channel import HttpChannel, TransferRequest
from transferkit.transport.circuit import CircuitBreakerBoundary

logger = logging.getLogger(__name__)

T = TypeVar('T')

Sleep = Callable[[float], Awaitable[None]]

RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    TransportError,
    ServerOverloadError,
)


def is_server_error(status_code: int) -> bool:
    return 500 <= status_code < 600


class RetryingExecutor:
    """Issues a request and retries it on server overload or transport failure.

    When a circuit breaker boundary is given, every attempt goes through it
    and the loop stops as soon as the breaker is open. Without one, each
    attempt is sent straight through the channel under the request's own
    timeout.

    Example:
        executor = RetryingExecutor(channel, breaker=boundary)
        response = await executor.execute(request, 3, 15.0, 300.0)
    """

    def __init__(
        self,
        channel: HttpChannel,
        breaker: CircuitBreakerBoundary | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
        metrics: TransferMetrics | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            channel: Channel issuing the actual requests
            breaker: Shared circuit breaker boundary wrapping ``channel.send``
            sleep: Coroutine used to wait out backoff delays
            metrics: Optional metrics collector
        """
        self._channel = channel
        self._breaker = breaker
        self._sleep = sleep
        self._metrics = metrics

    @property
    def breaker(self) -> CircuitBreakerBoundary | None:
        return self._breaker

    @property
    def sleep(self) -> Sleep:
        return self._sleep

    async def _dispatch(self, request: TransferRequest) -> httpx.Response:
        if self._breaker is not None:
            return await self._breaker.fire(request)
        return await self._channel.send(request)

    def _breaker_open(self) -> bool:
        return self._breaker is not None and self._breaker.is_open

    async def execute(
        self,
        request: TransferRequest,
        retry_count: int = 0,
        min_delay: float = 0.0,
        max_delay: float = 0.0,
        attempt: int = 1,
    ) -> httpx.Response:
        """Execute ``request`` with retries.

        Args:
            request: Request to send; reused unchanged for every attempt
            retry_count: Retries left after the first attempt
            min_delay: Minimum backoff delay in seconds
            max_delay: Maximum backoff delay in seconds
            attempt: Attempt number of the first try (drives backoff growth)

        Returns:
            The first non-5xx response, or the last 5xx response once retries
            are exhausted

        Raises:
            ConfigurationError: If retries are requested without delay bounds
            CircuitOpenError: If the breaker is open
            TransportError: If the last attempt failed below HTTP
        """
        validate_retry_settings(retry_count, min_delay, max_delay)

        while True:
            try:
                response = await self._dispatch(request)
            except CircuitOpenError:
                logger.warning("[retry] Circuit breaker is OPEN.")
                raise
            except TransportError as e:
                if self._breaker_open():
                    logger.warning("[retry] Circuit breaker is OPEN.")
                    raise
                if retry_count <= 0:
                    logger.warning(f"[retry] Retry failed. {e}")
                    raise
                reason = "transport_error"
                delay = compute_delay(min_delay, max_delay, attempt)
            else:
                if retry_count <= 0 or not is_server_error(response.status_code):
                    return response
                reason = "server_error"
                retry_after = response.headers.get("Retry-After")
                if retry_after:
                    delay = compute_delay_from_hint(retry_after, min_delay, max_delay, attempt)
                else:
                    delay = compute_delay(min_delay, max_delay, attempt)
                await response.aclose()

            logger.warning(
                f"[retry] Retry attempt {attempt} after {int(delay * 1000)}ms "
                f"({reason}: {request.method} {request.url})"
            )
            if self._metrics is not None:
                self._metrics.record_retry(reason)

            await self._sleep(delay)
            retry_count -= 1
            attempt += 1


async def retry(
    fn: Callable[[], Awaitable[T]],
    retry_count: int,
    min_delay: float,
    max_delay: float,
    attempt: int = 1,
    *,
    retry_on: tuple[type[Exception], ...] = RETRYABLE_ERRORS,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Call ``fn`` until it succeeds or the retry budget is spent.

    Only exceptions listed in ``retry_on`` are retried; anything else,
    including CircuitOpenError and IntegrityError, propagates at once.

    Args:
        fn: Zero-argument coroutine function performing one attempt
        retry_count: Retries left after the first attempt
        min_delay: Minimum backoff delay in seconds
        max_delay: Maximum backoff delay in seconds
        attempt: Attempt number of the first try
        retry_on: Retryable exception types
        sleep: Coroutine used to wait out backoff delays

    Returns:
        Result of ``fn``

    Raises:
        The last exception once retries are exhausted
    """
    validate_retry_settings(retry_count, min_delay, max_delay)

    while True:
        try:
            return await fn()
        except Exception as e:
            if not isinstance(e, retry_on) or isinstance(e, CircuitOpenError):
                raise
            if retry_count <= 0:
                logger.warning(f"[retry] Retry failed. {type(e).__name__}: {e}")
                raise

            delay = compute_delay(min_delay, max_delay, attempt)
            logger.warning(
                f"[retry] Retry attempt {attempt} after {int(delay * 1000)}ms "
                f"({type(e).__name__}: {e})"
            )
            await sleep(delay)
            retry_count -= 1
            attempt += 1
