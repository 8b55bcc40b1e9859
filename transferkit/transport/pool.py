"""
Bounded concurrency execution for transferkit.

This module runs many retryable operations, one per parameter set, while
keeping no more than a fixed number of them in flight. It is the engine behind
multipart uploads and downloads, where every part is one operation.
"""

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Any, TypeVar

from transferkit.config import validate_retry_settings
from transferkit.exceptions import ConfigurationError
from transferkit.transport.retry import Sleep, retry

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Workers left running after a failure; referenced here until they finish.
_detached: set[asyncio.Task] = set()


def _log_detached(task: asyncio.Task) -> None:
    _detached.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(f"Detached operation failed after run_all gave up: {exc}")


async def run_all(
    operation: Callable[..., Awaitable[T]],
    param_sets: Iterable[Sequence[Any]],
    max_concurrency: int,
    retry_count: int,
    min_delay: float,
    max_delay: float,
    *,
    cancel_on_failure: bool = False,
    sleep: Sleep = asyncio.sleep,
) -> list[T]:
    """Run ``operation(*params)`` for every parameter set with bounded concurrency.

    Each parameter set gets its own retry chain (attempt counter starting at 1).
    A worker that finishes an operation immediately admits the next pending
    parameter set, so at most ``max_concurrency`` operations are ever in flight.

    On the first failure that survives its retries no further parameter sets
    are admitted and that failure is raised. Operations already in flight keep
    running detached and their errors are only logged, unless
    ``cancel_on_failure`` is set, in which case they are cancelled and
    run_all returns control only after every one of them has stopped.

    Args:
        operation: Coroutine function performing one operation
        param_sets: Positional argument tuples, one per operation
        max_concurrency: Upper bound on operations in flight
        retry_count: Retries per operation after the first attempt
        min_delay: Minimum backoff delay in seconds
        max_delay: Maximum backoff delay in seconds
        cancel_on_failure: Cancel in-flight siblings after the first failure
        sleep: Coroutine used to wait out backoff delays

    Returns:
        Operation results in completion order

    Raises:
        ConfigurationError: If max_concurrency < 1 or retry settings are invalid
    """
    if max_concurrency < 1:
        raise ConfigurationError(
            "max_concurrency must be at least 1",
            details={"max_concurrency": max_concurrency},
        )
    validate_retry_settings(retry_count, min_delay, max_delay)

    queue: asyncio.Queue[Sequence[Any]] = asyncio.Queue()
    for params in param_sets:
        queue.put_nowait(params)
    if queue.empty():
        return []

    results: list[T] = []
    stopped = False

    async def worker() -> None:
        while not stopped:
            try:
                params = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            result = await retry(
                functools.partial(operation, *params),
                retry_count,
                min_delay,
                max_delay,
                sleep=sleep,
            )
            results.append(result)

    workers = [
        asyncio.create_task(worker())
        for _ in range(min(max_concurrency, queue.qsize()))
    ]
    logger.debug(f"run_all: {queue.qsize()} operations on {len(workers)} workers")

    pending: set[asyncio.Task] = set(workers)
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
            failures = [task.exception() for task in done if task.exception() is not None]
            if not failures:
                continue

            stopped = True
            for extra in failures[1:]:
                logger.warning(f"Concurrent operation also failed: {extra}")

            if cancel_on_failure:
                # Cancelled workers finish unwinding before the failure is raised.
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
            else:
                for task in pending:
                    _detached.add(task)
                    task.add_done_callback(_log_detached)
            logger.error(
                f"run_all stopped after {len(results)} completed operations: {failures[0]}"
            )
            raise failures[0]
    except asyncio.CancelledError:
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        raise

    return results
