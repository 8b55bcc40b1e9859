"""
Circuit breaker boundary for transferkit.

This module puts one network-issuing coroutine function behind a circuit
breaker so that calls fail fast once the downstream object store is judged
unhealthy. The open/half-open/closed state machine itself is pybreaker's;
the boundary only reports call outcomes to it and reads whether it is open.

One boundary instance serves every caller of the same network function, so
its judgement is process-wide. Construct it once and inject it into each
executor that needs it.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

import httpx
import pybreaker

from transferkit.config import BreakerConfig
from transferkit.exceptions import CircuitOpenError, TransportError
from transferkit.observability.metrics import TransferMetrics
from transferkit.transport.channel import TransferRequest

logger = logging.getLogger(__name__)

Action = Callable[[TransferRequest], Awaitable[httpx.Response]]


class CircuitState(Enum):
    """States of the circuit breaker, as observed from outside."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


_STATE_NAMES = {
    pybreaker.STATE_CLOSED: CircuitState.CLOSED,
    pybreaker.STATE_OPEN: CircuitState.OPEN,
    pybreaker.STATE_HALF_OPEN: CircuitState.HALF_OPEN,
}


def _state_name(state: Any) -> str:
    return getattr(state, "name", state) or "unknown"


class _StateListener(pybreaker.CircuitBreakerListener):
    """Logs breaker transitions and remembers when the breaker opened."""

    def __init__(self, name: str, metrics: TransferMetrics | None) -> None:
        self._name = name
        self._metrics = metrics
        self.opened_at: float | None = None

    def state_change(self, cb, old_state, new_state) -> None:
        new_name = _state_name(new_state)
        if new_name == pybreaker.STATE_OPEN:
            self.opened_at = time.monotonic()
            logger.warning(f"{self._name}: circuit breaker is now in OPEN state")
        elif new_name == pybreaker.STATE_HALF_OPEN:
            logger.info(f"{self._name}: circuit breaker is now in HALF OPEN state")
        elif new_name == pybreaker.STATE_CLOSED:
            logger.info(f"{self._name}: circuit breaker is now in CLOSE state")

        if self._metrics is not None:
            state = _STATE_NAMES.get(new_name, CircuitState.CLOSED)
            self._metrics.set_circuit_breaker_state(self._name, state.value)


def _succeed() -> None:
    return None


def _fail(exc: BaseException) -> None:
    raise exc


class CircuitBreakerBoundary:
    """Runs a network action behind a shared pybreaker circuit breaker.

    Transport failures and call timeouts are recorded as breaker failures.
    Every HTTP response, whatever its status, is recorded as a success; the
    retry layer decides what to do with 5xx answers.

    Example:
        channel = HttpChannel()
        boundary = CircuitBreakerBoundary(channel.send, config=BreakerConfig())
        response = await boundary.fire(TransferRequest(url))
    """

    def __init__(
        self,
        action: Action,
        breaker: pybreaker.CircuitBreaker | None = None,
        *,
        config: BreakerConfig | None = None,
        metrics: TransferMetrics | None = None,
    ) -> None:
        """Initialize the boundary.

        Args:
            action: Coroutine function issuing exactly one network call
            breaker: Existing pybreaker breaker; created from config when None
            config: Breaker settings (name, fail_max, reset/call timeouts)
            metrics: Optional metrics collector for state changes
        """
        self._config = config or BreakerConfig()
        self._action = action
        self._breaker = breaker or pybreaker.CircuitBreaker(
            fail_max=self._config.fail_max,
            reset_timeout=self._config.reset_timeout,
            name=self._config.name,
        )
        self._name = self._breaker.name or self._config.name
        self._listener = _StateListener(self._name, metrics)
        self._breaker.add_listener(self._listener)
        self._signal: asyncio.Event = asyncio.Event()
        self._shutdown = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def breaker(self) -> pybreaker.CircuitBreaker:
        """The underlying pybreaker instance."""
        return self._breaker

    @property
    def state(self) -> CircuitState:
        """Current state as reported by pybreaker."""
        return _STATE_NAMES.get(self._breaker.current_state, CircuitState.CLOSED)

    @property
    def is_open(self) -> bool:
        """True while calls are rejected without touching the network.

        Once the reset timeout has elapsed the next call is let through as
        pybreaker's half-open trial call.
        """
        if self._shutdown:
            return True
        if self._breaker.current_state != pybreaker.STATE_OPEN:
            return False
        if self._listener.opened_at is None:
            self._listener.opened_at = time.monotonic()
        return time.monotonic() - self._listener.opened_at < self._breaker.reset_timeout

    @property
    def signal(self) -> asyncio.Event:
        """The abort signal bound to calls started from now on."""
        return self._signal

    def abort(self) -> None:
        """Cancel every call bound to the outstanding signal and issue a fresh one."""
        self._signal.set()
        self._signal = asyncio.Event()

    def shutdown(self) -> None:
        """Abort outstanding calls and reject all further calls."""
        self._shutdown = True
        self.abort()
        logger.info(f"{self._name}: circuit breaker is now SHUTDOWN")

    def _record(self, exc: BaseException | None) -> None:
        try:
            if exc is None:
                self._breaker.call(_succeed)
            else:
                self._breaker.call(_fail, exc)
        except pybreaker.CircuitBreakerError:
            # Tripped by this failure, or another call reopened it meanwhile.
            logger.debug(f"{self._name}: outcome recorded while breaker is open")
        except Exception as recorded:
            if recorded is not exc:
                raise

    async def fire(self, request: TransferRequest) -> httpx.Response:
        """Run the action for ``request`` through the breaker.

        Raises:
            CircuitOpenError: If the breaker is open or shut down; no call is made
            TransportError: On network failure, breaker call timeout, or abort
        """
        if self._shutdown:
            raise CircuitOpenError(self._name, f"Circuit breaker '{self._name}' is shut down")
        if self.is_open:
            logger.debug(f"{self._name}: rejected {request.method} {request.url} (OPEN)")
            raise CircuitOpenError(self._name)

        signal = self._signal
        call = asyncio.ensure_future(self._action(request))
        aborted = asyncio.ensure_future(signal.wait())
        try:
            done, _ = await asyncio.wait(
                {call, aborted},
                timeout=self._config.call_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            aborted.cancel()
            if not call.done():
                call.cancel()
                # The action may hold caller resources (e.g. a file being read).
                await asyncio.wait({call})

        if call not in done:
            if aborted in done:
                error = TransportError(
                    f"{request.method} {request.url} aborted",
                    details={"breaker": self._name},
                )
            else:
                error = TransportError(
                    f"{request.method} {request.url} timed out in circuit breaker "
                    f"after {self._config.call_timeout}s",
                    cause=TimeoutError(),
                    details={"breaker": self._name},
                )
            self._record(error)
            raise error

        try:
            response = call.result()
        except Exception as e:
            self._record(e)
            raise

        self._record(None)
        return response
