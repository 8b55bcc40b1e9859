"""
Tests for the circuit breaker boundary.
"""

import asyncio
import logging

import httpx
import pybreaker
import pytest

from transferkit.config import BreakerConfig
from transferkit.exceptions import CircuitOpenError, TransportError
from transferkit.transport.channel import TransferRequest
from transferkit.transport.circuit import CircuitBreakerBoundary, CircuitState

REQUEST = TransferRequest("http://store.test/bucket/key")


class FakeAction:
    """Stands in for HttpChannel.send."""

    def __init__(self, status: int = 200):
        self.status = status
        self.calls = 0
        self.fail = False
        self.hang = False

    async def __call__(self, request: TransferRequest) -> httpx.Response:
        self.calls += 1
        if self.hang:
            await asyncio.Event().wait()
        if self.fail:
            raise TransportError("connection refused")
        return httpx.Response(self.status)


def make_boundary(action, metrics=None, **overrides):
    settings = {"name": "test", "fail_max": 3, "reset_timeout": 30.0, "call_timeout": 5.0}
    settings.update(overrides)
    return CircuitBreakerBoundary(action, config=BreakerConfig(**settings), metrics=metrics)


class TestCircuitBreakerBoundary:
    """Test outcome recording and fail-fast behavior."""

    async def test_success_passes_response_through(self):
        action = FakeAction()
        boundary = make_boundary(action)

        response = await boundary.fire(REQUEST)

        assert response.status_code == 200
        assert boundary.state == CircuitState.CLOSED
        assert not boundary.is_open

    async def test_opens_after_consecutive_failures(self):
        action = FakeAction()
        action.fail = True
        boundary = make_boundary(action)

        for _ in range(3):
            with pytest.raises(TransportError):
                await boundary.fire(REQUEST)

        assert boundary.state == CircuitState.OPEN
        assert boundary.is_open

    async def test_open_breaker_rejects_without_calling(self):
        action = FakeAction()
        boundary = make_boundary(action)
        boundary.breaker.open()

        with pytest.raises(CircuitOpenError) as exc_info:
            await boundary.fire(REQUEST)

        assert action.calls == 0
        assert exc_info.value.breaker == "test"

    async def test_server_errors_count_as_successes(self):
        """5xx answers are the retry layer's concern, not the breaker's."""
        action = FakeAction(status=503)
        boundary = make_boundary(action)

        for _ in range(10):
            response = await boundary.fire(REQUEST)
            assert response.status_code == 503

        assert boundary.state == CircuitState.CLOSED

    async def test_success_resets_failure_count(self):
        action = FakeAction()
        boundary = make_boundary(action)

        for _ in range(2):
            action.fail = True
            with pytest.raises(TransportError):
                await boundary.fire(REQUEST)
            action.fail = False
            await boundary.fire(REQUEST)

        assert boundary.state == CircuitState.CLOSED

    async def test_call_timeout_is_a_failure(self):
        action = FakeAction()
        action.hang = True
        boundary = make_boundary(action, fail_max=1, call_timeout=0.05)

        with pytest.raises(TransportError, match="timed out"):
            await boundary.fire(REQUEST)

        assert boundary.is_open

    async def test_cool_down_lets_a_trial_call_through(self):
        action = FakeAction()
        boundary = make_boundary(action, reset_timeout=0.05)
        boundary.breaker.open()
        assert boundary.is_open

        await asyncio.sleep(0.1)

        assert not boundary.is_open
        response = await boundary.fire(REQUEST)
        assert response.status_code == 200
        assert boundary.state == CircuitState.CLOSED

    async def test_wraps_existing_breaker(self):
        breaker = pybreaker.CircuitBreaker(fail_max=1, reset_timeout=60, name="shared")
        action = FakeAction()
        action.fail = True
        boundary = CircuitBreakerBoundary(action, breaker)

        with pytest.raises(TransportError):
            await boundary.fire(REQUEST)

        assert boundary.name == "shared"
        assert breaker.current_state == pybreaker.STATE_OPEN


class TestAbortAndShutdown:
    """Test the abort signal and shutdown."""

    async def test_abort_cancels_outstanding_calls(self):
        action = FakeAction()
        action.hang = True
        boundary = make_boundary(action)

        calls = [asyncio.create_task(boundary.fire(REQUEST)) for _ in range(2)]
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        boundary.abort()

        for call in calls:
            with pytest.raises(TransportError, match="aborted"):
                await call

    async def test_aborted_call_has_unwound_before_fire_returns(self):
        unwound = []

        async def slow_to_unwind(request):
            try:
                await asyncio.Event().wait()
            finally:
                await asyncio.sleep(0.01)
                unwound.append(request.url)

        boundary = make_boundary(slow_to_unwind)
        call = asyncio.create_task(boundary.fire(REQUEST))
        await asyncio.sleep(0.01)
        boundary.abort()

        with pytest.raises(TransportError, match="aborted"):
            await call
        assert unwound == [REQUEST.url]

    async def test_cancelled_caller_waits_for_action(self):
        unwound = []

        async def slow_to_unwind(request):
            try:
                await asyncio.Event().wait()
            finally:
                await asyncio.sleep(0.01)
                unwound.append(request.url)

        boundary = make_boundary(slow_to_unwind)
        call = asyncio.create_task(boundary.fire(REQUEST))
        await asyncio.sleep(0.01)
        call.cancel()

        with pytest.raises(asyncio.CancelledError):
            await call
        assert unwound == [REQUEST.url]

    async def test_abort_issues_fresh_signal(self):
        action = FakeAction()
        boundary = make_boundary(action)
        old_signal = boundary.signal

        boundary.abort()

        assert old_signal.is_set()
        assert boundary.signal is not old_signal
        assert not boundary.signal.is_set()
        response = await boundary.fire(REQUEST)
        assert response.status_code == 200

    async def test_shutdown_rejects_later_calls(self):
        action = FakeAction()
        boundary = make_boundary(action)

        boundary.shutdown()

        assert boundary.is_open
        with pytest.raises(CircuitOpenError, match="shut down"):
            await boundary.fire(REQUEST)
        assert action.calls == 0


class TestObservability:
    """Test logging and metrics of state changes."""

    async def test_state_changes_are_logged(self, caplog):
        boundary = make_boundary(FakeAction())

        with caplog.at_level(logging.INFO, logger="transferkit.transport.circuit"):
            boundary.breaker.open()
            boundary.breaker.close()

        assert "test: circuit breaker is now in OPEN state" in caplog.text
        assert "test: circuit breaker is now in CLOSE state" in caplog.text

    async def test_state_gauge(self, transfer_metrics):
        boundary = make_boundary(FakeAction(), metrics=transfer_metrics)
        registry = transfer_metrics.registry

        boundary.breaker.open()
        assert registry.get_sample_value(
            "transferkit_circuit_breaker_state", {"breaker": "test"}
        ) == 1.0

        boundary.breaker.close()
        assert registry.get_sample_value(
            "transferkit_circuit_breaker_state", {"breaker": "test"}
        ) == 0.0
