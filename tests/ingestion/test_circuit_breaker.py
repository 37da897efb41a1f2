from __future__ import annotations

import asyncio

import pytest

from ingestion.errors import CircuitOpenError, ClientRequestError, TransientNetworkError
from ingestion.resilience import CircuitBreaker, CircuitState


def _breaker(clock, **overrides) -> CircuitBreaker:
    params = {"failure_threshold": 5, "recovery_timeout": 300.0, "half_open_successes": 3, "clock": clock}
    params.update(overrides)
    return CircuitBreaker("search_api", **params)


async def _ok():
    return "ok"


async def _boom():
    raise TransientNetworkError("upstream 503", status_code=503)


async def _fail_times(breaker: CircuitBreaker, times: int) -> None:
    for _ in range(times):
        with pytest.raises(TransientNetworkError):
            await breaker.call(_boom)


def test_opens_after_threshold_consecutive_failures(clock):
    breaker = _breaker(clock)

    async def scenario():
        await _fail_times(breaker, 4)
        assert breaker.state == CircuitState.CLOSED
        await _fail_times(breaker, 1)
        assert breaker.state == CircuitState.OPEN

    asyncio.run(scenario())
    assert breaker.failure_count == 5
    assert breaker.last_failure_time == clock.now


def test_open_circuit_rejects_without_calling(clock):
    breaker = _breaker(clock)
    calls = []

    async def tracked():
        calls.append(1)
        return "ok"

    async def scenario():
        await _fail_times(breaker, 5)
        with pytest.raises(CircuitOpenError):
            await breaker.call(tracked)

    asyncio.run(scenario())
    assert calls == []


def test_low_failure_rate_keeps_circuit_closed(clock):
    breaker = _breaker(clock)

    async def scenario():
        # successes reset the consecutive failure count in Closed
        for _ in range(10):
            await breaker.call(_ok)
            await _fail_times(breaker, 1)

    asyncio.run(scenario())
    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 1


def test_half_open_after_recovery_timeout_then_closes(clock):
    breaker = _breaker(clock)

    async def scenario():
        await _fail_times(breaker, 5)
        clock.now += 301
        assert await breaker.call(_ok) == "ok"
        assert breaker.state == CircuitState.HALF_OPEN
        await breaker.call(_ok)
        await breaker.call(_ok)

    asyncio.run(scenario())
    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 0
    assert breaker.success_count == 0
    assert breaker.request_count == 0


def test_failure_in_half_open_reopens(clock):
    breaker = _breaker(clock)

    async def scenario():
        await _fail_times(breaker, 5)
        clock.now += 301
        await breaker.call(_ok)
        await _fail_times(breaker, 1)
        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            await breaker.call(_ok)

    asyncio.run(scenario())


def test_still_open_before_recovery_timeout(clock):
    breaker = _breaker(clock)

    async def scenario():
        await _fail_times(breaker, 5)
        clock.now += 299
        with pytest.raises(CircuitOpenError):
            await breaker.call(_ok)

    asyncio.run(scenario())
    assert breaker.state == CircuitState.OPEN


def test_client_errors_do_not_count_as_failures(clock):
    breaker = _breaker(clock)

    async def bad_request():
        raise ClientRequestError("HTTP 400", status_code=400)

    async def scenario():
        for _ in range(10):
            with pytest.raises(ClientRequestError):
                await breaker.call(bad_request)

    asyncio.run(scenario())
    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 0


def test_manual_reset_and_metrics(clock):
    breaker = _breaker(clock)
    asyncio.run(_fail_times(breaker, 5))

    snapshot = breaker.metrics()
    assert snapshot["state"] == "open"
    assert snapshot["failure_rate"] == 1.0

    breaker.reset()
    assert breaker.state == CircuitState.CLOSED
    assert breaker.metrics()["request_count"] == 0


def test_breaker_survives_multiple_event_loops(clock):
    breaker = _breaker(clock, failure_threshold=2)
    asyncio.run(_fail_times(breaker, 1))
    asyncio.run(_fail_times(breaker, 1))
    assert breaker.state == CircuitState.OPEN
