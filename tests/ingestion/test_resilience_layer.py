from __future__ import annotations

import asyncio

import pytest

from ingestion.errors import CircuitOpenError, ClientRequestError, TransientNetworkError
from ingestion.resilience import (
    CircuitBreaker,
    CircuitState,
    ProtectedCall,
    RateLimiter,
    ResilienceRegistry,
    RetryPolicy,
    protect,
)
from ingestion.settings import Settings


class _Flaky:
    """Fails with the given errors in order, then succeeds."""

    def __init__(self, *errors: Exception) -> None:
        self._errors = list(errors)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self._errors:
            raise self._errors.pop(0)
        return "done"


def test_retry_recovers_after_three_503s(clock):
    policy = RetryPolicy(max_retries=3, base_delay=1.0, sleep=clock.sleep)
    operation = _Flaky(*(TransientNetworkError("503", status_code=503) for _ in range(3)))

    assert asyncio.run(policy.run(operation)) == "done"
    assert operation.calls == 4
    assert clock.sleeps == [1.0, 2.0, 4.0]


def test_retry_never_retries_client_errors(clock):
    policy = RetryPolicy(max_retries=3, sleep=clock.sleep)
    operation = _Flaky(ClientRequestError("400", status_code=400))

    with pytest.raises(ClientRequestError):
        asyncio.run(policy.run(operation))
    assert operation.calls == 1
    assert clock.sleeps == []


def test_retry_exhaustion_surfaces_last_error(clock):
    policy = RetryPolicy(max_retries=2, sleep=clock.sleep)
    operation = _Flaky(*(TransientNetworkError(f"fail {i}") for i in range(5)))

    with pytest.raises(TransientNetworkError) as exc:
        asyncio.run(policy.run(operation))
    assert str(exc.value) == "fail 2"
    assert operation.calls == 3


def test_retry_delay_is_capped():
    policy = RetryPolicy(base_delay=1.0, max_delay=5.0)
    assert [policy.delay_for(n) for n in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_rate_limiter_spaces_call_starts(clock):
    limiter = RateLimiter("lever", max_concurrent=3, min_interval=1.5, clock=clock, sleep=clock.sleep)
    starts = []

    async def call():
        async with limiter:
            starts.append(clock.now)

    async def scenario():
        for _ in range(3):
            await call()

    asyncio.run(scenario())
    assert starts == [1000.0, 1001.5, 1003.0]


def test_rate_limiter_bounds_concurrency():
    limiter = RateLimiter("greenhouse", max_concurrent=2, min_interval=0)
    peak = 0

    async def call():
        nonlocal peak
        async with limiter:
            peak = max(peak, limiter.in_flight)
            await asyncio.sleep(0.01)

    async def scenario():
        await asyncio.gather(*(call() for _ in range(6)))

    asyncio.run(scenario())
    assert peak == 2
    assert limiter.in_flight == 0


def test_rate_limiter_rejects_zero_concurrency():
    with pytest.raises(ValueError):
        RateLimiter("x", max_concurrent=0)


def test_protected_call_stops_retrying_once_circuit_opens(clock):
    protected = ProtectedCall(
        "search_api",
        breaker=CircuitBreaker("search_api", failure_threshold=2, clock=clock),
        limiter=RateLimiter("search_api", max_concurrent=1, min_interval=0, clock=clock, sleep=clock.sleep),
        retry=RetryPolicy(max_retries=5, sleep=clock.sleep),
    )
    operation = _Flaky(*(TransientNetworkError("timeout") for _ in range(10)))

    with pytest.raises(CircuitOpenError):
        asyncio.run(protect(protected, operation))
    assert operation.calls == 2
    assert protected.breaker.state == CircuitState.OPEN


def test_registry_reuses_resources_and_snapshots(clock):
    settings = Settings(database_dsn="sqlite:///:memory:", redis_url="redis://localhost:6379/0")
    registry = ResilienceRegistry(settings, clock=clock, sleep=clock.sleep)

    first = registry.get("lever")
    assert registry.get("lever") is first
    assert first.limiter.max_concurrent == 2
    assert registry.get("search_api").limiter.max_concurrent == 3

    snapshot = registry.snapshot()
    assert set(snapshot) == {"lever", "search_api"}
    assert snapshot["lever"]["state"] == "closed"
