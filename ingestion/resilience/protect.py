"""The protected-call abstraction: rate limit + circuit breaker + retry."""

from __future__ import annotations

import asyncio
import time
from functools import lru_cache
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ingestion.resilience.circuit_breaker import CircuitBreaker
from ingestion.resilience.rate_limiter import RateLimiter
from ingestion.resilience.retry import RetryPolicy
from ingestion.settings import Settings, get_settings

T = TypeVar("T")


class ProtectedCall:
    """Wraps outbound calls to one upstream resource.

    Each attempt waits for a rate-limiter slot and passes through the breaker, so every
    retried failure is visible to the breaker and an open circuit stops the retry loop.
    """

    def __init__(self, name: str, *, breaker: CircuitBreaker, limiter: RateLimiter, retry: RetryPolicy) -> None:
        self.name = name
        self.breaker = breaker
        self.limiter = limiter
        self.retry = retry

    async def __call__(self, operation: Callable[[], Awaitable[T]]) -> T:
        async def attempt() -> T:
            async with self.limiter:
                return await self.breaker.call(operation)

        return await self.retry.run(attempt, label=self.name)


class ResilienceRegistry:
    """Owns one :class:`ProtectedCall` per resource for the lifetime of the process."""

    def __init__(
        self,
        settings: Settings,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._clock = clock
        self._sleep = sleep
        self._calls: Dict[str, ProtectedCall] = {}

    def get(self, name: str) -> ProtectedCall:
        existing = self._calls.get(name)
        if existing is not None:
            return existing
        cfg = self._settings
        limits = cfg.rate_limit_for(name)
        protected = ProtectedCall(
            name,
            breaker=CircuitBreaker(
                name,
                failure_threshold=cfg.circuit_failure_threshold,
                recovery_timeout=cfg.circuit_recovery_timeout_seconds,
                half_open_successes=cfg.circuit_half_open_successes,
                clock=self._clock,
            ),
            limiter=RateLimiter(
                name,
                max_concurrent=limits.max_concurrent,
                min_interval=limits.min_interval_seconds,
                clock=self._clock,
                sleep=self._sleep,
            ),
            retry=RetryPolicy(
                max_retries=cfg.retry_max_retries,
                base_delay=cfg.retry_base_delay_seconds,
                max_delay=cfg.retry_max_delay_seconds,
                sleep=self._sleep,
            ),
        )
        self._calls[name] = protected
        return protected

    def reset(self, name: Optional[str] = None) -> None:
        targets = [self._calls[name]] if name is not None and name in self._calls else self._calls.values()
        for protected in targets:
            protected.breaker.reset()

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {name: call.breaker.metrics() for name, call in self._calls.items()}


async def protect(protected: ProtectedCall, operation: Callable[[], Awaitable[T]]) -> T:
    """Run ``operation`` under ``protected``'s limiter, breaker and retry policy."""
    return await protected(operation)


@lru_cache()
def get_resilience_registry() -> ResilienceRegistry:
    return ResilienceRegistry(get_settings())


def reset_resilience_registry() -> None:
    """레지스트리 캐시를 초기화한다 (테스트 용도)."""
    get_resilience_registry.cache_clear()  # type: ignore[attr-defined]
