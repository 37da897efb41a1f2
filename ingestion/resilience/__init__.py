"""Resilience layer: circuit breaker, rate limiter and retry around outbound calls."""

from .circuit_breaker import CircuitBreaker, CircuitState  # noqa: F401
from .protect import (  # noqa: F401
    ProtectedCall,
    ResilienceRegistry,
    get_resilience_registry,
    protect,
    reset_resilience_registry,
)
from .rate_limiter import RateLimiter  # noqa: F401
from .retry import RetryPolicy  # noqa: F401

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "ProtectedCall",
    "RateLimiter",
    "ResilienceRegistry",
    "RetryPolicy",
    "get_resilience_registry",
    "protect",
    "reset_resilience_registry",
]
