"""Retry with exponential backoff for transient failures."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from ingestion.errors import TransientNetworkError
from ingestion.utils.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


@dataclass
class RetryPolicy:
    """Retries :class:`TransientNetworkError` up to ``max_retries`` times.

    Delays double from ``base_delay`` (1s, 2s, 4s, ...) and are capped at ``max_delay``.
    Anything else, including :class:`ClientRequestError` and :class:`CircuitOpenError`,
    propagates on the first occurrence.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    async def run(self, operation: Callable[[], Awaitable[T]], *, label: Optional[str] = None) -> T:
        attempt = 0
        while True:
            try:
                return await operation()
            except TransientNetworkError as exc:
                if attempt >= self.max_retries:
                    logger.warning(
                        "retry.exhausted",
                        extra={"resource": label, "attempts": attempt + 1, "error": str(exc)},
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    "retry.scheduled",
                    extra={"resource": label, "attempt": attempt + 1, "delay_s": delay, "error": str(exc)},
                )
                await self.sleep(delay)
                attempt += 1
