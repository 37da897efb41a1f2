"""Per-resource circuit breaker."""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

from ingestion.errors import CircuitOpenError, ClientRequestError
from ingestion.utils.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Closed -> Open -> Half-Open -> Closed state machine.

    - Closed: 실패마다 카운터 증가. ``failure/request > 0.5`` 이고 ``failure >= threshold`` 이면 Open.
    - Open: ``recovery_timeout`` 이 지날 때까지 네트워크 호출 없이 :class:`CircuitOpenError`.
    - Half-Open: 호출 허용. 연속 성공 ``half_open_successes`` 회면 Closed (카운터 초기화),
      실패 한 번이면 즉시 Open.

    상태 전이는 ``asyncio.Lock`` 안에서만 일어난다. 호출 자체는 잠금 밖에서 실행된다.
    """

    def __init__(
        self,
        name: str,
        *,
        failure_threshold: int = 5,
        recovery_timeout: float = 300.0,
        half_open_successes: int = 3,
        ignored_errors: Tuple[Type[BaseException], ...] = (ClientRequestError,),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_successes = half_open_successes
        self._ignored = ignored_errors
        self._clock = clock
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.request_count = 0
        self.last_failure_time: Optional[float] = None

    def _guard(self) -> asyncio.Lock:
        # process-wide breakers outlive a single event loop (one asyncio.run per task)
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        await self._before_call()
        try:
            result = await operation()
        except self._ignored:
            # upstream answered; a bad request says nothing about its health
            raise
        except Exception:
            await self._on_failure()
            raise
        await self._on_success()
        return result

    async def _before_call(self) -> None:
        async with self._guard():
            if self.state != CircuitState.OPEN:
                return
            elapsed = self._clock() - (self.last_failure_time or 0.0)
            if elapsed > self.recovery_timeout:
                self.state = CircuitState.HALF_OPEN
                self.success_count = 0
                logger.info("circuit.half_open", extra={"resource": self.name})
                return
            raise CircuitOpenError(
                f"circuit for {self.name} is open (retry in {self.recovery_timeout - elapsed:.0f}s)",
                source=self.name,
            )

    async def _on_success(self) -> None:
        async with self._guard():
            self.request_count += 1
            if self.state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.half_open_successes:
                    self._reset_counters()
                    self.state = CircuitState.CLOSED
                    logger.info("circuit.closed", extra={"resource": self.name})
                return
            self.success_count += 1
            self.failure_count = 0

    async def _on_failure(self) -> None:
        async with self._guard():
            self.request_count += 1
            self.failure_count += 1
            self.last_failure_time = self._clock()
            if self.state == CircuitState.HALF_OPEN:
                self._open()
                return
            if (
                self.state == CircuitState.CLOSED
                and self.failure_count >= self.failure_threshold
                and self.failure_count / self.request_count > 0.5
            ):
                self._open()

    def _open(self) -> None:
        self.state = CircuitState.OPEN
        self.success_count = 0
        logger.warning(
            "circuit.opened",
            extra={"resource": self.name, "failures": self.failure_count, "requests": self.request_count},
        )

    def _reset_counters(self) -> None:
        self.failure_count = 0
        self.success_count = 0
        self.request_count = 0
        self.last_failure_time = None

    def reset(self) -> None:
        """수동 초기화: 모든 카운터를 0으로 되돌리고 Closed 로 전환."""
        self._reset_counters()
        self.state = CircuitState.CLOSED

    def metrics(self) -> Dict[str, Any]:
        failure_rate = self.failure_count / self.request_count if self.request_count else 0.0
        return {
            "resource": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "request_count": self.request_count,
            "failure_rate": round(failure_rate, 3),
            "last_failure_time": self.last_failure_time,
        }
