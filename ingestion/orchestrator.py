"""Runs source connectors concurrently and merges their output."""

from __future__ import annotations

import asyncio
import time
from typing import List, Optional, Sequence

from ingestion.connectors.base import BaseConnector
from ingestion.errors import CircuitOpenError, ConnectorError
from ingestion.models.domain import FetchMetrics, FetchOptions, FetchResult
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class FetchOrchestrator:
    """One task per connector; a failing connector never aborts the others.

    Cancelling :meth:`fetch` cancels every in-flight connector task.
    """

    def __init__(self, connectors: Sequence[BaseConnector], *, default_max_results: int = 50) -> None:
        self._connectors = list(connectors)
        self._default_max_results = default_max_results

    @property
    def sources(self) -> List[str]:
        return [connector.name for connector in self._connectors]

    async def fetch(self, options: Optional[FetchOptions] = None) -> List[FetchResult]:
        options = options or FetchOptions()
        started = time.monotonic()
        logger.info("fetch.start", extra={"sources": self.sources})
        results = list(await asyncio.gather(*(self._run_one(c, options) for c in self._connectors)))
        self._dedupe_urls(results)
        logger.info(
            "fetch.complete",
            extra={
                "sources": len(results),
                "failed_sources": [r.source for r in results if r.failed],
                "total_found": sum(r.metrics.total_found for r in results),
                "processed": sum(r.metrics.processed for r in results),
                "skipped": sum(r.metrics.skipped for r in results),
                "elapsed_ms": _elapsed_ms(started),
            },
        )
        return results

    async def _run_one(self, connector: BaseConnector, options: FetchOptions) -> FetchResult:
        started = time.monotonic()
        try:
            result = await connector.fetch(options)
        except CircuitOpenError as exc:
            logger.warning("fetch.source_degraded", extra={"source": connector.name, "error": str(exc)})
            return self._failed(connector.name, exc, started)
        except ConnectorError as exc:
            logger.warning("fetch.source_failed", extra={"source": connector.name, "error": str(exc)})
            return self._failed(connector.name, exc, started)
        except Exception as exc:
            logger.exception("fetch.source_crashed", extra={"source": connector.name})
            return self._failed(connector.name, exc, started)

        limit = options.max_results or self._default_max_results
        kept = result.data[:limit]
        metrics = FetchMetrics(
            total_found=result.metrics.total_found,
            processed=len(kept),
            skipped=result.metrics.total_found - len(kept),
            execution_time_ms=_elapsed_ms(started),
        )
        return result.model_copy(update={"data": kept, "metrics": metrics})

    @staticmethod
    def _failed(source: str, exc: BaseException, started: float) -> FetchResult:
        return FetchResult(
            source=source,
            data=[],
            errors=[f"{type(exc).__name__}: {exc}"],
            failed=True,
            metrics=FetchMetrics(execution_time_ms=_elapsed_ms(started)),
        )

    @staticmethod
    def _dedupe_urls(results: List[FetchResult]) -> None:
        """Keep the first posting per URL across all sources, in connector order."""
        seen: set[str] = set()
        for index, result in enumerate(results):
            unique = []
            for posting in result.data:
                key = posting.url.strip().rstrip("/").lower()
                if key in seen:
                    continue
                seen.add(key)
                unique.append(posting)
            dropped = len(result.data) - len(unique)
            if dropped:
                metrics = result.metrics.model_copy(
                    update={"processed": len(unique), "skipped": result.metrics.skipped + dropped}
                )
                results[index] = result.model_copy(update={"data": unique, "metrics": metrics})
