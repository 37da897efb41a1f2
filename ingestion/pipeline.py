"""Ingestion pipeline: fetch, normalize, dedup, score, persist."""

from __future__ import annotations

import time
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from ingestion.errors import DuplicateError, ValidationError
from ingestion.models.domain import (
    DatabaseMetrics,
    FetchResult,
    IngestionOptions,
    IngestionResult,
    NormalizationMetrics,
    NormalizedPosting,
    ScoreSet,
)
from ingestion.orchestrator import FetchOrchestrator
from ingestion.repositories.postings import CatalogStore
from ingestion.services.deduplicator import Deduplicator, KeyStore, persisted_lookup
from ingestion.utils.logging import get_logger
from processing.normalizer import NormalizationEngine
from processing.scoring import ScoringEngine

logger = get_logger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _chunks(items: Sequence, size: int) -> Iterable[Sequence]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def run_succeeded(fetch_results: Sequence[FetchResult], critical_sources: Iterable[str]) -> bool:
    """All critical sources that ran must succeed; without any, at least one source must."""
    if not fetch_results:
        return False
    ran = {result.source: result for result in fetch_results}
    critical = [ran[name] for name in critical_sources if name in ran]
    if critical:
        return all(not result.failed for result in critical)
    return any(not result.failed for result in fetch_results)


class IngestionPipeline:
    """One ingestion run over a fixed set of connectors.

    A new :class:`Deduplicator` is created per :meth:`run`; nothing is shared between runs
    except the persisted catalog reached through ``store``.
    """

    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        *,
        normalizer: NormalizationEngine,
        scorer: Optional[ScoringEngine] = None,
        store: Optional[CatalogStore] = None,
        keystore: Optional[KeyStore] = None,
        critical_sources: Sequence[str] = ("search_api", "code_list"),
        batch_size: int = 50,
    ) -> None:
        self._orchestrator = orchestrator
        self._normalizer = normalizer
        self._scorer = scorer or ScoringEngine()
        self._store = store
        self._keystore = keystore
        self._critical_sources = tuple(critical_sources)
        self._batch_size = max(1, batch_size)

    async def run(self, options: Optional[IngestionOptions] = None) -> IngestionResult:
        options = options or IngestionOptions()
        started = time.monotonic()
        errors: List[str] = []

        fetch_results = await self._orchestrator.fetch(options.fetch_options())
        for result in fetch_results:
            errors.extend(f"{result.source}: {message}" for message in result.errors)

        norm_started = time.monotonic()
        norm_metrics = NormalizationMetrics()
        db_metrics = DatabaseMetrics()
        normalized = self._normalize_all(fetch_results, norm_metrics)

        persisted = None
        if options.skip_duplicates and self._store is not None and normalized:
            try:
                persisted = persisted_lookup(self._store.existing_hashes(p.canonical_hash for p in normalized))
            except SQLAlchemyError as exc:
                logger.warning("ingest.hash_lookup_failed", extra={"error": str(exc)[:200]})
                errors.append(f"database: 기존 해시 조회 실패 ({type(exc).__name__})")

        dedup = Deduplicator(self._keystore, persisted=persisted)
        admitted: List[NormalizedPosting] = []
        for posting in normalized:
            try:
                admitted.append(await dedup.admit(posting))
            except DuplicateError as exc:
                if exc.reason == "persisted":
                    db_metrics.skipped += 1
                else:
                    norm_metrics.duplicates_skipped += 1
        norm_metrics.execution_time_ms = _elapsed_ms(norm_started)

        scored = [(posting, self._scorer.score(posting)) for posting in admitted]
        store_failed = False
        if options.dry_run:
            logger.info("ingest.dry_run", extra={"admitted": len(scored)})
        elif self._store is not None and scored:
            store_failed = self._persist(scored, options.skip_duplicates, db_metrics, errors)

        success = run_succeeded(fetch_results, self._critical_sources) and not store_failed
        result = IngestionResult(
            success=success,
            fetch_results=fetch_results,
            normalization_metrics=norm_metrics,
            database_metrics=db_metrics,
            errors=errors,
            execution_time_ms=_elapsed_ms(started),
        )
        logger.info(
            "ingest.complete",
            extra={
                "success": success,
                "fetched": sum(len(r.data) for r in fetch_results),
                "normalized": norm_metrics.successful,
                "normalize_failed": norm_metrics.failed,
                "duplicates": norm_metrics.duplicates_skipped,
                "inserted": db_metrics.inserted,
                "updated": db_metrics.updated,
                "db_skipped": db_metrics.skipped,
                "db_errors": db_metrics.errors,
                "elapsed_ms": result.execution_time_ms,
            },
        )
        return result

    def _normalize_all(self, fetch_results: Sequence[FetchResult], metrics: NormalizationMetrics) -> List[NormalizedPosting]:
        normalized: List[NormalizedPosting] = []
        for result in fetch_results:
            for raw in result.data:
                metrics.total_processed += 1
                try:
                    normalized.append(self._normalizer.normalize(raw))
                except ValidationError as exc:
                    metrics.failed += 1
                    logger.info(
                        "normalize.rejected",
                        extra={"source": raw.source, "url": raw.url, "field": exc.field},
                    )
                    continue
                metrics.successful += 1
        return normalized

    def _persist(
        self,
        scored: Sequence[tuple[NormalizedPosting, ScoreSet]],
        skip_existing: bool,
        metrics: DatabaseMetrics,
        errors: List[str],
    ) -> bool:
        assert self._store is not None
        failed = False
        for batch in _chunks(scored, self._batch_size):
            try:
                saved = self._store.save(batch, skip_existing=skip_existing)
            except SQLAlchemyError as exc:
                logger.exception("ingest.batch_failed", extra={"batch_size": len(batch)})
                metrics.errors += len(batch)
                errors.append(f"database: 배치 저장 실패 ({type(exc).__name__})")
                failed = True
                continue
            metrics.inserted += saved.inserted
            metrics.updated += saved.updated
            metrics.skipped += saved.skipped
            metrics.errors += saved.errors
        if metrics.errors:
            errors.append(f"database: {metrics.errors}건 저장 실패")
        return failed
