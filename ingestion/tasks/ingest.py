"""Celery task and core entry point for ingestion runs."""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Callable, Dict, Optional

import httpx
import redis
from celery import shared_task

from ingestion.connectors import build_connectors
from ingestion.db.models import JobStage, JobStatus
from ingestion.db.session import init_schema, session_scope
from ingestion.models.domain import IngestionOptions, IngestionResult
from ingestion.orchestrator import FetchOrchestrator
from ingestion.pipeline import IngestionPipeline
from ingestion.repositories.postings import CatalogStore, JobRunRecorder, SqlCatalogStore
from ingestion.resilience.protect import ResilienceRegistry, get_resilience_registry
from ingestion.services.deduplicator import InMemoryKeyStore, KeyStore, RedisKeyStore
from ingestion.settings import Settings, get_settings
from ingestion.utils.logging import get_logger
from processing.normalizer import NormalizationEngine
from processing.scoring import ScoringEngine

logger = get_logger(__name__)

# 테스트에서 교체 가능한 HTTP 클라이언트 팩토리 (MockTransport 주입용).
CLIENT_FACTORY: Callable[[Settings], httpx.AsyncClient] | None = None


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    if CLIENT_FACTORY is not None:
        return CLIENT_FACTORY(settings)
    return httpx.AsyncClient(
        headers={"User-Agent": settings.http_user_agent},
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        follow_redirects=True,
    )


def build_keystore(settings: Settings, trace_id: str) -> KeyStore:
    """Run-scoped Redis keystore when enabled and reachable; in-memory otherwise."""
    if not settings.dedup_use_redis:
        return InMemoryKeyStore()
    client = redis.Redis.from_url(settings.redis_url, socket_connect_timeout=0.5)
    try:
        client.ping()
    except redis.RedisError as exc:
        logger.info("dedup.keystore.memory", extra={"reason": "redis_ping_failed", "error": str(exc)})
        return InMemoryKeyStore()
    logger.info("dedup.keystore.redis", extra={"trace_id": trace_id})
    return RedisKeyStore(
        client,
        prefix=f"dedup:{trace_id}",
        default_ttl_seconds=int(settings.dedup_redis_ttl_seconds),
    )


async def run_ingestion(
    options: Optional[IngestionOptions] = None,
    *,
    settings: Settings | None = None,
    store: CatalogStore | None = None,
    registry: ResilienceRegistry | None = None,
    keystore: KeyStore | None = None,
    trace_id: str | None = None,
) -> IngestionResult:
    """Fetch from the selected sources and persist the deduplicated, scored postings."""
    config = settings or get_settings()
    options = options or IngestionOptions()
    trace_id = trace_id or uuid.uuid4().hex
    registry = registry or get_resilience_registry()
    store = store if store is not None else SqlCatalogStore(config)
    keystore = keystore if keystore is not None else build_keystore(config, trace_id)

    logger.info("ingest.start", extra={"trace_id": trace_id, "sources": options.sources, "dry_run": options.dry_run})
    async with build_http_client(config) as client:
        connectors = build_connectors(config, client=client, registry=registry, names=options.sources)
        pipeline = IngestionPipeline(
            FetchOrchestrator(connectors, default_max_results=config.default_max_results),
            normalizer=NormalizationEngine(config.internship_cycle_policy),
            scorer=ScoringEngine(),
            store=store,
            keystore=keystore,
            critical_sources=config.critical_sources,
            batch_size=config.ingestion_batch_size,
        )
        return await pipeline.run(options)


def _job_metrics(result: IngestionResult) -> Dict[str, Any]:
    return {
        "normalization": result.normalization_metrics.model_dump(),
        "database": result.database_metrics.model_dump(),
        "sources": {r.source: {"failed": r.failed, **r.metrics.model_dump()} for r in result.fetch_results},
        "execution_time_ms": result.execution_time_ms,
    }


def ingest_core(options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Core logic behind the Celery task; records a job run around one ingestion."""
    config = get_settings()
    parsed = IngestionOptions.model_validate(options or {})
    init_schema(config)
    trace_id = uuid.uuid4().hex
    with session_scope(config) as session, JobRunRecorder(
        session,
        stage=JobStage.INGEST,
        sources=parsed.sources,
        task_name="ingest_postings",
        trace_id=trace_id,
    ) as job:
        result = asyncio.run(run_ingestion(parsed, settings=config, trace_id=trace_id))
        job.metrics = _job_metrics(result)
        if not result.success:
            job.status = JobStatus.FAILED
            job.error_message = "; ".join(result.errors)[:512] or "critical source failed"
    return result.model_dump(mode="json")


@shared_task(name="ingestion.ingest_postings")
def ingest_postings(options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:  # pragma: no cover - wrapper
    return ingest_core(options)


def run_ingestion_sync(options: Optional[IngestionOptions] = None, **kwargs: Any) -> IngestionResult:
    """Blocking wrapper around :func:`run_ingestion` for scripts and callers without a loop."""
    return asyncio.run(run_ingestion(options, **kwargs))
