"""Celery task for the catalog liveness sweep."""

from __future__ import annotations

import asyncio
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Dict, Sequence

from celery import shared_task

from ingestion.db.models import JobStage
from ingestion.db.session import init_schema, session_scope
from ingestion.models.domain import ValidationRecord
from ingestion.repositories.postings import JobRunRecorder, append_validation, select_postings_for_validation
from ingestion.settings import get_settings
from ingestion.utils.logging import get_logger
from liveness.pipeline import ValidationPipeline, build_http_client
from liveness.settings import LivenessSettings, get_liveness_settings

logger = get_logger(__name__)


async def _sweep(urls: Sequence[str], settings: LivenessSettings) -> Dict[str, ValidationRecord]:
    async with build_http_client(settings) as client:
        return await ValidationPipeline(client, settings).validate_many(urls)


def validate_catalog_core(limit: int = 100) -> Dict[str, int]:
    """Re-check active postings that are due and append one validation record per posting."""
    config = get_settings()
    liveness = get_liveness_settings()
    init_schema(config)
    trace_id = uuid.uuid4().hex
    cutoff = datetime.now(timezone.utc) - timedelta(hours=liveness.recheck_interval_hours)
    counts: Counter[str] = Counter()
    with session_scope(config) as session, JobRunRecorder(
        session,
        stage=JobStage.VALIDATE,
        task_name="validate_catalog",
        trace_id=trace_id,
    ) as job:
        postings = select_postings_for_validation(session, checked_before=cutoff, limit=limit)
        if not postings:
            logger.info("validate.nothing_due", extra={"trace_id": trace_id})
            job.metrics = {"checked": 0}
            return {"checked": 0}
        records = asyncio.run(_sweep([posting.url for posting in postings], liveness))
        for posting in postings:
            record = records[posting.url]
            append_validation(session, posting.id, record)
            counts[record.status.value] += 1
        summary = {"checked": len(postings), **counts}
        job.metrics = summary
    logger.info("validate.catalog_complete", extra={"trace_id": trace_id, **summary})
    return summary


@shared_task(name="ingestion.validate_catalog")
def validate_catalog(limit: int = 100) -> Dict[str, int]:  # pragma: no cover - wrapper
    return validate_catalog_core(limit)
