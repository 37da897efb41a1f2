"""Repositories for persisting postings, scores, validation history and job runs."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ingestion.db.models import JobRun, JobStage, JobStatus, Posting, PostingScore, ValidationCheck
from ingestion.db.session import session_scope
from ingestion.models.domain import DatabaseMetrics, NormalizedPosting, ScoreSet, ValidationRecord, ValidationStatus
from ingestion.settings import Settings
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)

ScoredPosting = Tuple[NormalizedPosting, ScoreSet]

RETIRING_STATUSES = (ValidationStatus.DEAD, ValidationStatus.EXPIRED)


def get_existing_hashes(session: Session, hashes: Iterable[str]) -> set[str]:
    wanted = list(hashes)
    if not wanted:
        return set()
    stmt = select(Posting.canonical_hash).where(Posting.canonical_hash.in_(wanted))
    return {row[0] for row in session.execute(stmt)}


def _posting_columns(posting: NormalizedPosting) -> Dict[str, Any]:
    return {
        "source": posting.source,
        "source_kind": posting.source_kind.value,
        "url": posting.url,
        "application_url": posting.application_url,
        "title": posting.title,
        "company": posting.company,
        "description": posting.description,
        "location": posting.location,
        "normalized_title": posting.normalized_title,
        "normalized_company": posting.normalized_company,
        "normalized_location": posting.normalized_location,
        "role": posting.role.value,
        "skills": list(posting.skills),
        "relevant_majors": list(posting.relevant_majors),
        "eligibility_years": [year.value for year in posting.eligibility_years],
        "work_type": posting.work_type.value,
        "internship_cycle": posting.internship_cycle,
        "is_program_specific": posting.is_program_specific,
        "is_remote": posting.is_remote,
        "compensation": posting.compensation.model_dump(mode="json"),
        "posted_at": posting.posted_at,
        "application_deadline": posting.application_deadline,
        "quality_score": posting.quality_score,
        "completeness_score": posting.completeness_score,
        "raw_payload": posting.model_dump(mode="json")["raw_payload"],
    }


def _apply_scores(entity: Posting, scores: ScoreSet) -> None:
    values = scores.model_dump()
    if entity.scores is None:
        entity.scores = PostingScore(**values)
    else:
        for key, value in values.items():
            setattr(entity.scores, key, value)
        entity.scores.calculated_at = datetime.now(timezone.utc)


def save_postings(
    session: Session,
    items: Sequence[ScoredPosting],
    *,
    skip_existing: bool = True,
) -> DatabaseMetrics:
    """Upsert by canonical hash; each record runs in its own savepoint.

    A failing record is counted in ``errors`` and never rolls back the others.
    """
    metrics = DatabaseMetrics()
    for posting, scores in items:
        try:
            with session.begin_nested():
                stmt = select(Posting).where(Posting.canonical_hash == posting.canonical_hash)
                entity = session.execute(stmt).scalar_one_or_none()
                if entity is None:
                    entity = Posting(canonical_hash=posting.canonical_hash, is_active=True, **_posting_columns(posting))
                    _apply_scores(entity, scores)
                    session.add(entity)
                    metrics.inserted += 1
                elif skip_existing:
                    metrics.skipped += 1
                    continue
                else:
                    for key, value in _posting_columns(posting).items():
                        setattr(entity, key, value)
                    _apply_scores(entity, scores)
                    metrics.updated += 1
                session.flush()
        except SQLAlchemyError as exc:
            metrics.errors += 1
            logger.warning(
                "db.save_failed",
                extra={"canonical_hash": posting.canonical_hash, "error": str(exc)[:200]},
            )
    return metrics


def append_validation(session: Session, posting_id: uuid.UUID, record: ValidationRecord) -> ValidationCheck:
    """Append one check and retire or re-activate the posting accordingly."""
    entity = ValidationCheck(
        posting_id=posting_id,
        url=record.url,
        normalized_url=record.normalized_url,
        status=record.status.value,
        http_code=record.http_code,
        final_url=record.final_url,
        redirect_chain=list(record.redirect_chain),
        score=record.score,
        reason=record.reason[:512],
        checked_at=record.checked_at,
    )
    session.add(entity)
    posting = session.get(Posting, posting_id)
    if posting is not None:
        if record.status in RETIRING_STATUSES:
            posting.is_active = False
        elif record.status == ValidationStatus.OK:
            posting.is_active = True
    session.flush()
    return entity


def latest_validation(session: Session, posting_id: uuid.UUID) -> Optional[ValidationCheck]:
    stmt = (
        select(ValidationCheck)
        .where(ValidationCheck.posting_id == posting_id)
        .order_by(ValidationCheck.checked_at.desc())
        .limit(1)
    )
    return session.execute(stmt).scalar_one_or_none()


def select_postings_for_validation(
    session: Session,
    *,
    checked_before: datetime,
    limit: int = 100,
) -> List[Posting]:
    """Active postings never checked, or last checked before ``checked_before``; oldest first."""
    last_checked = (
        select(
            ValidationCheck.posting_id.label("posting_id"),
            func.max(ValidationCheck.checked_at).label("last_checked"),
        )
        .group_by(ValidationCheck.posting_id)
        .subquery()
    )
    stmt = (
        select(Posting)
        .outerjoin(last_checked, last_checked.c.posting_id == Posting.id)
        .where(Posting.is_active.is_(True))
        .where(or_(last_checked.c.last_checked.is_(None), last_checked.c.last_checked < checked_before))
        .order_by(last_checked.c.last_checked.is_not(None), last_checked.c.last_checked, Posting.created_at)
        .limit(limit)
    )
    return list(session.execute(stmt).scalars())


class CatalogStore(Protocol):
    """Persistence seam used by the ingestion pipeline."""

    def existing_hashes(self, hashes: Iterable[str]) -> set[str]: ...

    def save(self, items: Sequence[ScoredPosting], *, skip_existing: bool) -> DatabaseMetrics: ...


class SqlCatalogStore:
    """:class:`CatalogStore` backed by SQLAlchemy; one transaction per call."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings

    def existing_hashes(self, hashes: Iterable[str]) -> set[str]:
        with session_scope(self._settings) as session:
            return get_existing_hashes(session, hashes)

    def save(self, items: Sequence[ScoredPosting], *, skip_existing: bool) -> DatabaseMetrics:
        with session_scope(self._settings) as session:
            return save_postings(session, items, skip_existing=skip_existing)


class JobRunRecorder:
    """Context manager to record job run lifecycle."""

    def __init__(
        self,
        session: Session,
        *,
        stage: JobStage = JobStage.INGEST,
        sources: Optional[List[str]] = None,
        task_name: str,
        trace_id: str | None = None,
    ) -> None:
        self._session = session
        self._job = JobRun(
            stage=stage,
            status=JobStatus.RUNNING,
            sources=sources,
            task_name=task_name,
            trace_id=trace_id,
            started_at=datetime.now(timezone.utc),
        )

    @property
    def job(self) -> JobRun:
        return self._job

    def __enter__(self) -> JobRun:
        self._session.add(self._job)
        # RUNNING 상태를 먼저 커밋해 이후 실패해도 기록이 남도록 한다
        self._session.commit()
        return self._job

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        if exc is None and self._job.status == JobStatus.RUNNING:
            self._job.status = JobStatus.SUCCEEDED
        elif exc is not None:
            self._job.status = JobStatus.FAILED
            self._job.error_message = str(exc)[:512]
        self._job.finished_at = datetime.now(timezone.utc)
        self._session.add(self._job)
        try:
            self._session.commit()
        except SQLAlchemyError:
            logger.exception("job_run.commit_failed", extra={"job_id": str(self._job.id)})
            self._session.rollback()
            if exc is None:
                raise
