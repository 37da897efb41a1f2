from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from ingestion.db import JobRun, JobStage, JobStatus, Posting, init_schema, session_scope
from ingestion.models.domain import RawPosting, ScoreSet, SourceKind, ValidationRecord, ValidationStatus
from ingestion.repositories.postings import (
    JobRunRecorder,
    SqlCatalogStore,
    append_validation,
    get_existing_hashes,
    latest_validation,
    save_postings,
    select_postings_for_validation,
)
from ingestion.settings import CycleRule, Settings
from processing.normalizer import NormalizationEngine

NOW = datetime(2025, 10, 1, 12, 0, tzinfo=timezone.utc)
POLICY = {q: CycleRule(season="Summer", year_offset=1) for q in (1, 2, 3, 4)}
SCORES = ScoreSet(quality=60, competitiveness=70, learning=65, brand_value=40, compensation=40)


@pytest.fixture
def settings(tmp_path) -> Settings:
    config = Settings(database_dsn=f"sqlite:///{tmp_path / 'catalog.db'}", redis_url="redis://localhost:6379/0")
    init_schema(config)
    return config


def _posting(title: str, description: str = "Backend work in Python."):
    engine = NormalizationEngine(POLICY, now=lambda: NOW)
    return engine.normalize(
        RawPosting(
            source="greenhouse",
            source_kind=SourceKind.ATS_FEED,
            url=f"https://boards.greenhouse.io/acme/jobs/{title.lower().replace(' ', '-')}",
            title=title,
            company="Acme",
            description=description,
            location="Boston, MA",
            raw_payload={"id": title},
        )
    )


def _record(url: str, status: ValidationStatus, checked_at: datetime) -> ValidationRecord:
    return ValidationRecord(
        url=url,
        normalized_url=url,
        status=status,
        http_code=200 if status == ValidationStatus.OK else 404,
        final_url=url,
        redirect_chain=[url],
        score=10 if status == ValidationStatus.OK else -10,
        reason="test",
        checked_at=checked_at,
    )


def test_save_inserts_then_skips_or_updates(settings):
    items = [(_posting("Software Engineer Intern"), SCORES), (_posting("Data Science Intern"), SCORES)]

    with session_scope(settings) as session:
        first = save_postings(session, items)
    assert (first.inserted, first.skipped, first.updated, first.errors) == (2, 0, 0, 0)

    with session_scope(settings) as session:
        again = save_postings(session, items)
    assert (again.inserted, again.skipped) == (0, 2)

    changed = [(_posting("Software Engineer Intern", "Now with Kubernetes."), SCORES.model_copy(update={"quality": 90}))]
    with session_scope(settings) as session:
        updated = save_postings(session, changed, skip_existing=False)
    assert updated.updated == 1

    with session_scope(settings) as session:
        rows = session.execute(select(Posting)).scalars().all()
        assert len(rows) == 2
        entity = next(row for row in rows if row.normalized_title == "Software Engineer")
        assert entity.description == "Now with Kubernetes."
        assert entity.scores is not None and entity.scores.quality == 90
        assert entity.eligibility_years == ["Junior", "Senior"]
        assert entity.raw_payload == {"id": "Software Engineer Intern"}


def test_catalog_store_reports_existing_hashes(settings):
    posting = _posting("Software Engineer Intern")
    store = SqlCatalogStore(settings)

    assert store.existing_hashes([posting.canonical_hash]) == set()
    store.save([(posting, SCORES)], skip_existing=True)
    assert store.existing_hashes([posting.canonical_hash, "f" * 64]) == {posting.canonical_hash}

    with session_scope(settings) as session:
        assert get_existing_hashes(session, []) == set()


def test_validation_history_retires_and_reactivates(settings):
    with session_scope(settings) as session:
        save_postings(session, [(_posting("Software Engineer Intern"), SCORES)])
        posting = session.execute(select(Posting)).scalar_one()

        append_validation(session, posting.id, _record(posting.url, ValidationStatus.DEAD, NOW - timedelta(hours=2)))
        assert posting.is_active is False

        append_validation(session, posting.id, _record(posting.url, ValidationStatus.OK, NOW))
        assert posting.is_active is True

        latest = latest_validation(session, posting.id)
        assert latest is not None and latest.status == "ok"


def test_select_postings_due_for_validation(settings):
    titles = ["Never Checked Intern", "Fresh Intern", "Stale Intern", "Retired Intern"]
    with session_scope(settings) as session:
        save_postings(session, [(_posting(title), SCORES) for title in titles])
        by_title = {p.title: p for p in session.execute(select(Posting)).scalars()}

        append_validation(session, by_title["Fresh Intern"].id, _record("u1", ValidationStatus.OK, NOW - timedelta(hours=1)))
        append_validation(session, by_title["Stale Intern"].id, _record("u2", ValidationStatus.OK, NOW - timedelta(days=3)))
        append_validation(session, by_title["Retired Intern"].id, _record("u3", ValidationStatus.DEAD, NOW - timedelta(days=3)))

    with session_scope(settings) as session:
        due = select_postings_for_validation(session, checked_before=NOW - timedelta(hours=24))
        assert [p.title for p in due] == ["Never Checked Intern", "Stale Intern"]
        assert len(select_postings_for_validation(session, checked_before=NOW, limit=1)) == 1


def test_job_run_recorder_tracks_lifecycle(settings):
    with session_scope(settings) as session, JobRunRecorder(
        session, stage=JobStage.VALIDATE, task_name="validate_catalog", trace_id="t-1"
    ) as job:
        job.metrics = {"checked": 3}

    with pytest.raises(RuntimeError):
        with session_scope(settings) as session, JobRunRecorder(session, sources=["lever"], task_name="ingest") as job:
            raise RuntimeError("boom")

    with session_scope(settings) as session:
        runs = {run.task_name: run for run in session.execute(select(JobRun)).scalars()}
        assert runs["validate_catalog"].status == JobStatus.SUCCEEDED
        assert runs["validate_catalog"].metrics == {"checked": 3}
        assert runs["validate_catalog"].finished_at is not None
        assert runs["ingest"].status == JobStatus.FAILED
        assert runs["ingest"].stage == JobStage.INGEST
        assert runs["ingest"].error_message == "boom"
