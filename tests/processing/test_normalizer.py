from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ingestion.errors import ValidationError
from ingestion.models.domain import (
    CompensationType,
    EligibilityYear,
    RawPosting,
    Role,
    SourceKind,
    WorkType,
)
from ingestion.settings import CycleRule, Settings
from processing.compensation import parse_compensation, parse_deadline
from processing.normalizer import NormalizationEngine, normalize_company, normalize_location, normalize_title


def _engine() -> NormalizationEngine:
    settings = Settings(database_dsn="sqlite:///:memory:", redis_url="redis://localhost:6379/0")
    return NormalizationEngine(
        settings.internship_cycle_policy,
        now=lambda: datetime(2025, 10, 1, tzinfo=timezone.utc),
    )


def _raw(**overrides) -> RawPosting:
    fields = {
        "source": "greenhouse",
        "source_kind": SourceKind.ATS_FEED,
        "url": "https://boards.greenhouse.io/acme/jobs/1",
        "title": "Software Engineering Intern — Summer 2026",
        "company": "Acme Corp.",
        "location": "SF",
        "description": "Python, React. Open to sophomores and juniors.",
    }
    fields.update(overrides)
    return RawPosting(**fields)


def test_normalizes_typical_ats_posting():
    posting = _engine().normalize(_raw())

    assert posting.role == Role.SOFTWARE_ENGINEERING
    assert posting.normalized_location == "San Francisco, CA"
    assert posting.normalized_company == "Acme"
    assert posting.work_type == WorkType.PAID
    assert posting.eligibility_years == [EligibilityYear.SOPHOMORE, EligibilityYear.JUNIOR]
    assert {"Python", "React"} <= set(posting.skills)
    assert posting.internship_cycle == "Summer 2026"
    assert "Computer Science" in posting.relevant_majors
    assert 0 <= posting.quality_score <= 100
    assert 0 <= posting.completeness_score <= 100


def test_canonical_hash_ignores_case_and_source():
    engine = _engine()
    first = engine.normalize(_raw())
    second = engine.normalize(
        _raw(
            source="search_api",
            source_kind=SourceKind.SEARCH_API,
            url="https://example.com/other",
            title="software engineering intern — summer 2026",
            company="ACME Corp",
        )
    )
    other_city = engine.normalize(_raw(location="Seattle"))

    assert first.canonical_hash == second.canonical_hash
    assert len(first.canonical_hash) == 64
    assert first.canonical_hash != other_city.canonical_hash


@pytest.mark.parametrize("field", ["title", "company", "url"])
def test_empty_required_field_rejected(field):
    with pytest.raises(ValidationError) as exc:
        _engine().normalize(_raw(**{field: "   "}))
    assert exc.value.field == field


def test_defaults_when_text_is_sparse():
    posting = _engine().normalize(_raw(title="Intern", description="", location=None))

    assert posting.role == Role.OTHER
    assert posting.normalized_location == "Unspecified"
    assert posting.relevant_majors == ["Any"]
    assert posting.eligibility_years == [EligibilityYear.JUNIOR, EligibilityYear.SENIOR]
    assert posting.skills == []


def test_cycle_inferred_from_posting_quarter():
    engine = _engine()

    def cycle(month: int) -> str:
        posted = datetime(2025, month, 15, tzinfo=timezone.utc)
        return engine.normalize(_raw(title="Data Analyst Intern", description="", posted_at=posted)).internship_cycle

    assert cycle(2) == "Summer 2025"
    assert cycle(5) == "Fall 2025"
    assert cycle(8) == "Summer 2026"
    assert cycle(11) == "Summer 2026"


def test_cycle_policy_is_configurable():
    policy = {q: CycleRule(season="Spring", year_offset=1) for q in (1, 2, 3, 4)}
    engine = NormalizationEngine(policy, now=lambda: datetime(2025, 3, 1, tzinfo=timezone.utc))

    assert engine.normalize(_raw(title="Intern", description="")).internship_cycle == "Spring 2026"


def test_unpaid_and_hourly_work_type():
    engine = _engine()
    unpaid = engine.normalize(_raw(description="This is an unpaid internship for academic credit."))
    hourly = engine.normalize(_raw(description="Pay: $45/hour plus housing."))

    assert unpaid.work_type == WorkType.UNPAID
    assert unpaid.compensation.type == CompensationType.UNPAID
    assert hourly.work_type == WorkType.PAID
    assert hourly.compensation.min_amount == 45


def test_remote_and_program_flags():
    posting = _engine().normalize(
        _raw(location="Remote - US", description="Explore program for first-year students from underrepresented groups.")
    )

    assert posting.normalized_location == "Remote"
    assert posting.is_remote
    assert posting.is_program_specific
    assert EligibilityYear.FRESHMAN in posting.eligibility_years


def test_title_company_location_helpers():
    assert normalize_title("Intern - Backend Engineer") == "Backend Engineer"
    assert normalize_title("Data Science Internship") == "Data Science"
    assert normalize_company("Meta Platforms, Inc.") == "Meta"
    assert normalize_company("Globex LLC") == "Globex"
    assert normalize_location("Atlanta, GA") == "Atlanta, GA"
    assert normalize_location("NYC") == "New York, NY"
    assert normalize_location("TBD") == "Unspecified"


def test_compensation_and_deadline_parsing():
    salary = parse_compensation("Base salary $120k per year")
    assert salary.type == CompensationType.SALARY
    assert salary.hourly_equivalent == 60

    ranged = parse_compensation("$30 - $40 an hour")
    assert (ranged.min_amount, ranged.max_amount) == (30, 40)

    stipend = parse_compensation("A $8,000 stipend is provided.")
    assert stipend.type == CompensationType.STIPEND and stipend.min_amount == 8000

    assert parse_compensation("Competitive pay").type == CompensationType.UNKNOWN
    assert parse_deadline("Apply by March 15, 2026 to be considered") == datetime(2026, 3, 15, tzinfo=timezone.utc)
    assert parse_deadline("Rolling admissions") is None
