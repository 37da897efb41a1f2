"""Rule-based normalization of raw postings into canonical records."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional

from ingestion.errors import ValidationError
from ingestion.models.domain import (
    CompensationType,
    EligibilityYear,
    NormalizedPosting,
    RawPosting,
    Role,
    WorkType,
)
from ingestion.settings import CycleRule
from processing import text as textutil
from processing.compensation import parse_compensation, parse_deadline
from processing.vocabulary import (
    AGGREGATOR_DOMAINS,
    COMPANY_ALIASES,
    DEFAULT_ELIGIBILITY,
    LOCATION_ALIASES,
    MAJOR_TO_ROLES,
    PAID_KEYWORDS,
    PROGRAM_KEYWORDS,
    REMOTE_KEYWORDS,
    ROLE_KEYWORDS,
    SKILL_KEYWORDS,
    TOP_COMPANIES,
    UNPAID_KEYWORDS,
    UNSPECIFIED_LOCATIONS,
    YEAR_KEYWORDS,
)

MAX_SKILLS = 10
ANY_MAJOR = "Any"
UNSPECIFIED_LOCATION = "Unspecified"
REMOTE = "Remote"
# most postings that omit pay are still paid
DEFAULT_WORK_TYPE = WorkType.PAID

_CYCLE_RE = re.compile(r"\b(summer|fall|spring|winter)\s+(\d{4})\b", re.IGNORECASE)
_TITLE_INTERN_PREFIX = re.compile(r"^(?:intern|internship|co-?op)\b\s*[-:,]?\s*", re.IGNORECASE)
_TITLE_INTERN_SUFFIX = re.compile(r"\s*[-:,]?\s*\b(?:intern|internship|co-?op)s?$", re.IGNORECASE)
_TITLE_PUNCT = re.compile(r"[^\w\s+#&/]")
_COMPANY_SUFFIX = re.compile(
    r"[\s,]+(?:inc|llc|ltd|corp|corporation|company|co|plc|gmbh)\.?$", re.IGNORECASE
)


def canonical_hash(normalized_company: str, normalized_title: str, normalized_location: str) -> str:
    """Stable fingerprint of (company, title, location). Case-insensitive, no time or randomness."""
    key = "|".join(part.strip().casefold() for part in (normalized_company, normalized_title, normalized_location))
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def normalize_title(title: str) -> str:
    """Drop leading/trailing intern markers and punctuation; the season/year stays part of the title."""
    stripped = _TITLE_INTERN_SUFFIX.sub("", _TITLE_INTERN_PREFIX.sub("", title))
    stripped = textutil.collapse(_TITLE_PUNCT.sub(" ", stripped))
    return textutil.title_case(stripped or textutil.collapse(title))


def normalize_company(company: str) -> str:
    normalized = company
    while True:
        trimmed = _COMPANY_SUFFIX.sub("", normalized).strip(" ,.")
        if trimmed == normalized or not trimmed:
            break
        normalized = trimmed
    return COMPANY_ALIASES.get(normalized.casefold(), normalized)


def normalize_location(location: Optional[str]) -> str:
    if not location or location.strip().lower() in UNSPECIFIED_LOCATIONS:
        return UNSPECIFIED_LOCATION
    lowered = location.lower()
    if textutil.contains_any(lowered, REMOTE_KEYWORDS, whole_word=True):
        return REMOTE
    # whole-word alias match so "la" never fires inside "atlanta"
    for alias, canonical in LOCATION_ALIASES.items():
        if textutil.contains_keyword(lowered, alias, whole_word=True):
            return canonical
    return textutil.collapse(location.replace(" ,", ","))


class NormalizationEngine:
    """Turns one :class:`RawPosting` into one :class:`NormalizedPosting`.

    ``cycle_policy`` maps calendar quarters (1-4) of ``posted_at`` to the recruiting cycle the
    posting most likely targets when the text names no explicit season and year.
    """

    def __init__(
        self,
        cycle_policy: Mapping[int, CycleRule],
        *,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._cycle_policy = dict(cycle_policy)
        self._now = now

    def normalize(self, raw: RawPosting) -> NormalizedPosting:
        title = textutil.clean_title(raw.title)
        company = textutil.clean_company(raw.company)
        url = (raw.url or "").strip()
        for field, value in (("title", title), ("company", company), ("url", url)):
            if not value:
                raise ValidationError(f"필수 필드가 비어 있습니다: {field}", field=field)

        description = textutil.clean_description(raw.description)
        location = textutil.clean_location(raw.location)
        application_url = (raw.application_url or "").strip() or None
        haystack = f"{title} {description}".lower()

        normalized_title = normalize_title(title)
        normalized_company = normalize_company(company)
        normalized_location = normalize_location(location)
        role = self.classify_role(haystack)
        compensation = parse_compensation(" ".join(filter(None, [description, raw.raw_payload.get("pay_rate")])))

        return NormalizedPosting(
            source=raw.source,
            source_kind=raw.source_kind,
            url=url,
            title=title,
            company=company,
            description=description,
            location=location,
            posted_at=raw.posted_at,
            application_url=application_url,
            raw_payload=raw.raw_payload,
            normalized_title=normalized_title,
            normalized_company=normalized_company,
            normalized_location=normalized_location,
            canonical_hash=canonical_hash(normalized_company, normalized_title, normalized_location),
            role=role,
            skills=self.extract_skills(haystack),
            relevant_majors=self.relevant_majors(role, haystack),
            eligibility_years=self.eligibility_years(haystack),
            work_type=self.work_type(haystack, compensation.type),
            internship_cycle=self.internship_cycle(f"{title} {description}", raw.posted_at),
            is_program_specific=textutil.contains_any(haystack, PROGRAM_KEYWORDS),
            is_remote=normalized_location == REMOTE or textutil.contains_any(haystack, REMOTE_KEYWORDS[:2]),
            compensation=compensation,
            application_deadline=parse_deadline(description),
            quality_score=self.quality_score(title, company, description, location, url, application_url),
            completeness_score=self.completeness_score(
                [title, company, description, location, url, application_url, raw.posted_at]
            ),
        )

    @staticmethod
    def classify_role(haystack: str) -> Role:
        for role, keywords in ROLE_KEYWORDS:
            if textutil.contains_any(haystack, keywords):
                return role
        return Role.OTHER

    @staticmethod
    def extract_skills(haystack: str) -> List[str]:
        skills: List[str] = []
        for display, spellings in SKILL_KEYWORDS.items():
            if textutil.contains_any(haystack, spellings, whole_word=True):
                skills.append(display)
                if len(skills) == MAX_SKILLS:
                    break
        return skills

    @staticmethod
    def relevant_majors(role: Role, haystack: str) -> List[str]:
        majors: Dict[str, None] = {}
        for major, roles in MAJOR_TO_ROLES.items():
            if role in roles:
                majors[major] = None
        for major in MAJOR_TO_ROLES:
            if textutil.contains_keyword(haystack, major.lower(), whole_word=True):
                majors[major] = None
        return list(majors) or [ANY_MAJOR]

    @staticmethod
    def eligibility_years(haystack: str) -> List[EligibilityYear]:
        years = [year for year, keywords in YEAR_KEYWORDS if textutil.contains_any(haystack, keywords)]
        return years or list(DEFAULT_ELIGIBILITY)

    @staticmethod
    def work_type(haystack: str, compensation_type: CompensationType) -> WorkType:
        if compensation_type == CompensationType.UNPAID or textutil.contains_any(haystack, UNPAID_KEYWORDS):
            return WorkType.UNPAID
        if compensation_type != CompensationType.UNKNOWN or textutil.contains_any(haystack, PAID_KEYWORDS):
            return WorkType.PAID
        return DEFAULT_WORK_TYPE

    def internship_cycle(self, text: str, posted_at: Optional[datetime]) -> str:
        match = _CYCLE_RE.search(text)
        if match:
            return f"{match.group(1).capitalize()} {match.group(2)}"
        reference = posted_at or self._now()
        quarter = (reference.month - 1) // 3 + 1
        rule = self._cycle_policy[quarter]
        return f"{rule.season} {reference.year + rule.year_offset}"

    @staticmethod
    def quality_score(
        title: str,
        company: str,
        description: str,
        location: Optional[str],
        url: str,
        application_url: Optional[str],
    ) -> int:
        score = 0
        if len(title) > 10:
            score += 10
        if "intern" in title.lower():
            score += 10
        if len(company) > 2:
            score += 10
        if any(top in company.lower() for top in TOP_COMPANIES):
            score += 10
        if len(description) > 100:
            score += 10
        if len(description) > 500:
            score += 10
        if url.startswith("http"):
            score += 10
        if not any(domain in url.lower() for domain in AGGREGATOR_DOMAINS):
            score += 10
        if location and len(location) > 2:
            score += 10
        if application_url and application_url != url:
            score += 10
        return min(score, 100)

    @staticmethod
    def completeness_score(values: List[object]) -> int:
        filled = sum(1 for value in values if value not in (None, ""))
        return round(filled / len(values) * 100)
