"""Stages 2, 3 and 5: redirect quality, visible-text keyword scan, composite score."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence, Tuple
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Comment

from ingestion.models.domain import ValidationStatus


class RedirectQuality(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


HOMEPAGE_PATHS = ("", "/", "/home", "/index")
GENERIC_CAREER_PATHS = ("/careers", "/jobs", "/open-roles", "/open-positions", "/job-search", "/all-jobs")
LOGIN_MARKERS = ("/login", "/signin", "/auth")
BROWSE_MARKERS = ("/search", "/browse")
INVISIBLE_TAGS = ("script", "style", "noscript", "meta", "template")

DEAD_PHRASES = (
    "page not found",
    "job not found",
    "the page you are looking for doesn't exist",
    "the page you're looking for might be deleted",
    "the job you requested was not found",
    "job board you were viewing is no longer active",
    "this job is no longer active",
)
EXPIRED_PHRASES = (
    "no longer accepting applications",
    "no longer accepting",
    "applications closed",
    "applications are closed",
    "position filled",
    "position has been filled",
    "position is no longer available",
    "job posting is no longer available",
    "we are no longer hiring",
    "hiring complete",
    "posting has expired",
    "position has been removed",
    "job has been removed",
    "role filled",
    "opportunity filled",
)
USELESS_PAGE_PHRASES = (
    "search all jobs",
    "view openings",
    "browse jobs",
    "find jobs",
    "job search",
    "filter jobs",
    "all jobs",
    "open roles",
    "open positions",
    "view all jobs",
    "see all jobs",
)
INTERNSHIP_TERMS = ("intern", "student", "new grad", "co-op", "coop")
GOOD_PHRASES = (
    "internship",
    "intern",
    "summer",
    "apply",
    "apply now",
    "responsibilities",
    "qualifications",
    "job description",
    "submit application",
    "application deadline",
    "internship program",
    "co-op program",
    "undergraduate",
    "bachelor's degree",
    "bs degree",
    "class of 202",
    "graduating in 202",
    "apply for this position",
    "accepting applications",
)
GOOD_LISTING_MIN_MATCHES = 2

_DOCTORAL = re.compile(r"\b(?:phd|ph\.d|doctorate|doctoral)\b")
_MASTERS = re.compile(r"\b(?:master'?s degree|ms degree|mba|graduate degree|graduate intern)")
_UNDERGRAD = re.compile(r"\b(?:bachelor|bs degree|undergraduate|bs or ms|bs/ms)")

# score weights
REACHABLE = 3
GOOD_LISTING = 3
APPLY_KEYWORD = 4
LOW_REDIRECT = -3
EXPIRED = -5
HTTP_ERROR = -10
USELESS_PAGE = -3
OK_THRESHOLD = 5
MAYBE_THRESHOLD = 1

# fixed scores for short-circuited outcomes
DEAD_SCORE = -10
EXPIRED_SCORE = -5


def _path(url: str) -> str:
    return urlsplit(url).path.lower()


def is_generic_career_path(url: str) -> bool:
    path = _path(url).rstrip("/")
    return any(path.endswith(generic) for generic in GENERIC_CAREER_PATHS)


def analyze_redirects(chain: Sequence[str], final_url: str) -> Tuple[RedirectQuality, str]:
    if len(chain) <= 1:
        return RedirectQuality.HIGH, "리다이렉트 없음"
    path = _path(final_url)
    if path in HOMEPAGE_PATHS:
        return RedirectQuality.LOW, "홈페이지로 리다이렉트"
    if any(marker in path for marker in LOGIN_MARKERS):
        return RedirectQuality.MEDIUM, "로그인 페이지로 리다이렉트"
    if path.rstrip("/") in GENERIC_CAREER_PATHS:
        return RedirectQuality.LOW, "일반 채용 페이지로 리다이렉트"
    if any(marker in path for marker in BROWSE_MARKERS):
        return RedirectQuality.LOW, "검색/목록 페이지로 리다이렉트"
    return RedirectQuality.HIGH, "구체적인 페이지로 리다이렉트"


def visible_text(markup: str) -> str:
    """Lowercased page text with scripts, styles, metadata and comments removed."""
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(list(INVISIBLE_TAGS)):
        tag.decompose()
    for comment in soup.find_all(string=lambda node: isinstance(node, Comment)):
        comment.extract()
    return " ".join(soup.get_text(" ").split()).lower()


@dataclass(frozen=True)
class ContentScan:
    dead_phrases: List[str] = field(default_factory=list)
    expired_phrases: List[str] = field(default_factory=list)
    good_phrases: List[str] = field(default_factory=list)
    useless_page: bool = False
    graduate_only: bool = False

    @property
    def is_dead(self) -> bool:
        return bool(self.dead_phrases)

    @property
    def is_expired(self) -> bool:
        return bool(self.expired_phrases)

    @property
    def is_good_listing(self) -> bool:
        return len(self.good_phrases) >= GOOD_LISTING_MIN_MATCHES

    @property
    def has_apply_keyword(self) -> bool:
        return any("apply" in phrase for phrase in self.good_phrases)


def scan_content(markup: str, url: str) -> ContentScan:
    if is_generic_career_path(url):
        return ContentScan(useless_page=True)
    text = visible_text(markup)
    has_internship_terms = any(term in text for term in INTERNSHIP_TERMS)
    useless = not has_internship_terms and any(phrase in text for phrase in USELESS_PAGE_PHRASES)
    # doctoral wording always excludes; masters wording only without an undergraduate mention
    graduate_only = bool(_DOCTORAL.search(text)) or (bool(_MASTERS.search(text)) and not _UNDERGRAD.search(text))
    return ContentScan(
        dead_phrases=[phrase for phrase in DEAD_PHRASES if phrase in text],
        expired_phrases=[phrase for phrase in EXPIRED_PHRASES if phrase in text],
        good_phrases=[phrase for phrase in GOOD_PHRASES if phrase in text],
        useless_page=useless,
        graduate_only=graduate_only,
    )


def composite_score(http_code: int, reachable: bool, redirect: RedirectQuality, scan: ContentScan) -> int:
    score = 0
    if reachable and 200 <= http_code < 400:
        score += REACHABLE
    if scan.is_good_listing:
        score += GOOD_LISTING
    if scan.has_apply_keyword:
        score += APPLY_KEYWORD
    if redirect == RedirectQuality.LOW:
        score += LOW_REDIRECT
    if scan.is_expired:
        score += EXPIRED
    if http_code >= 400:
        score += HTTP_ERROR
    if scan.useless_page:
        score += USELESS_PAGE
    return score


def classify(score: int) -> ValidationStatus:
    if score >= OK_THRESHOLD:
        return ValidationStatus.OK
    if score >= MAYBE_THRESHOLD:
        return ValidationStatus.MAYBE_VALID
    return ValidationStatus.DEAD
