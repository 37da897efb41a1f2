"""Applicant-tracking-system feed connectors (Greenhouse, Lever, Ashby)."""

from __future__ import annotations

import html
from abc import abstractmethod
from typing import Any, ClassVar, Dict, List, Optional

from bs4 import BeautifulSoup

from ingestion.connectors.base import BaseConnector, looks_like_internship, parse_timestamp
from ingestion.errors import ParseError
from ingestion.models.domain import FetchOptions, RawPosting, SourceKind

COMPANY_KEY = "_company"


def html_to_text(markup: Optional[str]) -> str:
    if not markup:
        return ""
    soup = BeautifulSoup(html.unescape(markup), "html.parser")
    return " ".join(soup.get_text(" ").split())


class ATSConnector(BaseConnector):
    """Shared flow: one request per configured company, keep internship-like postings."""

    source_kind = SourceKind.ATS_FEED
    boards_setting: ClassVar[str]

    def boards(self) -> Dict[str, str]:
        return dict(getattr(self._settings, self.boards_setting))

    async def _fetch_raw(self, options: FetchOptions, errors: List[str]) -> List[Dict[str, Any]]:
        boards = self.boards()

        async def fetch_company(company: str) -> List[Dict[str, Any]]:
            jobs = await self.fetch_board(boards[company])
            kept = [dict(job, **{COMPANY_KEY: company}) for job in jobs if self.is_internship(job)]
            self._logger.info(
                "fetch.board",
                extra={"source": self.name, "company": company, "jobs": len(jobs), "internships": len(kept)},
            )
            return kept

        return await self._collect_each(list(boards), fetch_company, errors)

    @abstractmethod
    async def fetch_board(self, slug: str) -> List[Dict[str, Any]]:
        """Every job on one company board."""

    @abstractmethod
    def is_internship(self, job: Dict[str, Any]) -> bool:
        """Whether a board job is an internship posting."""


class GreenhouseConnector(ATSConnector):
    name = "greenhouse"
    required_settings = ("greenhouse_boards",)
    boards_setting = "greenhouse_boards"
    base_url = "https://boards-api.greenhouse.io/v1/boards"

    async def fetch_board(self, slug: str) -> List[Dict[str, Any]]:
        payload = await self._get_json(f"{self.base_url}/{slug}/jobs", params={"content": "true"})
        if not isinstance(payload, dict) or not isinstance(payload.get("jobs"), list):
            raise ParseError(f"greenhouse: '{slug}' 응답에 jobs 배열이 없습니다.", source=self.name)
        return payload["jobs"]

    def is_internship(self, job: Dict[str, Any]) -> bool:
        return looks_like_internship(job.get("title"))

    def _to_raw_posting(self, item: Dict[str, Any]) -> RawPosting:
        location = item.get("location") or {}
        url = item.get("absolute_url")
        return self._posting(
            item,
            url=url,
            title=item.get("title"),
            company=item.get(COMPANY_KEY),
            description=html_to_text(item.get("content")),
            location=location.get("name") if isinstance(location, dict) else None,
            posted_at=parse_timestamp(item.get("updated_at")),
            application_url=url,
        )


class LeverConnector(ATSConnector):
    name = "lever"
    required_settings = ("lever_sites",)
    boards_setting = "lever_sites"
    base_url = "https://api.lever.co/v0/postings"

    async def fetch_board(self, slug: str) -> List[Dict[str, Any]]:
        payload = await self._get_json(f"{self.base_url}/{slug}", params={"mode": "json"})
        if not isinstance(payload, list):
            raise ParseError(f"lever: '{slug}' 응답이 배열이 아닙니다.", source=self.name)
        return payload

    def is_internship(self, job: Dict[str, Any]) -> bool:
        categories = job.get("categories") or {}
        return looks_like_internship(job.get("text"), categories.get("commitment"))

    def _to_raw_posting(self, item: Dict[str, Any]) -> RawPosting:
        categories = item.get("categories") or {}
        return self._posting(
            item,
            url=item.get("hostedUrl"),
            title=item.get("text"),
            company=item.get(COMPANY_KEY),
            description=item.get("descriptionPlain") or html_to_text(item.get("description")),
            location=categories.get("location"),
            posted_at=parse_timestamp(item.get("createdAt")),
            application_url=item.get("applyUrl") or item.get("hostedUrl"),
        )


class AshbyConnector(ATSConnector):
    name = "ashby"
    required_settings = ("ashby_boards",)
    boards_setting = "ashby_boards"
    base_url = "https://api.ashbyhq.com/posting-api/job-board"

    async def fetch_board(self, slug: str) -> List[Dict[str, Any]]:
        payload = await self._get_json(f"{self.base_url}/{slug}")
        if not isinstance(payload, dict) or not isinstance(payload.get("jobs"), list):
            raise ParseError(f"ashby: '{slug}' 응답에 jobs 배열이 없습니다.", source=self.name)
        return [job for job in payload["jobs"] if job.get("isListed", True)]

    def is_internship(self, job: Dict[str, Any]) -> bool:
        return job.get("employmentType") == "Intern" or looks_like_internship(job.get("title"))

    def _to_raw_posting(self, item: Dict[str, Any]) -> RawPosting:
        return self._posting(
            item,
            url=item.get("jobUrl"),
            title=item.get("title"),
            company=item.get(COMPANY_KEY),
            description=item.get("descriptionPlain") or html_to_text(item.get("descriptionHtml")),
            location=item.get("location"),
            posted_at=parse_timestamp(item.get("publishedAt")),
            application_url=item.get("applyUrl") or item.get("jobUrl"),
        )
