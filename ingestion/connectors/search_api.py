"""Full-text search API connector (Exa-compatible ``/search`` endpoint)."""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Any, Dict, List, Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationError, field_validator

from ingestion.connectors.base import BaseConnector, parse_timestamp
from ingestion.errors import ClientRequestError, ConnectorError, ParseError
from ingestion.models.domain import FetchOptions, RawPosting, SourceKind

EXCLUDED_DOMAINS = ["linkedin.com", "indeed.com", "glassdoor.com", "ziprecruiter.com"]

DOMAIN_COMPANIES: Dict[str, str] = {
    "careers.google.com": "Google",
    "google.com": "Google",
    "careers.microsoft.com": "Microsoft",
    "jobs.careers.microsoft.com": "Microsoft",
    "metacareers.com": "Meta",
    "careers.meta.com": "Meta",
    "jobs.apple.com": "Apple",
    "amazon.jobs": "Amazon",
    "jobs.netflix.com": "Netflix",
    "tesla.com": "Tesla",
    "jpmorgan.com": "JPMorgan Chase",
    "goldmansachs.com": "Goldman Sachs",
    "mckinsey.com": "McKinsey & Company",
}

# hosted job boards carry the company slug in the first path segment
_BOARD_HOSTS = ("boards.greenhouse.io", "job-boards.greenhouse.io", "jobs.lever.co", "jobs.ashbyhq.com")

_AT_COMPANY = re.compile(r"(?:\bat|@)\s+([A-Z][A-Za-z0-9&.\s]+?)(?:\s[-|–]|,|\(|$)")
_LOCATION_PATTERNS = [
    re.compile(r"(?:located in|based in|in)\s+([A-Z][a-zA-Z .]+,\s*(?:CA|NY|WA|TX|MA|IL|CO|GA|FL|NJ|PA|NC|VA|OR|DC))\b"),
    re.compile(r"\b([A-Z][a-zA-Z .]+,\s*(?:CA|NY|WA|TX|MA|IL|CO|GA|FL|NJ|PA|NC|VA|OR|DC))\b"),
    re.compile(r"\b(Remote|Work from home|Distributed)\b", re.IGNORECASE),
    re.compile(
        r"\b(San Francisco|New York|Seattle|Boston|Chicago|Austin|Denver|Atlanta|Los Angeles|"
        r"Mountain View|Redmond|Menlo Park|Palo Alto|Sunnyvale)\b",
        re.IGNORECASE,
    ),
]


class SearchQuery(BaseModel):
    """Validated search request. Invalid queries never reach the network."""

    query: str = Field(..., min_length=1, max_length=1000)
    num_results: int = Field(10, ge=1, le=100)
    type: Literal["neural", "keyword", "auto"] = "neural"
    include_domains: List[str] = Field(default_factory=list)
    exclude_domains: List[str] = Field(default_factory=list)
    start_published_date: Optional[str] = None

    @field_validator("query")
    @classmethod
    def _strip_query(cls, value: str) -> str:
        query = value.strip()
        if not query:
            raise ValueError("query는 공백일 수 없습니다.")
        return query

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "query": self.query,
            "type": self.type,
            "numResults": self.num_results,
            "contents": {"text": {"maxCharacters": 5000}, "summary": True},
        }
        if self.include_domains:
            payload["includeDomains"] = self.include_domains
        if self.exclude_domains:
            payload["excludeDomains"] = self.exclude_domains
        if self.start_published_date:
            payload["startPublishedDate"] = self.start_published_date
        return payload


def extract_company(url: str, title: str) -> Optional[str]:
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    if host in DOMAIN_COMPANIES:
        return DOMAIN_COMPANIES[host]
    if host in _BOARD_HOSTS:
        slug = parsed.path.strip("/").split("/")[0]
        if slug:
            return slug.replace("-", " ").title()
    match = _AT_COMPANY.search(title or "")
    if match:
        return match.group(1).strip()
    parts = host.split(".")
    if len(parts) >= 2 and parts[-2]:
        return parts[-2].capitalize()
    return None


def extract_location(text: str) -> Optional[str]:
    if not text:
        return None
    for pattern in _LOCATION_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


class SearchAPIConnector(BaseConnector):
    """Searches the web for internship postings with natural-language queries."""

    name = "search_api"
    source_kind = SourceKind.SEARCH_API
    required_settings = ("search_api_key",)

    def build_queries(self, options: FetchOptions) -> List[SearchQuery]:
        year = self._now().year
        cycles = [f"Summer {year + 1}", f"Fall {year}", f"Spring {year + 1}"]
        texts = [
            f"{cycle} internship for undergraduate students software engineering data science product apply"
            for cycle in cycles
        ]
        for company in options.companies:
            texts.append(f"{company} {cycles[0]} internship program application for students")
        if options.include_programs:
            texts.append(f"diversity internship program for underrepresented undergraduate students {year + 1}")
            texts.append(f"first-year sophomore early career internship program {year + 1} apply")
        start = (self._now() - timedelta(days=90)).strftime("%Y-%m-%dT%H:%M:%S.000Z")
        cfg = self._settings
        per_query = min(cfg.search_api_num_results, options.max_results or cfg.search_api_num_results)
        return [
            self.validate_query(
                query=text,
                num_results=per_query,
                type=cfg.search_api_type,
                exclude_domains=EXCLUDED_DOMAINS,
                start_published_date=start,
            )
            for text in texts
        ]

    @staticmethod
    def validate_query(**fields: Any) -> SearchQuery:
        try:
            return SearchQuery(**fields)
        except ValidationError as exc:
            raise ClientRequestError(f"잘못된 검색 쿼리: {exc.errors()[0]['msg']}", source="search_api") from exc

    async def search(self, query: SearchQuery) -> List[Dict[str, Any]]:
        key = self._settings.search_api_key
        headers = {"x-api-key": key.get_secret_value() if key else "", "Content-Type": "application/json"}
        url = self._settings.search_api_endpoint.rstrip("/") + "/search"
        response = await self._request("POST", url, json=query.to_payload(), headers=headers)
        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseError("검색 API 응답이 JSON이 아닙니다.", source=self.name) from exc
        results = payload.get("results") if isinstance(payload, dict) else None
        return list(results or [])

    async def _fetch_raw(self, options: FetchOptions, errors: List[str]) -> List[Dict[str, Any]]:
        queries = self.build_queries(options)
        items: List[Dict[str, Any]] = []
        last_error: Optional[ConnectorError] = None
        failures = 0
        for query in queries:
            try:
                items.extend(await self.search(query))
            except ConnectorError as exc:
                last_error = exc
                failures += 1
                errors.append(f"query '{query.query[:40]}': {exc}")
                self._logger.warning("search.query_failed", extra={"query": query.query, "error": str(exc)})
        if last_error is not None and failures == len(queries):
            raise last_error
        return items

    def _to_raw_posting(self, item: Dict[str, Any]) -> RawPosting:
        url = str(item.get("url") or "").strip()
        title = str(item.get("title") or "").strip()
        text = str(item.get("text") or item.get("summary") or "")
        return self._posting(
            item,
            url=url,
            title=title,
            company=extract_company(url, title) if url else None,
            description=text,
            location=extract_location(text) or extract_location(title),
            posted_at=parse_timestamp(item.get("publishedDate")),
            application_url=url or None,
        )
