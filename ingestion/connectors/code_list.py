"""Curated internship lists hosted in code repositories (GitHub contents API)."""

from __future__ import annotations

import base64
import binascii
import json
import re
from typing import Any, Dict, List, Optional

from ingestion.connectors.base import BaseConnector, parse_timestamp
from ingestion.errors import ParseError
from ingestion.models.domain import FetchOptions, RawPosting, SourceKind
from ingestion.settings import CodeListRepo

HEADER_KEYWORDS = ("company", "position", "role", "location", "status", "posted", "deadline", "link")
CLOSED_MARKERS = ("🔒", "❌", "closed", "filled", "no longer available")
CONTINUATION_MARKER = "↳"

_MD_LINK = re.compile(r"\[([^\]]*)\]\(([^)]+)\)")
_HREF = re.compile(r'href="([^"]+)"')
_HTML_TAG = re.compile(r"<[^>]+>")
_SEPARATOR_ROW = re.compile(r"^\|?\s*:?-{2,}")


def clean_markdown(text: Optional[str]) -> str:
    if not text:
        return ""
    cleaned = _MD_LINK.sub(r"\1", text)
    cleaned = re.sub(r"\*\*([^*]+)\*\*", r"\1", cleaned)
    cleaned = re.sub(r"\*([^*]+)\*", r"\1", cleaned)
    cleaned = _HTML_TAG.sub(" ", cleaned.replace("<br>", ", ").replace("</br>", ", "))
    cleaned = cleaned.replace("&nbsp;", " ").replace("&amp;", "&").replace("🛂", "").replace("🇺🇸", "")
    return " ".join(cleaned.split()).strip(" ,")


def extract_url(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    for pattern, group in ((_HREF, 1), (_MD_LINK, 2)):
        match = pattern.search(text)
        if match and match.group(group).startswith("http"):
            return match.group(group)
    stripped = text.strip()
    return stripped if stripped.startswith("http") else None


def is_header_row(line: str) -> bool:
    lower = line.lower()
    return line.lstrip().startswith("|") and sum(keyword in lower for keyword in HEADER_KEYWORDS) >= 2


def split_row(line: str) -> List[str]:
    body = line.strip()
    if body.startswith("|"):
        body = body[1:]
    if body.endswith("|"):
        body = body[:-1]
    return [cell.strip() for cell in body.split("|")]


def extract_field(row: Dict[str, str], keys: tuple[str, ...]) -> Optional[str]:
    """Return the first non-empty cell whose header contains one of ``keys``."""
    for key in keys:
        for header, value in row.items():
            if key in header and value.strip():
                return value.strip()
    return None


def parse_markdown_table(content: str) -> List[Dict[str, str]]:
    """Parse the first markdown table that has a recognisable header row.

    Headers are reduced to lowercase letters; rows map onto them positionally and rows with
    a different cell count are dropped. Parsing stops at the first non-table line.
    """
    lines = content.splitlines()
    start = next((i for i, line in enumerate(lines) if is_header_row(line)), None)
    if start is None:
        return []
    headers = [re.sub(r"[^a-z]", "", cell.lower()) for cell in split_row(lines[start])]
    rows: List[Dict[str, str]] = []
    for line in lines[start + 1 :]:
        stripped = line.strip()
        if _SEPARATOR_ROW.match(stripped):
            continue
        if not stripped.startswith("|"):
            break
        cells = split_row(stripped)
        if len(cells) != len(headers):
            continue
        rows.append(dict(zip(headers, cells)))
    return rows


class CodeListConnector(BaseConnector):
    """Reads structured JSON listings or markdown tables from configured repositories."""

    name = "code_list"
    source_kind = SourceKind.CODE_LIST
    required_settings = ("code_list_repos",)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        token = self._settings.github_token
        if token is not None:
            headers["Authorization"] = f"Bearer {token.get_secret_value()}"
        return headers

    async def fetch_file(self, repo: CodeListRepo) -> str:
        base = self._settings.github_api_base.rstrip("/")
        url = f"{base}/repos/{repo.owner}/{repo.repo}/contents/{repo.path}"
        meta = await self._get_json(url, headers=self._headers())
        if not isinstance(meta, dict):
            raise ParseError(f"code_list: {repo.label} 는 파일이 아닙니다.", source=self.name)
        if meta.get("content") and meta.get("encoding") == "base64":
            try:
                return base64.b64decode(meta["content"]).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as exc:
                raise ParseError(f"code_list: {repo.label} base64 디코딩 실패", source=self.name) from exc
        download_url = meta.get("download_url")
        if not download_url:
            raise ParseError(f"code_list: {repo.label} 에 content/download_url 이 없습니다.", source=self.name)
        response = await self._request("GET", download_url)
        return response.text

    async def _fetch_raw(self, options: FetchOptions, errors: List[str]) -> List[Dict[str, Any]]:
        repos = {repo.label: repo for repo in self._settings.code_list_repos}

        async def fetch_repo(label: str) -> List[Dict[str, Any]]:
            repo = repos[label]
            content = await self.fetch_file(repo)
            items = self.parse_content(content, repo)
            self._logger.info("fetch.code_list", extra={"repo": label, "items": len(items)})
            return items

        return await self._collect_each(list(repos), fetch_repo, errors)

    def parse_content(self, content: str, repo: CodeListRepo) -> List[Dict[str, Any]]:
        stripped = content.lstrip()
        if stripped.startswith("["):
            try:
                listings = json.loads(stripped)
            except json.JSONDecodeError as exc:
                raise ParseError(f"code_list: {repo.label} JSON 파싱 실패", source=self.name) from exc
            return [dict(item, _kind="json", _repo=repo.label) for item in listings if self._keep_listing(item)]
        return self._rows_to_items(parse_markdown_table(content), repo)

    def _keep_listing(self, item: Any) -> bool:
        if not isinstance(item, dict):
            return False
        if item.get("is_visible") is False or item.get("active") is False:
            return False
        year = self._settings.code_list_target_year
        if year is not None:
            terms = " ".join(item.get("terms") or [])
            return str(year) in terms
        return True

    def _rows_to_items(self, rows: List[Dict[str, str]], repo: CodeListRepo) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        previous_company: Optional[str] = None
        for row in rows:
            company_cell = extract_field(row, ("company", "name")) or ""
            company = clean_markdown(company_cell)
            if company.startswith(CONTINUATION_MARKER) or not company:
                company = previous_company or ""
            else:
                previous_company = company
            status = extract_field(row, ("status", "state")) or ""
            text = " ".join(row.values()).lower()
            if any(marker in status.lower() or marker in text for marker in CLOSED_MARKERS):
                continue
            link_cell = extract_field(row, ("link", "url", "apply", "application")) or ""
            items.append(
                {
                    "_kind": "markdown",
                    "_repo": repo.label,
                    "company": company,
                    "title": clean_markdown(extract_field(row, ("position", "role", "title"))),
                    "location": clean_markdown(extract_field(row, ("location", "city", "place"))),
                    "url": extract_url(link_cell) or extract_url(company_cell),
                    "posted": extract_field(row, ("posted", "date", "created")),
                    "pay_rate": clean_markdown(extract_field(row, ("pay", "rate", "salary", "compensation"))) or None,
                    "status": status or None,
                }
            )
        return items

    def _to_raw_posting(self, item: Dict[str, Any]) -> RawPosting:
        if item.get("_kind") == "json":
            locations = item.get("locations") or []
            title = item.get("title")
            company = item.get("company_name")
            description = f"{title} at {company}"
            if item.get("sponsorship"):
                description += f". Sponsorship: {item['sponsorship']}"
            return self._posting(
                item,
                url=item.get("url"),
                title=title,
                company=company,
                description=description,
                location="; ".join(locations) if locations else None,
                posted_at=parse_timestamp(item.get("date_posted")),
                application_url=item.get("url"),
            )
        title = item.get("title")
        company = item.get("company")
        description = f"{title} at {company}"
        if item.get("pay_rate"):
            description += f". Pay: {item['pay_rate']}"
        return self._posting(
            item,
            url=item.get("url"),
            title=title,
            company=company,
            description=description,
            location=item.get("location") or None,
            posted_at=parse_timestamp(item.get("posted")),
            application_url=item.get("url"),
        )
