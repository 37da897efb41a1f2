"""Generic career-page scraper driven by configured CSS selectors."""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from ingestion.connectors.base import BaseConnector, looks_like_internship
from ingestion.models.domain import FetchOptions, RawPosting, SourceKind
from ingestion.settings import ScrapeTarget

EXCLUDE_TERMS = ("senior", "staff", "principal", "director", "manager", "phd")


def _select_text(node: Tag, selector: Optional[str]) -> Optional[str]:
    if not selector:
        return None
    found = node.select_one(selector)
    if found is None:
        return None
    text = " ".join(found.get_text(" ").split())
    return text or None


def extract_entries(markup: str, target: ScrapeTarget) -> List[Dict[str, Any]]:
    """Extract listing entries from ``markup`` using the target's selectors."""
    soup = BeautifulSoup(markup, "html.parser")
    selectors = target.selectors
    entries: List[Dict[str, Any]] = []
    for node in soup.select(selectors.container):
        title = _select_text(node, selectors.title)
        if not title:
            continue
        link = node.select_one(selectors.link) if selectors.link else None
        if link is None and node.name == "a":
            link = node
        href = link.get("href") if link is not None else None
        entries.append(
            {
                "target": target.name,
                "title": title,
                "company": _select_text(node, selectors.company) or target.company,
                "location": _select_text(node, selectors.location),
                "description": _select_text(node, selectors.description) or "",
                "url": urljoin(target.url, href) if isinstance(href, str) and href else None,
            }
        )
    return entries


def is_wanted(entry: Dict[str, Any]) -> bool:
    title = (entry.get("title") or "").lower()
    if any(term in title for term in EXCLUDE_TERMS):
        return False
    return looks_like_internship(entry.get("title"), entry.get("description"))


class PageScraperConnector(BaseConnector):
    name = "page_scraper"
    source_kind = SourceKind.SCRAPED_PAGE
    required_settings = ("scrape_targets",)

    async def _fetch_raw(self, options: FetchOptions, errors: List[str]) -> List[Dict[str, Any]]:
        targets = {target.name: target for target in self._settings.scrape_targets}

        async def scrape(name: str) -> List[Dict[str, Any]]:
            target = targets[name]
            response = await self._request("GET", target.url, headers={"Accept": "text/html"})
            entries = extract_entries(response.text, target)
            wanted = [entry for entry in entries if is_wanted(entry)]
            self._logger.info(
                "fetch.scrape", extra={"target": name, "entries": len(entries), "internships": len(wanted)}
            )
            return wanted

        return await self._collect_each(list(targets), scrape, errors)

    def _to_raw_posting(self, item: Dict[str, Any]) -> RawPosting:
        return self._posting(
            item,
            url=item.get("url"),
            title=item.get("title"),
            company=item.get("company"),
            description=item.get("description") or "",
            location=item.get("location"),
            application_url=item.get("url"),
        )
