from __future__ import annotations

import asyncio
import base64
import json
from datetime import datetime, timezone
from typing import Any, Dict, List

import httpx
import pytest

from ingestion.connectors import CONNECTOR_CLASSES, select_connector_classes
from ingestion.connectors.ats import AshbyConnector, ATSConnector, GreenhouseConnector, LeverConnector
from ingestion.connectors.code_list import CodeListConnector, parse_markdown_table
from ingestion.connectors.page_scraper import PageScraperConnector
from ingestion.connectors.search_api import SearchAPIConnector, extract_company, extract_location
from ingestion.errors import ClientRequestError, TransientNetworkError
from ingestion.models.domain import FetchOptions, SourceKind
from ingestion.settings import Settings


def _settings(**overrides: Any) -> Settings:
    return Settings(database_dsn="sqlite:///:memory:", redis_url="redis://localhost:6379/0", **overrides)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _fetch(connector, options: FetchOptions | None = None):
    async def run():
        try:
            return await connector.fetch(options or FetchOptions())
        finally:
            if connector._client is not None:
                await connector._client.aclose()

    return asyncio.run(run())


GREENHOUSE_JOBS = {
    "jobs": [
        {
            "id": 1,
            "title": "Software Engineering Intern, Summer 2026",
            "absolute_url": "https://boards.greenhouse.io/stripe/jobs/1",
            "location": {"name": "San Francisco, CA"},
            "updated_at": "2025-09-01T12:00:00-04:00",
            "content": "&lt;p&gt;Build &lt;b&gt;payments&lt;/b&gt; APIs in Python.&lt;/p&gt;",
        },
        {
            "id": 2,
            "title": "Staff Software Engineer",
            "absolute_url": "https://boards.greenhouse.io/stripe/jobs/2",
            "location": {"name": "Remote"},
        },
    ]
}


def test_greenhouse_keeps_internships_and_strips_html():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/boards/stripe/jobs"
        assert request.url.params["content"] == "true"
        return httpx.Response(200, json=GREENHOUSE_JOBS)

    connector = GreenhouseConnector(_settings(greenhouse_boards={"Stripe": "stripe"}), client=_client(handler))
    result = _fetch(connector)

    assert not result.failed and result.errors == []
    assert [p.title for p in result.data] == ["Software Engineering Intern, Summer 2026"]
    posting = result.data[0]
    assert posting.company == "Stripe"
    assert posting.source_kind == SourceKind.ATS_FEED
    assert posting.location == "San Francisco, CA"
    assert posting.description == "Build payments APIs in Python."
    assert posting.posted_at == datetime(2025, 9, 1, 16, 0, tzinfo=timezone.utc)


def test_greenhouse_one_failing_board_is_partial_error():
    def handler(request: httpx.Request) -> httpx.Response:
        if "/broken/" in request.url.path:
            return httpx.Response(503)
        return httpx.Response(200, json=GREENHOUSE_JOBS)

    settings = _settings(greenhouse_boards={"Stripe": "stripe", "Broken": "broken"})
    result = _fetch(GreenhouseConnector(settings, client=_client(handler)))

    assert not result.failed
    assert len(result.data) == 1
    assert len(result.errors) == 1 and result.errors[0].startswith("Broken:")


def test_greenhouse_all_boards_failing_raises():
    connector = GreenhouseConnector(
        _settings(greenhouse_boards={"Stripe": "stripe"}),
        client=_client(lambda request: httpx.Response(500)),
    )

    with pytest.raises(TransientNetworkError):
        _fetch(connector)


def test_client_error_status_maps_to_client_request_error():
    connector = LeverConnector(
        _settings(lever_sites={"Plaid": "plaid"}),
        client=_client(lambda request: httpx.Response(404)),
    )

    with pytest.raises(ClientRequestError):
        _fetch(connector)


def test_lever_filters_on_commitment_and_title():
    postings = [
        {
            "text": "Backend Engineer",
            "categories": {"commitment": "Intern", "location": "New York, NY"},
            "hostedUrl": "https://jobs.lever.co/plaid/a",
            "applyUrl": "https://jobs.lever.co/plaid/a/apply",
            "createdAt": 1756684800000,
            "descriptionPlain": "Work on the ledger team.",
        },
        {
            "text": "Engineering Manager",
            "categories": {"commitment": "Full-time"},
            "hostedUrl": "https://jobs.lever.co/plaid/b",
        },
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["mode"] == "json"
        return httpx.Response(200, json=postings)

    result = _fetch(LeverConnector(_settings(lever_sites={"Plaid": "plaid"}), client=_client(handler)))

    assert len(result.data) == 1
    posting = result.data[0]
    assert posting.application_url == "https://jobs.lever.co/plaid/a/apply"
    assert posting.location == "New York, NY"
    assert posting.posted_at == datetime(2025, 9, 1, tzinfo=timezone.utc)


def test_ashby_skips_unlisted_jobs():
    payload = {
        "jobs": [
            {
                "title": "Research Engineer",
                "employmentType": "Intern",
                "isListed": True,
                "jobUrl": "https://jobs.ashbyhq.com/notion/1",
                "location": "Remote",
                "descriptionHtml": "<p>Help us build AI.</p>",
            },
            {"title": "Design Intern", "isListed": False, "jobUrl": "https://jobs.ashbyhq.com/notion/2"},
        ]
    }
    result = _fetch(
        AshbyConnector(
            _settings(ashby_boards={"Notion": "notion"}),
            client=_client(lambda request: httpx.Response(200, json=payload)),
        )
    )

    assert [p.url for p in result.data] == ["https://jobs.ashbyhq.com/notion/1"]
    assert result.data[0].description == "Help us build AI."


def test_ats_board_hooks_are_required():
    class HalfBoard(ATSConnector):
        name = "half"
        boards_setting = "greenhouse_boards"

        def _to_raw_posting(self, item):
            return self._posting(item, url=item.get("url"), title=item.get("title"), company=item.get("company"))

    with pytest.raises(TypeError, match="fetch_board"):
        HalfBoard(_settings())


def _code_list_settings(**overrides: Any) -> Settings:
    return _settings(
        code_list_repos=[{"owner": "acme", "repo": "interns", "path": "listings.json"}],
        **overrides,
    )


LISTINGS: List[Dict[str, Any]] = [
    {
        "company_name": "Datadog",
        "title": "Software Engineer Intern",
        "url": "https://careers.datadoghq.com/detail/1",
        "date_posted": 1756684800,
        "locations": ["New York, NY", "Boston, MA"],
        "terms": ["Summer 2026"],
        "active": True,
        "is_visible": True,
    },
    {
        "company_name": "Hidden Co",
        "title": "Intern",
        "url": "https://hidden.example/1",
        "terms": ["Summer 2026"],
        "active": True,
        "is_visible": False,
    },
    {
        "company_name": "Closed Co",
        "title": "Intern",
        "url": "https://closed.example/1",
        "terms": ["Summer 2026"],
        "active": False,
        "is_visible": True,
    },
    {
        "company_name": "Old Co",
        "title": "Intern",
        "url": "https://old.example/1",
        "terms": ["Summer 2025"],
        "active": True,
        "is_visible": True,
    },
]


def test_code_list_reads_base64_json_listings():
    encoded = base64.b64encode(json.dumps(LISTINGS).encode("utf-8")).decode("ascii")

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/acme/interns/contents/listings.json"
        assert request.headers["Authorization"] == "Bearer gh-token"
        return httpx.Response(200, json={"content": encoded, "encoding": "base64"})

    settings = _code_list_settings(github_token="gh-token", code_list_target_year=2026)
    result = _fetch(CodeListConnector(settings, client=_client(handler)))

    assert [p.company for p in result.data] == ["Datadog"]
    posting = result.data[0]
    assert posting.location == "New York, NY; Boston, MA"
    assert posting.posted_at == datetime(2025, 9, 1, tzinfo=timezone.utc)
    assert posting.source_kind == SourceKind.CODE_LIST


def test_code_list_out_of_range_epoch_skips_only_that_listing():
    good = dict(LISTINGS[0], _kind="json")
    corrupt = dict(LISTINGS[0], _kind="json", url="https://careers.datadoghq.com/detail/2", date_posted=10**20)

    async def provide(options):
        return [good, corrupt]

    result = _fetch(CodeListConnector(_code_list_settings(), provider=provide))

    assert not result.failed
    assert [p.url for p in result.data] == ["https://careers.datadoghq.com/detail/1"]
    assert result.metrics.total_found == 2
    assert result.metrics.skipped == 1


MARKDOWN = """
# Summer 2026 Internships

| Company | Role | Location | Application/Link | Date Posted |
| ------- | ---- | -------- | ---------------- | ----------- |
| **[Acme](https://acme.com)** | Software Engineering Intern | SF | <a href="https://acme.com/jobs/1">Apply</a> | Sep 01 |
| ↳ | Data Science Intern | NYC | <a href="https://acme.com/jobs/2">Apply</a> | Sep 02 |
| Globex | Product Intern | Remote | 🔒 | Sep 03 |

Footer text.
"""


def test_parse_markdown_table_maps_columns():
    rows = parse_markdown_table(MARKDOWN)

    assert len(rows) == 3
    assert rows[0]["role"] == "Software Engineering Intern"
    assert "applicationlink" in rows[0]


def test_code_list_markdown_via_download_url():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "raw.example.com":
            return httpx.Response(200, text=MARKDOWN)
        return httpx.Response(200, json={"download_url": "https://raw.example.com/acme/README.md"})

    result = _fetch(CodeListConnector(_code_list_settings(), client=_client(handler)))

    assert [(p.company, p.title) for p in result.data] == [
        ("Acme", "Software Engineering Intern"),
        ("Acme", "Data Science Intern"),
    ]
    assert result.data[1].url == "https://acme.com/jobs/2"
    assert result.data[0].location == "SF"


SCRAPE_HTML = """
<ul>
  <li class="job"><a href="/careers/123"><span class="title">Software Engineer Intern</span></a>
      <span class="loc">Austin, TX</span></li>
  <li class="job"><a href="/careers/124"><span class="title">Senior Software Engineer</span></a></li>
  <li class="job"><span class="title">Marketing Internship</span></li>
</ul>
"""


def test_page_scraper_resolves_links_and_filters():
    target = {
        "name": "acme",
        "url": "https://acme.com/careers",
        "company": "Acme",
        "selectors": {"container": "li.job", "title": ".title", "link": "a", "location": ".loc"},
    }
    connector = PageScraperConnector(
        _settings(scrape_targets=[target]),
        client=_client(lambda request: httpx.Response(200, text=SCRAPE_HTML)),
    )
    result = _fetch(connector)

    assert [p.url for p in result.data] == ["https://acme.com/careers/123"]
    assert result.data[0].location == "Austin, TX"
    # the internship without a link is parsed but skipped
    assert result.metrics.total_found == 2
    assert result.metrics.skipped == 1


def test_search_provider_maps_results_and_skips_incomplete():
    async def provider(options: FetchOptions) -> List[Dict[str, Any]]:
        return [
            {
                "url": "https://boards.greenhouse.io/scale-ai/jobs/77",
                "title": "Machine Learning Intern",
                "text": "Join us in San Francisco, CA this summer.",
                "publishedDate": "2025-09-10T00:00:00.000Z",
            },
            {"title": "No URL Intern"},
        ]

    connector = SearchAPIConnector(_settings(search_api_key="k"), provider=provider)
    result = _fetch(connector)

    assert len(result.data) == 1
    posting = result.data[0]
    assert posting.company == "Scale Ai"
    assert posting.location == "San Francisco, CA"
    assert result.metrics.skipped == 1


def test_search_company_and_location_extraction():
    assert extract_company("https://careers.google.com/jobs/1", "Intern") == "Google"
    assert extract_company("https://example.org/x", "Data Intern at Acme Robotics - Boston") == "Acme Robotics"
    assert extract_company("https://www.widgets.io/jobs", "Intern") == "Widgets"
    assert extract_location("Fully remote role") == "remote"
    assert extract_location("Office in Seattle, WA") == "Seattle, WA"


def test_search_query_builder_and_validation():
    connector = SearchAPIConnector(
        _settings(search_api_key="k", search_api_num_results=20),
        now=lambda: datetime(2025, 10, 1, tzinfo=timezone.utc),
    )
    queries = connector.build_queries(FetchOptions(max_results=5, include_programs=True, companies=["Stripe"]))

    assert len(queries) == 6
    assert "Summer 2026" in queries[0].query
    assert "Fall 2025" in queries[1].query
    assert queries[3].query.startswith("Stripe")
    assert all(q.num_results == 5 for q in queries)
    assert "linkedin.com" in queries[0].to_payload()["excludeDomains"]

    with pytest.raises(ClientRequestError):
        SearchAPIConnector.validate_query(query="   ")
    with pytest.raises(ClientRequestError):
        SearchAPIConnector.validate_query(query="intern", num_results=101)
    with pytest.raises(ClientRequestError):
        SearchAPIConnector.validate_query(query="x" * 1001)


def test_registry_filters_unconfigured_and_rejects_unknown():
    settings = _settings(greenhouse_boards={"Stripe": "stripe"})

    selected = [cls.name for cls in select_connector_classes(settings)]
    assert selected == ["code_list", "greenhouse"]
    assert set(CONNECTOR_CLASSES) == {"search_api", "code_list", "greenhouse", "lever", "ashby", "page_scraper"}

    with pytest.raises(ValueError):
        select_connector_classes(settings, ["monster"])
