import asyncio
import json

import httpx
import pytest

pytest.importorskip("pytest_httpx")

from ingestion.connectors.search_api import SearchAPIConnector
from ingestion.errors import ClientRequestError
from ingestion.resilience import CircuitBreaker, ProtectedCall, RateLimiter, RetryPolicy
from ingestion.settings import Settings

ENDPOINT = "https://search.test/search"


def _settings() -> Settings:
    return Settings(
        database_dsn="sqlite:///:memory:",
        redis_url="redis://localhost:6379/0",
        search_api_key="search-key",
        search_api_endpoint="https://search.test",
    )


def _query(connector: SearchAPIConnector):
    return connector.validate_query(query="Summer 2026 software engineering internship", num_results=5)


def test_search_posts_payload_and_returns_results(httpx_mock):
    httpx_mock.add_response(
        method="POST",
        url=ENDPOINT,
        json={"results": [{"url": "https://jobs.lever.co/plaid/1", "title": "Software Engineer Intern"}]},
    )

    async def run():
        async with httpx.AsyncClient() as client:
            connector = SearchAPIConnector(_settings(), client=client)
            return await connector.search(_query(connector))

    results = asyncio.run(run())

    assert results[0]["title"] == "Software Engineer Intern"
    request = httpx_mock.get_requests()[0]
    assert request.headers["x-api-key"] == "search-key"
    body = json.loads(request.content)
    assert body["numResults"] == 5
    assert body["type"] == "neural"


def test_search_bad_request_is_not_retried(httpx_mock):
    httpx_mock.add_response(method="POST", url=ENDPOINT, status_code=400, json={"error": "bad query"})

    async def run():
        async with httpx.AsyncClient() as client:
            connector = SearchAPIConnector(_settings(), client=client)
            await connector.search(_query(connector))

    with pytest.raises(ClientRequestError) as exc:
        asyncio.run(run())
    assert exc.value.status_code == 400
    assert len(httpx_mock.get_requests()) == 1


def test_search_retries_transient_failure(httpx_mock, clock):
    httpx_mock.add_response(method="POST", url=ENDPOINT, status_code=503)
    httpx_mock.add_response(method="POST", url=ENDPOINT, json={"results": []})

    protected = ProtectedCall(
        "search_api",
        breaker=CircuitBreaker("search_api", clock=clock),
        limiter=RateLimiter("search_api", max_concurrent=1, min_interval=0, clock=clock, sleep=clock.sleep),
        retry=RetryPolicy(max_retries=1, sleep=clock.sleep),
    )

    async def run():
        async with httpx.AsyncClient() as client:
            connector = SearchAPIConnector(_settings(), client=client, protected=protected)
            return await connector.search(_query(connector))

    assert asyncio.run(run()) == []
    assert clock.sleeps == [1.0]
    assert len(httpx_mock.get_requests()) == 2
