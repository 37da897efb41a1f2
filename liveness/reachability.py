"""Stage 1: is the URL reachable, and where does it end up?"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Tuple
from urllib.parse import urljoin

import httpx

from ingestion.utils.logging import get_logger
from liveness.settings import LivenessSettings

logger = get_logger(__name__)

HEAD_FALLBACK_CODES = (405, 501)


@dataclass(frozen=True)
class Reachability:
    reachable: bool
    http_code: int
    final_url: str
    redirect_chain: List[str] = field(default_factory=list)
    reason: str = ""


class TooManyRedirects(Exception):
    def __init__(self, chain: List[str]) -> None:
        super().__init__(f"리다이렉트가 {len(chain) - 1}회를 넘었습니다")
        self.chain = chain


async def follow_redirects(
    client: httpx.AsyncClient,
    url: str,
    *,
    max_redirects: int,
    timeout: float,
) -> Tuple[int, str, List[str]]:
    """HEAD with manual redirect following; switches to GET for the rest of the chain on 405/501.

    Returns ``(status, final_url, chain)`` where ``chain`` starts with ``url``.
    """
    chain = [url]
    current = url
    method = "HEAD"
    while True:
        response = await client.request(method, current, follow_redirects=False, timeout=timeout)
        if method == "HEAD" and response.status_code in HEAD_FALLBACK_CODES:
            method = "GET"
            response = await client.request(method, current, follow_redirects=False, timeout=timeout)
        location = response.headers.get("location")
        if not (response.is_redirect and location):
            return response.status_code, current, chain
        if len(chain) > max_redirects:
            raise TooManyRedirects(chain)
        current = urljoin(current, location)
        chain.append(current)


async def _probe(client: httpx.AsyncClient, url: str, settings: LivenessSettings) -> Reachability:
    try:
        status, final_url, chain = await follow_redirects(
            client, url, max_redirects=settings.max_redirects, timeout=settings.head_timeout_seconds
        )
    except TooManyRedirects as exc:
        return Reachability(False, 0, exc.chain[-1], exc.chain, str(exc))
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        # InvalidURL is not an HTTPError; a malformed stored URL is simply dead
        logger.info("validate.unreachable", extra={"url": url, "error": type(exc).__name__})
        return Reachability(False, 0, url, [url], f"네트워크 오류: {type(exc).__name__}")
    if status < 400:
        return Reachability(True, status, final_url, chain)
    return Reachability(False, status, final_url, chain, f"HTTP {status}")


async def check_reachability(
    client: httpx.AsyncClient,
    url: str,
    settings: LivenessSettings,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Reachability:
    """2xx/3xx reachable; 4xx dead; 5xx retried once; network errors dead with code 0."""
    result = await _probe(client, url, settings)
    if result.http_code >= 500:
        logger.info("validate.server_error_retry", extra={"url": url, "http_code": result.http_code})
        await sleep(settings.server_error_retry_delay_seconds)
        result = await _probe(client, url, settings)
    return result
