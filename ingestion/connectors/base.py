"""Connector abstraction and HTTP helpers."""

from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, ClassVar, Dict, Iterable, List, Optional, Sequence, Tuple

import httpx
from dateutil import parser as dateparser
from pydantic import ValidationError as PydanticValidationError

from ingestion.errors import ClientRequestError, ConnectorError, ParseError, TransientNetworkError
from ingestion.models.domain import FetchMetrics, FetchOptions, FetchResult, RawPosting, SourceKind
from ingestion.resilience.protect import ProtectedCall
from ingestion.settings import Settings
from ingestion.utils.logging import get_logger

# Offline/test hook: returns raw item dicts instead of calling the upstream.
ProviderFn = Callable[[FetchOptions], Awaitable[List[Dict[str, Any]]]]

_INTERNSHIP_RE = re.compile(r"\b(?:interns?|internships?|co-?ops?)\b", re.IGNORECASE)


def looks_like_internship(*texts: Optional[str]) -> bool:
    return any(_INTERNSHIP_RE.search(t) for t in texts if t)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse epoch seconds/millis or a date string into an aware UTC datetime.

    Unparseable strings give ``None``; an out-of-range epoch raises :class:`ParseError`.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        seconds = value / 1000 if value > 10_000_000_000 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise ParseError(f"범위를 벗어난 타임스탬프: {value}") from exc
    else:
        try:
            parsed = dateparser.parse(str(value))
        except (ValueError, OverflowError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def raise_for_upstream(response: httpx.Response, source: str) -> None:
    """Map upstream status codes onto the error taxonomy."""
    status = response.status_code
    if status == 429 or status >= 500:
        raise TransientNetworkError(f"{source} 일시 오류: HTTP {status}", source=source, status_code=status)
    if status >= 400:
        raise ClientRequestError(f"{source} 요청 오류: HTTP {status}", source=source, status_code=status)


class BaseConnector(ABC):
    """Abstract source fetcher.

    Subclasses declare the settings they need in ``required_settings``; the registry only
    instantiates connectors whose settings are present. Every outbound request goes through
    :meth:`_request`, which applies the source's protected call (rate limit, breaker, retry).
    """

    name: ClassVar[str]
    source_kind: ClassVar[SourceKind]
    required_settings: ClassVar[Tuple[str, ...]] = ()

    def __init__(
        self,
        settings: Settings,
        *,
        client: Optional[httpx.AsyncClient] = None,
        protected: Optional[ProtectedCall] = None,
        provider: Optional[ProviderFn] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._settings = settings
        self._client = client
        self._protected = protected
        self._provider = provider
        self._now = now
        self._logger = get_logger(f"ingestion.connectors.{self.name}")

    @classmethod
    def is_configured(cls, settings: Settings) -> bool:
        return all(bool(getattr(settings, field, None)) for field in cls.required_settings)

    async def fetch(self, options: FetchOptions) -> FetchResult:
        """Fetch and parse raw records. Partial errors are reported, not raised."""
        errors: List[str] = []
        if self._provider is not None:
            items = await self._provider(options)
        else:
            items = await self._fetch_raw(options, errors)
        postings, skipped = self._parse_items(items)
        return FetchResult(
            source=self.name,
            data=postings,
            errors=errors,
            metrics=FetchMetrics(total_found=len(items), processed=len(postings), skipped=skipped),
        )

    def _parse_items(self, items: Iterable[Dict[str, Any]]) -> Tuple[List[RawPosting], int]:
        postings: List[RawPosting] = []
        skipped = 0
        for item in items:
            try:
                postings.append(self._to_raw_posting(item))
            except ParseError as exc:
                skipped += 1
                self._logger.warning("fetch.parse_skipped", extra={"source": self.name, "error": str(exc)})
        return postings, skipped

    @abstractmethod
    async def _fetch_raw(self, options: FetchOptions, errors: List[str]) -> List[Dict[str, Any]]:
        """Return raw item dicts from the upstream, appending recoverable errors to ``errors``."""

    @abstractmethod
    def _to_raw_posting(self, item: Dict[str, Any]) -> RawPosting:
        """Convert one raw item into a :class:`RawPosting` or raise :class:`ParseError`."""

    def _posting(self, item: Dict[str, Any], **fields: Any) -> RawPosting:
        for required in ("url", "title", "company"):
            if not fields.get(required):
                raise ParseError(f"{self.name}: '{required}' 필드가 없습니다.", source=self.name)
        try:
            return RawPosting(source=self.name, source_kind=self.source_kind, raw_payload=item, **fields)
        except PydanticValidationError as exc:
            raise ParseError(f"{self.name}: 레코드 형식 오류 ({exc.error_count()}건)", source=self.name) from exc

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._client is None:
            raise RuntimeError(f"{self.name}: HTTP 클라이언트가 설정되지 않았습니다.")
        client = self._client
        timeout = kwargs.pop("timeout", self._settings.http_timeout_seconds)

        async def _send() -> httpx.Response:
            try:
                response = await client.request(method, url, timeout=timeout, **kwargs)
            except httpx.TimeoutException as exc:
                raise TransientNetworkError(f"{self.name} 타임아웃: {url}", source=self.name) from exc
            except httpx.HTTPError as exc:
                raise TransientNetworkError(f"{self.name} 네트워크 오류: {exc}", source=self.name) from exc
            raise_for_upstream(response, self.name)
            return response

        if self._protected is None:
            return await _send()
        return await self._protected(_send)

    async def _get_json(self, url: str, **kwargs: Any) -> Any:
        response = await self._request("GET", url, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise ParseError(f"{self.name}: JSON 응답 파싱 실패 ({url})", source=self.name) from exc

    async def _collect_each(
        self,
        keys: Sequence[str],
        fetch_one: Callable[[str], Awaitable[List[Dict[str, Any]]]],
        errors: List[str],
    ) -> List[Dict[str, Any]]:
        """Run ``fetch_one`` per key concurrently; one failing key is a partial error.

        When every key fails the last error is raised so the whole source counts as failed.
        """
        results = await asyncio.gather(*(fetch_one(key) for key in keys), return_exceptions=True)
        items: List[Dict[str, Any]] = []
        last_error: Optional[ConnectorError] = None
        failures = 0
        for key, result in zip(keys, results):
            if isinstance(result, ConnectorError):
                last_error = result
                failures += 1
                errors.append(f"{key}: {result}")
                self._logger.warning("fetch.partial_error", extra={"source": self.name, "key": key, "error": str(result)})
                continue
            if isinstance(result, BaseException):
                raise result
            items.extend(result)
        if last_error is not None and failures == len(keys):
            raise last_error
        return items
