"""Liveness validation of posting URLs.

Each check walks five stages: reachability, redirect quality, a visible-text keyword scan,
URL normalization and a composite score. Unambiguous dead/expired/excluded signals from
the first and third stages short-circuit before scoring.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from ingestion.models.domain import ValidationRecord, ValidationStatus
from ingestion.utils.logging import get_logger
from liveness.analysis import (
    DEAD_SCORE,
    EXPIRED_SCORE,
    analyze_redirects,
    classify,
    composite_score,
    scan_content,
)
from liveness.reachability import check_reachability
from liveness.settings import LivenessSettings, get_liveness_settings
from liveness.urls import normalize_url

logger = get_logger(__name__)

ACCEPT_HEADER = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

# 테스트에서 교체 가능한 HTTP 클라이언트 팩토리.
CLIENT_FACTORY: Callable[[LivenessSettings], httpx.AsyncClient] | None = None


def build_http_client(settings: LivenessSettings) -> httpx.AsyncClient:
    if CLIENT_FACTORY is not None:
        return CLIENT_FACTORY(settings)
    return httpx.AsyncClient(
        headers={"User-Agent": settings.user_agent, "Accept": ACCEPT_HEADER},
        timeout=httpx.Timeout(settings.get_timeout_seconds),
    )


class ValidationPipeline:
    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: Optional[LivenessSettings] = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._client = client
        self._settings = settings or get_liveness_settings()
        self._sleep = sleep
        self._now = now

    async def fetch_body(self, url: str) -> str:
        """Final page body; empty when the page cannot be fetched."""
        try:
            response = await self._client.get(url, follow_redirects=True, timeout=self._settings.get_timeout_seconds)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.info("validate.body_unavailable", extra={"url": url, "error": type(exc).__name__})
            return ""
        if not response.is_success:
            return ""
        return response.text

    def _record(
        self,
        url: str,
        status: ValidationStatus,
        *,
        http_code: int,
        final_url: str,
        chain: List[str],
        score: int,
        reason: str,
    ) -> ValidationRecord:
        return ValidationRecord(
            url=url,
            normalized_url=normalize_url(url),
            status=status,
            http_code=http_code,
            final_url=final_url,
            redirect_chain=chain,
            score=score,
            reason=reason,
            checked_at=self._now(),
        )

    async def validate_url(self, url: str) -> ValidationRecord:
        started = time.monotonic()
        record = await self._validate(url)
        logger.info(
            "validate.complete",
            extra={
                "url": url,
                "status": record.status.value,
                "http_code": record.http_code,
                "score": record.score,
                "reason": record.reason,
                "elapsed_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return record

    async def _validate(self, url: str) -> ValidationRecord:
        reach = await check_reachability(self._client, url, self._settings, sleep=self._sleep)
        common = {"http_code": reach.http_code, "final_url": reach.final_url, "chain": list(reach.redirect_chain)}
        if not reach.reachable:
            return self._record(
                url, ValidationStatus.DEAD, score=DEAD_SCORE, reason=f"도달 불가: {reach.reason}", **common
            )

        redirect_quality, redirect_reason = analyze_redirects(reach.redirect_chain, reach.final_url)
        scan = scan_content(await self.fetch_body(reach.final_url), reach.final_url)

        if scan.is_dead:
            return self._record(
                url, ValidationStatus.DEAD, score=DEAD_SCORE, reason=f"공고 없음: {scan.dead_phrases[0]}", **common
            )
        if scan.useless_page:
            return self._record(
                url, ValidationStatus.DEAD, score=DEAD_SCORE, reason="개별 공고가 아닌 일반 채용 페이지", **common
            )
        if scan.is_expired:
            return self._record(
                url, ValidationStatus.EXPIRED, score=EXPIRED_SCORE, reason=f"마감: {scan.expired_phrases[0]}", **common
            )
        if scan.graduate_only:
            return self._record(
                url, ValidationStatus.DEAD, score=DEAD_SCORE, reason="대학원생 전용 포지션", **common
            )

        score = composite_score(reach.http_code, reach.reachable, redirect_quality, scan)
        status = classify(score)
        if status == ValidationStatus.OK:
            reason = "유효한 공고"
        elif status == ValidationStatus.MAYBE_VALID:
            reason = "수동 확인 필요"
        else:
            reason = f"낮은 점수 {score}: {redirect_reason}"
        return self._record(url, status, score=score, reason=reason, **common)

    async def validate_many(self, urls: Sequence[str]) -> Dict[str, ValidationRecord]:
        """Checks each distinct normalized URL once, at most ``concurrency`` at a time."""
        groups: Dict[str, List[str]] = {}
        for url in urls:
            groups.setdefault(normalize_url(url), []).append(url)
        semaphore = asyncio.Semaphore(self._settings.concurrency)

        async def check(members: List[str]) -> Dict[str, ValidationRecord]:
            async with semaphore:
                record = await self.validate_url(members[0])
            return {member: record.model_copy(update={"url": member}) for member in members}

        results: Dict[str, ValidationRecord] = {}
        for partial in await asyncio.gather(*(check(members) for members in groups.values())):
            results.update(partial)
        logger.info("validate.sweep_complete", extra={"urls": len(urls), "distinct": len(groups)})
        return results


async def validate_url(url: str, *, settings: Optional[LivenessSettings] = None) -> ValidationRecord:
    config = settings or get_liveness_settings()
    async with build_http_client(config) as client:
        return await ValidationPipeline(client, config).validate_url(url)


def validate_url_sync(url: str, *, settings: Optional[LivenessSettings] = None) -> ValidationRecord:
    return asyncio.run(validate_url(url, settings=settings))
