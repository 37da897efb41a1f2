"""Liveness validation 설정."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, PositiveFloat, PositiveInt, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class LivenessSettings(BaseSettings):
    """공고 URL 재검증 파이프라인 설정 (모두 기본값 보유)."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    head_timeout_seconds: PositiveFloat = Field(
        10.0, alias="LIVENESS_HEAD_TIMEOUT_SECONDS", description="HEAD/리다이렉트 추적 타임아웃(초)."
    )
    get_timeout_seconds: PositiveFloat = Field(
        15.0, alias="LIVENESS_GET_TIMEOUT_SECONDS", description="본문 GET 타임아웃(초)."
    )
    max_redirects: PositiveInt = Field(5, alias="LIVENESS_MAX_REDIRECTS", description="추적할 최대 리다이렉트 수.")
    server_error_retry_delay_seconds: float = Field(
        1.0, ge=0, alias="LIVENESS_SERVER_ERROR_RETRY_DELAY_SECONDS", description="5xx 재시도 전 대기(초)."
    )
    concurrency: PositiveInt = Field(5, alias="LIVENESS_CONCURRENCY", description="동시에 검사할 URL 수.")
    user_agent: str = Field(
        "Mozilla/5.0 (compatible; InternshipCatalogBot/1.0)",
        alias="LIVENESS_USER_AGENT",
        description="검증 요청 User-Agent.",
    )
    recheck_interval_hours: PositiveInt = Field(
        24, alias="LIVENESS_RECHECK_INTERVAL_HOURS", description="같은 공고를 다시 검사하기까지의 최소 간격(시간)."
    )


@lru_cache()
def get_liveness_settings() -> LivenessSettings:
    try:
        return LivenessSettings()
    except ValidationError as exc:
        raise RuntimeError(f"Liveness 환경 변수 검증에 실패했습니다: {exc}") from exc


def reset_liveness_settings_cache() -> None:
    get_liveness_settings.cache_clear()  # type: ignore[attr-defined]
