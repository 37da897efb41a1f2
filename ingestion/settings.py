"""Configuration models for the ingestion service."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, Dict, List, Literal, Optional

from pydantic import (
    BaseModel,
    Field,
    PositiveFloat,
    PositiveInt,
    SecretStr,
    ValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

ALL_SOURCES = ("search_api", "code_list", "greenhouse", "lever", "ashby", "page_scraper")
SEASONS = ("Spring", "Summer", "Fall", "Winter")


class CodeListRepo(BaseModel):
    """큐레이션된 인턴십 목록을 담은 코드 호스팅 저장소 파일."""

    owner: str = Field(..., description="저장소 소유자.")
    repo: str = Field(..., description="저장소 이름.")
    path: str = Field("README.md", description="저장소 내 파일 경로.")

    @property
    def label(self) -> str:
        return f"{self.owner}/{self.repo}:{self.path}"


class ScrapeSelectors(BaseModel):
    container: str = Field(..., description="공고 하나를 감싸는 CSS 선택자.")
    title: str = Field(..., description="제목 CSS 선택자.")
    link: str = Field("a", description="상세 링크 CSS 선택자.")
    company: Optional[str] = Field(None, description="회사명 CSS 선택자.")
    location: Optional[str] = Field(None, description="근무지 CSS 선택자.")
    description: Optional[str] = Field(None, description="요약/본문 CSS 선택자.")


class ScrapeTarget(BaseModel):
    """Generic page scraping target."""

    name: str = Field(..., description="타깃 식별자.")
    url: str = Field(..., description="목록 페이지 URL.")
    company: Optional[str] = Field(None, description="회사명 고정값 (선택자가 없을 때 사용).")
    selectors: ScrapeSelectors

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        url = value.strip()
        if not url.startswith(("http://", "https://")):
            raise ValueError("스크래핑 URL은 http(s) 이어야 합니다.")
        return url


class SourceRateLimit(BaseModel):
    max_concurrent: PositiveInt = Field(3, description="동시 요청 상한.")
    min_interval_seconds: float = Field(1.5, ge=0, description="요청 간 최소 간격(초).")


class CycleRule(BaseModel):
    season: Literal["Spring", "Summer", "Fall", "Winter"]
    year_offset: int = Field(0, ge=-1, le=2, description="게시 연도 대비 오프셋.")


def _default_cycle_policy() -> Dict[int, CycleRule]:
    # Q1 -> this summer, Q2 -> this fall, Q3/Q4 -> next summer recruiting season
    return {
        1: CycleRule(season="Summer", year_offset=0),
        2: CycleRule(season="Fall", year_offset=0),
        3: CycleRule(season="Summer", year_offset=1),
        4: CycleRule(season="Summer", year_offset=1),
    }


def _default_code_list_repos() -> List[CodeListRepo]:
    return [
        CodeListRepo(owner="SimplifyJobs", repo="Summer2026-Internships", path=".github/scripts/listings.json"),
    ]


def _decode_json(value: Any, env_name: str, expected: type) -> Any:
    if value in (None, ""):
        return expected()
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{env_name}는 JSON 형식이어야 합니다.") from exc
    if not isinstance(value, expected):
        raise ValueError(f"{env_name}는 {expected.__name__} 형태여야 합니다.")
    return value


class Settings(BaseSettings):
    """Ingestion용 환경 설정."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    database_dsn: str = Field(..., alias="DATABASE_DSN", description="카탈로그 DB 연결 문자열.")
    redis_url: str = Field(..., alias="INGESTION_REDIS_URL", description="Celery 브로커/백엔드 Redis DSN.")
    dedup_use_redis: bool = Field(False, alias="DEDUP_USE_REDIS", description="실행 단위 중복 집합을 Redis에 둘지 여부.")
    dedup_redis_ttl_seconds: PositiveInt = Field(86_400, alias="DEDUP_REDIS_TTL_SECONDS", description="중복 캐시 TTL.")

    log_level: str = Field("INFO", alias="LOG_LEVEL", description="로그 레벨.")
    log_json: bool = Field(False, alias="LOG_JSON", description="로그를 JSON 형식으로 출력할지 여부.")
    celery_worker_concurrency: PositiveInt = Field(4, alias="CELERY_WORKER_CONCURRENCY", description="Celery 워커 동시 실행 수.")
    celery_task_soft_time_limit: PositiveInt = Field(
        900,
        alias="CELERY_TASK_SOFT_TIME_LIMIT",
        description="Celery 태스크 소프트 타임아웃 (초).",
    )

    http_user_agent: str = Field(
        "InternshipCatalogBot/1.0 (+internship catalog ingestion)",
        alias="HTTP_USER_AGENT",
        description="외부 호출 시 사용하는 User-Agent.",
    )
    http_timeout_seconds: PositiveFloat = Field(10.0, alias="HTTP_TIMEOUT_SECONDS", description="외부 호출 타임아웃(초).")

    search_api_key: Optional[SecretStr] = Field(None, alias="SEARCH_API_KEY", description="검색 API 인증 키.")
    search_api_endpoint: str = Field("https://api.exa.ai", alias="SEARCH_API_ENDPOINT", description="검색 API 베이스 URL.")
    search_api_num_results: PositiveInt = Field(25, alias="SEARCH_API_NUM_RESULTS", description="쿼리당 결과 수(1~100).")
    search_api_type: Literal["neural", "keyword", "auto"] = Field(
        "neural", alias="SEARCH_API_TYPE", description="검색 방식."
    )

    github_token: Optional[SecretStr] = Field(None, alias="GITHUB_TOKEN", description="GitHub API 토큰 (선택).")
    github_api_base: str = Field("https://api.github.com", alias="GITHUB_API_BASE", description="GitHub API 베이스 URL.")
    code_list_repos: List[CodeListRepo] = Field(
        default_factory=_default_code_list_repos,
        alias="CODE_LIST_REPOS",
        description="JSON 배열: [{owner, repo, path}].",
    )
    code_list_target_year: Optional[int] = Field(
        None, alias="CODE_LIST_TARGET_YEAR", description="지정 시 해당 연도 term만 수집."
    )

    greenhouse_boards: Dict[str, str] = Field(
        default_factory=dict, alias="GREENHOUSE_BOARDS", description="JSON 객체: 회사명 -> board token."
    )
    lever_sites: Dict[str, str] = Field(default_factory=dict, alias="LEVER_SITES", description="JSON 객체: 회사명 -> site.")
    ashby_boards: Dict[str, str] = Field(
        default_factory=dict, alias="ASHBY_BOARDS", description="JSON 객체: 회사명 -> job board 이름."
    )
    scrape_targets: List[ScrapeTarget] = Field(
        default_factory=list, alias="SCRAPE_TARGETS", description="JSON 배열 형태의 스크래핑 타깃."
    )

    enabled_sources: List[str] = Field(
        default_factory=lambda: list(ALL_SOURCES), alias="ENABLED_SOURCES", description="활성화된 소스 목록."
    )
    critical_sources: List[str] = Field(
        default_factory=lambda: ["search_api", "code_list"],
        alias="CRITICAL_SOURCES",
        description="실행 성공 판정에 필요한 소스 목록.",
    )
    default_max_results: PositiveInt = Field(50, alias="DEFAULT_MAX_RESULTS", description="소스별 기본 최대 결과 수.")
    ingestion_batch_size: PositiveInt = Field(50, alias="INGESTION_BATCH_SIZE", description="DB 저장 배치 크기.")

    circuit_failure_threshold: PositiveInt = Field(5, alias="CIRCUIT_FAILURE_THRESHOLD", description="회로 개방 실패 임계치.")
    circuit_recovery_timeout_seconds: PositiveFloat = Field(
        300.0, alias="CIRCUIT_RECOVERY_TIMEOUT_SECONDS", description="Open -> Half-Open 대기 시간(초)."
    )
    circuit_half_open_successes: PositiveInt = Field(
        3, alias="CIRCUIT_HALF_OPEN_SUCCESSES", description="Half-Open 에서 Closed 로 돌아가기 위한 연속 성공 수."
    )
    retry_max_retries: int = Field(3, ge=0, alias="RETRY_MAX_RETRIES", description="최대 재시도 횟수.")
    retry_base_delay_seconds: float = Field(1.0, ge=0, alias="RETRY_BASE_DELAY_SECONDS", description="백오프 기본 지연(초).")
    retry_max_delay_seconds: float = Field(30.0, ge=0, alias="RETRY_MAX_DELAY_SECONDS", description="백오프 최대 지연(초).")
    rate_limit_max_concurrent: PositiveInt = Field(3, alias="RATE_LIMIT_MAX_CONCURRENT", description="소스별 동시 요청 상한.")
    rate_limit_min_interval_seconds: float = Field(
        1.5, ge=0, alias="RATE_LIMIT_MIN_INTERVAL_SECONDS", description="소스별 요청 간 최소 간격(초)."
    )
    source_rate_limits: Dict[str, SourceRateLimit] = Field(
        default_factory=lambda: {
            "greenhouse": SourceRateLimit(max_concurrent=2, min_interval_seconds=1.0),
            "lever": SourceRateLimit(max_concurrent=2, min_interval_seconds=1.0),
            "page_scraper": SourceRateLimit(max_concurrent=1, min_interval_seconds=2.0),
        },
        alias="SOURCE_RATE_LIMITS",
        description="JSON 객체: 소스명 -> {max_concurrent, min_interval_seconds}.",
    )

    internship_cycle_policy: Dict[int, CycleRule] = Field(
        default_factory=_default_cycle_policy,
        alias="INTERNSHIP_CYCLE_POLICY",
        description="분기(1~4) -> {season, year_offset} 매핑. 게시일만 있을 때 모집 시즌 추정에 사용.",
    )

    @field_validator("code_list_repos", "scrape_targets", "enabled_sources", "critical_sources", mode="before")
    @classmethod
    def _parse_json_lists(cls, value: Any, info: ValidationInfo) -> List[Any]:
        return _decode_json(value, info.field_name.upper(), list)

    @field_validator(
        "greenhouse_boards",
        "lever_sites",
        "ashby_boards",
        "source_rate_limits",
        "internship_cycle_policy",
        mode="before",
    )
    @classmethod
    def _parse_json_objects(cls, value: Any, info: ValidationInfo) -> Dict[Any, Any]:
        return _decode_json(value, info.field_name.upper(), dict)

    @field_validator("enabled_sources", "critical_sources")
    @classmethod
    def _validate_source_names(cls, value: List[str]) -> List[str]:
        unknown = [name for name in value if name not in ALL_SOURCES]
        if unknown:
            raise ValueError(f"알 수 없는 소스 이름: {', '.join(unknown)}")
        return value

    @field_validator("internship_cycle_policy")
    @classmethod
    def _validate_cycle_policy(cls, value: Dict[int, CycleRule]) -> Dict[int, CycleRule]:
        if set(value) != {1, 2, 3, 4}:
            raise ValueError("INTERNSHIP_CYCLE_POLICY는 1~4 분기를 모두 포함해야 합니다.")
        return value

    @field_validator("database_dsn")
    @classmethod
    def _validate_database_dsn(cls, value: str) -> str:
        if "://" not in value:
            raise ValueError("DATABASE_DSN은 유효한 DSN 문자열이어야 합니다.")
        return value

    @field_validator("search_api_num_results")
    @classmethod
    def _validate_num_results(cls, v: int) -> int:
        if v > 100:
            raise ValueError("SEARCH_API_NUM_RESULTS는 100 이하여야 합니다.")
        return v

    def rate_limit_for(self, source: str) -> SourceRateLimit:
        override = self.source_rate_limits.get(source)
        if override is not None:
            return override
        return SourceRateLimit(
            max_concurrent=self.rate_limit_max_concurrent,
            min_interval_seconds=self.rate_limit_min_interval_seconds,
        )


@lru_cache()
def get_settings() -> Settings:
    """환경 변수를 기준으로 Settings 인스턴스를 반환한다."""
    try:
        return Settings()
    except ValidationError as exc:
        raise RuntimeError(f"환경 변수 검증에 실패했습니다: {exc}") from exc


def reset_settings_cache() -> None:
    """Settings LRU 캐시를 초기화한다 (테스트 용도)."""
    get_settings.cache_clear()  # type: ignore[attr-defined]
