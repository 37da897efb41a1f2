"""Domain DTOs for ingestion pipeline."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SourceKind(str, Enum):
    SEARCH_API = "search-api"
    CODE_LIST = "code-list"
    ATS_FEED = "ats-feed"
    SCRAPED_PAGE = "scraped-page"


class Role(str, Enum):
    SOFTWARE_ENGINEERING = "Software Engineering"
    PRODUCT_MANAGEMENT = "Product Management"
    DATA_SCIENCE = "Data Science"
    QUANTITATIVE_RESEARCH = "Quantitative Research"
    BUSINESS_ANALYST = "Business Analyst"
    DESIGN = "Design"
    MARKETING = "Marketing"
    FINANCE = "Finance"
    CONSULTING = "Consulting"
    RESEARCH = "Research"
    OTHER = "Other"


class EligibilityYear(str, Enum):
    FRESHMAN = "Freshman"
    SOPHOMORE = "Sophomore"
    JUNIOR = "Junior"
    SENIOR = "Senior"


class WorkType(str, Enum):
    PAID = "Paid"
    UNPAID = "Unpaid"
    UNKNOWN = "Unknown"


class CompensationType(str, Enum):
    HOURLY = "hourly"
    SALARY = "salary"
    STIPEND = "stipend"
    UNPAID = "unpaid"
    UNKNOWN = "unknown"


class ValidationStatus(str, Enum):
    OK = "ok"
    DEAD = "dead"
    EXPIRED = "expired"
    MAYBE_VALID = "maybe_valid"


class RawPosting(BaseModel):
    """소스가 돌려준 그대로의 공고 레코드 (저장하지 않음)."""

    model_config = ConfigDict(frozen=True)

    source: str = Field(..., description="커넥터 소스 식별자(e.g., greenhouse)")
    source_kind: SourceKind
    url: str
    title: str
    company: str
    description: str = ""
    location: Optional[str] = None
    posted_at: Optional[datetime] = None
    application_url: Optional[str] = None
    raw_payload: Dict[str, Any] = Field(default_factory=dict, description="감사/디버깅용 원본 데이터")


class Compensation(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: CompensationType = CompensationType.UNKNOWN
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    currency: str = "USD"

    @property
    def hourly_equivalent(self) -> Optional[float]:
        if self.min_amount is None:
            return None
        if self.type == CompensationType.SALARY:
            # 2000 working hours per year
            return self.min_amount / 2000
        if self.type == CompensationType.HOURLY:
            return self.min_amount
        return None


class NormalizedPosting(BaseModel):
    """Canonical internship record produced by the normalization engine."""

    model_config = ConfigDict(frozen=True)

    source: str
    source_kind: SourceKind
    url: str
    title: str
    company: str
    description: str = ""
    location: Optional[str] = None
    posted_at: Optional[datetime] = None
    application_url: Optional[str] = None
    raw_payload: Dict[str, Any] = Field(default_factory=dict)

    normalized_title: str
    normalized_company: str
    normalized_location: str
    canonical_hash: str = Field(..., description="(회사, 제목, 근무지) 기반 중복 판정 해시")
    role: Role = Role.OTHER
    skills: List[str] = Field(default_factory=list, max_length=10)
    relevant_majors: List[str] = Field(..., min_length=1)
    eligibility_years: List[EligibilityYear] = Field(..., min_length=1)
    work_type: WorkType = WorkType.PAID
    internship_cycle: str
    is_program_specific: bool = False
    is_remote: bool = False
    compensation: Compensation = Field(default_factory=Compensation)
    application_deadline: Optional[datetime] = None
    quality_score: int = Field(..., ge=0, le=100)
    completeness_score: int = Field(..., ge=0, le=100)


class ScoreSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    quality: int = Field(..., ge=0, le=100)
    competitiveness: int = Field(..., ge=0, le=100)
    learning: int = Field(..., ge=0, le=100)
    brand_value: int = Field(..., ge=0, le=100)
    compensation: int = Field(..., ge=0, le=100)


class ValidationRecord(BaseModel):
    """Result of one liveness check. Append-only."""

    model_config = ConfigDict(frozen=True)

    url: str
    normalized_url: str
    status: ValidationStatus
    http_code: int = 0
    final_url: Optional[str] = None
    redirect_chain: List[str] = Field(default_factory=list)
    score: int = 0
    reason: str = ""
    checked_at: datetime


class FetchMetrics(BaseModel):
    total_found: int = 0
    processed: int = 0
    skipped: int = 0
    execution_time_ms: int = 0


class FetchResult(BaseModel):
    source: str
    data: List[RawPosting] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    failed: bool = Field(False, description="소스 전체가 실패했는지 여부 (부분 오류는 False)")
    metrics: FetchMetrics = Field(default_factory=FetchMetrics)


class FetchOptions(BaseModel):
    max_results: Optional[int] = Field(None, ge=1, description="소스별 최대 결과 수 (없으면 설정값)")
    include_programs: bool = False
    companies: List[str] = Field(default_factory=list, description="검색 대상 회사 (검색 API 전용)")


class IngestionOptions(BaseModel):
    sources: Optional[List[str]] = Field(None, description="실행할 소스 (없으면 활성화된 전체)")
    max_results: Optional[int] = Field(None, ge=1)
    include_programs: bool = False
    skip_duplicates: bool = Field(True, description="이미 저장된 공고는 갱신하지 않고 건너뛴다")
    dry_run: bool = False
    companies: List[str] = Field(default_factory=list)

    def fetch_options(self) -> FetchOptions:
        return FetchOptions(
            max_results=self.max_results,
            include_programs=self.include_programs,
            companies=self.companies,
        )


class NormalizationMetrics(BaseModel):
    total_processed: int = 0
    successful: int = 0
    failed: int = 0
    duplicates_skipped: int = 0
    execution_time_ms: int = 0


class DatabaseMetrics(BaseModel):
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0


class IngestionResult(BaseModel):
    success: bool
    fetch_results: List[FetchResult] = Field(default_factory=list)
    normalization_metrics: NormalizationMetrics = Field(default_factory=NormalizationMetrics)
    database_metrics: DatabaseMetrics = Field(default_factory=DatabaseMetrics)
    errors: List[str] = Field(default_factory=list)
    execution_time_ms: int = 0
