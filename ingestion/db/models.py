"""SQLAlchemy models for the internship catalog."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import Uuid


class Base(DeclarativeBase):
    """Base class for ORM models."""


class TimestampMixin:
    """Adds created_at/updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class JobStage(str, Enum):
    INGEST = "ingest"
    VALIDATE = "validate"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Posting(TimestampMixin, Base):
    """Canonical internship posting, unique per canonical hash."""

    __tablename__ = "postings"
    __table_args__ = (
        UniqueConstraint("canonical_hash", name="uq_postings_canonical_hash"),
        Index("ix_postings_active_company", "is_active", "normalized_company"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    canonical_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    source_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    application_url: Mapped[str | None] = mapped_column(String(2048))
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    company: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    location: Mapped[str | None] = mapped_column(String(200))
    normalized_title: Mapped[str] = mapped_column(String(200), nullable=False)
    normalized_company: Mapped[str] = mapped_column(String(100), nullable=False)
    normalized_location: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    skills: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    relevant_majors: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    eligibility_years: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    work_type: Mapped[str] = mapped_column(String(16), nullable=False)
    internship_cycle: Mapped[str] = mapped_column(String(32), nullable=False)
    is_program_specific: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_remote: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    compensation: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    application_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    quality_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completeness_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    raw_payload: Mapped[dict | None] = mapped_column(JSON)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    scores: Mapped["PostingScore | None"] = relationship(
        back_populates="posting", uselist=False, cascade="all, delete-orphan"
    )


class PostingScore(Base):
    """Current score set, one row per posting."""

    __tablename__ = "posting_scores"

    posting_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("postings.id", ondelete="CASCADE"), primary_key=True
    )
    quality: Mapped[int] = mapped_column(Integer, nullable=False)
    competitiveness: Mapped[int] = mapped_column(Integer, nullable=False)
    learning: Mapped[int] = mapped_column(Integer, nullable=False)
    brand_value: Mapped[int] = mapped_column(Integer, nullable=False)
    compensation: Mapped[int] = mapped_column(Integer, nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    posting: Mapped[Posting] = relationship(back_populates="scores")


class ValidationCheck(Base):
    """Append-only liveness check history."""

    __tablename__ = "validation_records"
    __table_args__ = (
        Index("ix_validation_records_posting_checked", "posting_id", "checked_at"),
        Index("ix_validation_records_normalized_url", "normalized_url"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    posting_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("postings.id", ondelete="CASCADE"), nullable=False
    )
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    normalized_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    http_code: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    final_url: Mapped[str | None] = mapped_column(String(2048))
    redirect_chain: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reason: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    checked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class JobRun(TimestampMixin, Base):
    """Represents a single job execution."""

    __tablename__ = "job_runs"
    __table_args__ = (
        Index("ix_job_runs_stage_status", "stage", "status"),
        Index("ix_job_runs_trace", "trace_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    stage: Mapped[JobStage] = mapped_column(
        SAEnum(JobStage, name="job_stage", native_enum=False, length=16),
        nullable=False,
    )
    status: Mapped[JobStatus] = mapped_column(
        SAEnum(JobStatus, name="job_status", native_enum=False, length=16),
        nullable=False,
        default=JobStatus.PENDING,
    )
    sources: Mapped[list[str] | None] = mapped_column(JSON)
    task_name: Mapped[str | None] = mapped_column(String(100))
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    metrics: Mapped[dict | None] = mapped_column(JSON)
    error_message: Mapped[str | None] = mapped_column(String(512))
    trace_id: Mapped[str | None] = mapped_column(String(64))
