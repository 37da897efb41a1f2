"""Database utilities for the internship catalog."""

from .models import Base, JobRun, JobStage, JobStatus, Posting, PostingScore, ValidationCheck  # noqa: F401
from .session import get_engine, get_sessionmaker, init_schema, session_scope  # noqa: F401

__all__ = [
    "Base",
    "JobRun",
    "JobStage",
    "JobStatus",
    "Posting",
    "PostingScore",
    "ValidationCheck",
    "get_engine",
    "get_sessionmaker",
    "init_schema",
    "session_scope",
]
