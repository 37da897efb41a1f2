"""Normalization and scoring of raw internship postings."""

from .normalizer import NormalizationEngine, canonical_hash  # noqa: F401
from .scoring import CompanyTier, ScoringEngine, company_tier  # noqa: F401

__all__ = ["CompanyTier", "NormalizationEngine", "ScoringEngine", "canonical_hash", "company_tier"]
