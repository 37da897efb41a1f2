"""Deterministic posting scores from company tiers and rule weights."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple

from ingestion.models.domain import CompensationType, NormalizedPosting, Role, ScoreSet
from processing.text import contains_any, contains_keyword


class CompanyTier(str, Enum):
    ELITE = "elite"
    STRONG = "strong"
    GOOD = "good"
    UNKNOWN = "unknown"


COMPANY_TIERS: Dict[CompanyTier, Tuple[str, ...]] = {
    CompanyTier.ELITE: (
        "Google", "Microsoft", "Meta", "Apple", "Amazon", "Netflix", "Tesla", "Jane Street", "Citadel",
        "Two Sigma", "Hudson River Trading", "HRT", "Optiver", "Jump Trading", "Goldman Sachs",
        "JPMorgan Chase", "Morgan Stanley", "BlackRock",
    ),
    CompanyTier.STRONG: (
        "Stripe", "Airbnb", "Coinbase", "Roblox", "Databricks", "Snowflake", "Plaid", "Scale AI", "Anthropic",
        "OpenAI", "MongoDB", "Datadog", "Figma", "Notion", "Canva", "Spotify", "Discord", "Twitch", "Reddit",
        "Pinterest", "Dropbox", "Asana", "DoorDash",
    ),
    CompanyTier.GOOD: (
        "Salesforce", "IBM", "Oracle", "SAP", "Cisco", "Intel", "NVIDIA", "AMD", "Qualcomm", "VMware", "Adobe",
        "ServiceNow", "Atlassian", "Splunk", "Palo Alto Networks", "Workday", "Zoom", "Square", "PayPal", "Visa",
        "Mastercard", "Capital One",
    ),
}

WELL_KNOWN = ("Google", "Microsoft", "Meta", "Apple", "Amazon", "Netflix", "Tesla")

COMPETITIVE_ROLES = (Role.SOFTWARE_ENGINEERING, Role.PRODUCT_MANAGEMENT, Role.QUANTITATIVE_RESEARCH)
LEARNING_ROLES = (Role.RESEARCH, Role.DATA_SCIENCE, Role.SOFTWARE_ENGINEERING)
BRAND_ROLES = (Role.SOFTWARE_ENGINEERING, Role.PRODUCT_MANAGEMENT, Role.QUANTITATIVE_RESEARCH, Role.DATA_SCIENCE)
COMPETITIVE_LOCATIONS = ("san francisco", "new york", "seattle", "boston")
MENTORSHIP_KEYWORDS = ("mentor", "learning", "growth", "development", "training", "education")
LEARNING_SKILLS = ("Machine Learning", "Data Analysis")

COMPETITIVENESS_TIER_BONUS = {CompanyTier.ELITE: 30, CompanyTier.STRONG: 15, CompanyTier.GOOD: 5}
LEARNING_TIER_BONUS = {CompanyTier.STRONG: 20, CompanyTier.GOOD: 15, CompanyTier.ELITE: 10}
BRAND_TIER_BASE = {CompanyTier.ELITE: 80, CompanyTier.STRONG: 60, CompanyTier.GOOD: 40, CompanyTier.UNKNOWN: 20}
COMPENSATION_TIER_BONUS = {CompanyTier.ELITE: 15, CompanyTier.STRONG: 10, CompanyTier.GOOD: 5}

# (minimum hourly rate, score), checked top-down
HOURLY_BANDS: Tuple[Tuple[float, int], ...] = ((50, 80), (40, 70), (30, 60), (20, 50))
LOW_PAY_SCORE = 30
UNPAID_SCORE = 10
UNKNOWN_PAY_SCORE = 40


def clamp(value: float) -> int:
    return int(max(0, min(100, round(value))))


def company_tier(company: str) -> CompanyTier:
    """Case-insensitive exact or whole-word match against the tier lists."""
    lowered = company.casefold().strip()
    if not lowered:
        return CompanyTier.UNKNOWN
    for tier, names in COMPANY_TIERS.items():
        for name in names:
            candidate = name.casefold()
            if lowered == candidate or contains_keyword(lowered, candidate, whole_word=True):
                return tier
    return CompanyTier.UNKNOWN


class ScoringEngine:
    """Pure function of a posting; calling :meth:`score` twice yields the same :class:`ScoreSet`."""

    def score(self, posting: NormalizedPosting) -> ScoreSet:
        tier = company_tier(posting.normalized_company)
        return ScoreSet(
            quality=self.quality(posting),
            competitiveness=self.competitiveness(posting, tier),
            learning=self.learning(posting, tier),
            brand_value=self.brand_value(posting, tier),
            compensation=self.compensation(posting, tier),
        )

    @staticmethod
    def quality(posting: NormalizedPosting) -> int:
        score = posting.quality_score * 0.4 + posting.completeness_score * 0.2
        if len(posting.description) > 500:
            score += 10
        if len(posting.description) > 1000:
            score += 10
        if len(posting.skills) > 3:
            score += 5
        if len(posting.skills) > 6:
            score += 5
        if posting.role != Role.OTHER:
            score += 10
        return clamp(score)

    @staticmethod
    def competitiveness(posting: NormalizedPosting, tier: CompanyTier) -> int:
        score = 50 + COMPETITIVENESS_TIER_BONUS.get(tier, 0)
        if posting.role in COMPETITIVE_ROLES:
            score += 15
        if any(city in posting.normalized_location.lower() for city in COMPETITIVE_LOCATIONS):
            score += 10
        return clamp(score)

    @staticmethod
    def learning(posting: NormalizedPosting, tier: CompanyTier) -> int:
        score = 50 + LEARNING_TIER_BONUS.get(tier, 0)
        if posting.role in LEARNING_ROLES:
            score += 15
        if len(posting.skills) > 5:
            score += 10
        if any(skill in posting.skills for skill in LEARNING_SKILLS):
            score += 10
        if contains_any(posting.description.lower(), MENTORSHIP_KEYWORDS):
            score += 15
        return clamp(score)

    @staticmethod
    def brand_value(posting: NormalizedPosting, tier: CompanyTier) -> int:
        score = BRAND_TIER_BASE[tier]
        if posting.role in BRAND_ROLES:
            score += 10
        if posting.normalized_company in WELL_KNOWN:
            score += 10
        return clamp(score)

    @staticmethod
    def compensation(posting: NormalizedPosting, tier: CompanyTier) -> int:
        pay = posting.compensation
        if pay.type == CompensationType.UNPAID:
            # unpaid is a floor: no tier or role bonus lifts it
            return UNPAID_SCORE
        hourly = pay.hourly_equivalent
        if hourly is None:
            score = UNKNOWN_PAY_SCORE
        else:
            score = next((band for minimum, band in HOURLY_BANDS if hourly >= minimum), LOW_PAY_SCORE)
            if hourly <= 0:
                score = UNKNOWN_PAY_SCORE
        score += COMPENSATION_TIER_BONUS.get(tier, 0)
        if posting.role in COMPETITIVE_ROLES:
            score += 5
        return clamp(score)
