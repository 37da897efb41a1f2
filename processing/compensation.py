"""Pay-rate and deadline extraction from free text."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as dateparser

from ingestion.models.domain import Compensation, CompensationType
from processing.text import contains_any
from processing.vocabulary import UNPAID_KEYWORDS

_AMOUNT = r"(\d{1,3}(?:,\d{3})+|\d+)(?:\.(\d{1,2}))?\s*(k)?"
_RANGE_SEP = r"\s*(?:-|–|to)\s*\$?"
_PER = r"\s*(?:/|per|an|a)?\s*"

_HOURLY_RANGE = re.compile(r"\$" + _AMOUNT + _RANGE_SEP + _AMOUNT + _PER + r"(?:hour|hr)\b", re.IGNORECASE)
_HOURLY = re.compile(r"\$" + _AMOUNT + _PER + r"(?:hour|hr)\b", re.IGNORECASE)
_SALARY = re.compile(
    r"\$" + _AMOUNT + r"(?:" + _RANGE_SEP + _AMOUNT + r")?" + _PER + r"(?:year|yr|annually|annum)\b",
    re.IGNORECASE,
)
_STIPEND = re.compile(r"(?:\$" + _AMOUNT + r"\s*stipend|stipend\s+of\s+\$" + _AMOUNT + r")", re.IGNORECASE)

_DEADLINE_PATTERNS = [
    re.compile(r"(?:deadline|apply by|due|applications close)[:\s]*([a-z]+\.?\s+\d{1,2},?\s+\d{4})", re.IGNORECASE),
    re.compile(r"(?:deadline|apply by|due)[:\s]*(\d{1,2}/\d{1,2}/\d{4})", re.IGNORECASE),
    re.compile(r"(?:deadline|apply by|due)[:\s]*(\d{4}-\d{2}-\d{2})", re.IGNORECASE),
]


def _amount(whole: Optional[str], cents: Optional[str], thousands: Optional[str]) -> Optional[float]:
    if whole is None:
        return None
    value = float(whole.replace(",", "") + (f".{cents}" if cents else ""))
    return value * 1000 if thousands else value


def parse_compensation(text: str) -> Compensation:
    """Classify pay as unpaid / hourly / salary / stipend / unknown."""
    if not text:
        return Compensation()
    if contains_any(text.lower(), UNPAID_KEYWORDS):
        return Compensation(type=CompensationType.UNPAID)
    match = _HOURLY_RANGE.search(text)
    if match:
        return Compensation(
            type=CompensationType.HOURLY,
            min_amount=_amount(*match.group(1, 2, 3)),
            max_amount=_amount(*match.group(4, 5, 6)),
        )
    match = _HOURLY.search(text)
    if match:
        amount = _amount(*match.group(1, 2, 3))
        return Compensation(type=CompensationType.HOURLY, min_amount=amount, max_amount=amount)
    match = _SALARY.search(text)
    if match:
        low = _amount(*match.group(1, 2, 3))
        high = _amount(*match.group(4, 5, 6)) if match.group(4) else low
        return Compensation(type=CompensationType.SALARY, min_amount=low, max_amount=high)
    match = _STIPEND.search(text)
    if match:
        groups = match.groups()
        amount = _amount(*groups[0:3]) if groups[0] else _amount(*groups[3:6])
        return Compensation(type=CompensationType.STIPEND, min_amount=amount, max_amount=amount)
    return Compensation()


def parse_deadline(text: str) -> Optional[datetime]:
    if not text:
        return None
    for pattern in _DEADLINE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        try:
            parsed = dateparser.parse(match.group(1))
        except (ValueError, OverflowError):
            continue
        if parsed is not None:
            return parsed.replace(tzinfo=parsed.tzinfo or timezone.utc)
    return None
