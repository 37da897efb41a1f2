"""Text cleaning and keyword matching helpers."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, Optional

TITLE_MAX = 200
COMPANY_MAX = 100
DESCRIPTION_MAX = 5000
LOCATION_MAX = 200

_WHITESPACE = re.compile(r"\s+")
_TITLE_DISALLOWED = re.compile(r"[^\w\s\-()&/+#.,']")
_COMPANY_DISALLOWED = re.compile(r"[^\w\s&.\-']")


def collapse(text: Optional[str]) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def clean_title(title: Optional[str]) -> str:
    return collapse(_TITLE_DISALLOWED.sub(" ", title or ""))[:TITLE_MAX].strip()


def clean_company(company: Optional[str]) -> str:
    return collapse(_COMPANY_DISALLOWED.sub(" ", company or ""))[:COMPANY_MAX].strip()


def clean_description(description: Optional[str]) -> str:
    return collapse(description)[:DESCRIPTION_MAX]


def clean_location(location: Optional[str]) -> Optional[str]:
    cleaned = collapse(location)[:LOCATION_MAX]
    return cleaned or None


@lru_cache(maxsize=2048)
def _keyword_pattern(keyword: str, whole_word: bool) -> re.Pattern[str]:
    # prefix-anchored by default so plurals and inflections still match ("juniors", "engineering")
    suffix = r"(?![a-z0-9])" if whole_word else ""
    return re.compile(r"(?<![a-z0-9])" + re.escape(keyword.lower()) + suffix)


def contains_keyword(text: str, keyword: str, *, whole_word: bool = False) -> bool:
    """Case-insensitive keyword match anchored at a word start.

    ``text`` is expected to be lowercased already.
    """
    return _keyword_pattern(keyword, whole_word).search(text) is not None


def contains_any(text: str, keywords: Iterable[str], *, whole_word: bool = False) -> bool:
    return any(contains_keyword(text, keyword, whole_word=whole_word) for keyword in keywords)


def title_case(text: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in text.split(" "))
