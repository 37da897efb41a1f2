"""URL canonicalization for duplicate detection across validation runs."""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

TRACKING_PARAMS = frozenset(
    {
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
        "gh_jid",
        "ref",
        "source",
        "fbclid",
        "gclid",
        "ref_id",
        "_ga",
        "_gid",
        "tracking",
        "track",
        "campaign",
    }
)


def normalize_url(url: str) -> str:
    """Drop tracking params, the fragment and a trailing slash; lowercase scheme and host.

    Unparseable input is returned stripped but otherwise unchanged.
    """
    candidate = url.strip()
    try:
        parts = urlsplit(candidate)
    except ValueError:
        return candidate
    if not parts.scheme or not parts.netloc:
        return candidate
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key.lower() not in TRACKING_PARAMS and not key.lower().startswith("utm_")
    ]
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, urlencode(query), ""))
