"""Error taxonomy shared by fetchers, normalization and validation."""

from __future__ import annotations

from typing import Optional


class IngestionError(Exception):
    """Base class for all pipeline errors."""


class ConnectorError(IngestionError):
    """Base error for outbound calls made on behalf of a source."""

    def __init__(self, message: str, *, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.source = source


class TransientNetworkError(ConnectorError):
    """Timeout, connection reset, 429 or 5xx. Safe to retry with backoff."""

    def __init__(self, message: str, *, source: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message, source=source)
        self.status_code = status_code


class ClientRequestError(ConnectorError):
    """4xx or malformed request. Retrying cannot fix it."""

    def __init__(self, message: str, *, source: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message, source=source)
        self.status_code = status_code


class CircuitOpenError(ConnectorError):
    """Call rejected because the resource's circuit is open."""


class ParseError(ConnectorError):
    """Malformed upstream payload; the offending record is skipped."""


class ValidationError(IngestionError):
    """A raw record is missing a required field."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class DuplicateError(IngestionError):
    """A record's canonical hash was already admitted or persisted."""

    def __init__(self, canonical_hash: str, *, reason: str = "batch") -> None:
        super().__init__(f"duplicate posting {canonical_hash[:12]} ({reason})")
        self.canonical_hash = canonical_hash
        self.reason = reason
