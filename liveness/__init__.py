"""Liveness validation for catalog postings."""

from .pipeline import ValidationPipeline, validate_url, validate_url_sync  # noqa: F401
from .settings import LivenessSettings, get_liveness_settings, reset_liveness_settings_cache  # noqa: F401
from .urls import normalize_url  # noqa: F401

__all__ = [
    "LivenessSettings",
    "ValidationPipeline",
    "get_liveness_settings",
    "normalize_url",
    "reset_liveness_settings_cache",
    "validate_url",
    "validate_url_sync",
]
