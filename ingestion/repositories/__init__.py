"""Persistence repositories."""

from .postings import (  # noqa: F401
    CatalogStore,
    JobRunRecorder,
    SqlCatalogStore,
    append_validation,
    get_existing_hashes,
    latest_validation,
    save_postings,
    select_postings_for_validation,
)
