"""Run one ingestion pass from the command line.

Usage:
  python scripts/run_ingestion.py --sources greenhouse lever -n 20 --dry-run

Reads configuration from .env via pydantic settings. Prints per-source and run metrics.
"""

from __future__ import annotations

import argparse
import os
from typing import List

from ingestion.db.session import init_schema
from ingestion.models.domain import IngestionOptions
from ingestion.settings import get_settings
from ingestion.tasks.ingest import run_ingestion_sync
from ingestion.utils.logging import configure_logging


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Internship ingestion run")
    parser.add_argument("--sources", nargs="*", default=None, help="Sources to run (default: all enabled)")
    parser.add_argument("-n", "--max-results", type=int, default=None, help="Per-source result cap")
    parser.add_argument("--include-programs", action="store_true", help="Add diversity-program queries")
    parser.add_argument("--update-existing", action="store_true", help="Update postings already in the catalog")
    parser.add_argument("--dry-run", action="store_true", help="Do not write to the database")
    parser.add_argument("--company", action="append", default=[], help="Target company for search queries")
    args = parser.parse_args(argv)

    # Ensure minimal required envs for settings to load
    os.environ.setdefault("INGESTION_REDIS_URL", "redis://localhost:6379/0")
    os.environ.setdefault("DATABASE_DSN", "sqlite:///./var/dev.db")
    os.makedirs("var", exist_ok=True)

    cfg = get_settings()
    configure_logging(cfg.log_level, json_enabled=cfg.log_json)
    init_schema(cfg)

    options = IngestionOptions(
        sources=args.sources or None,
        max_results=args.max_results,
        include_programs=args.include_programs,
        skip_duplicates=not args.update_existing,
        dry_run=args.dry_run,
        companies=args.company,
    )
    try:
        result = run_ingestion_sync(options, settings=cfg)
    except ValueError as exc:
        print(f"Invalid options: {exc}")
        return 2

    for fetch in result.fetch_results:
        status = "FAILED" if fetch.failed else "ok"
        print(f"[{fetch.source}] {status} found={fetch.metrics.total_found} kept={fetch.metrics.processed}")
        for message in fetch.errors[:3]:
            print(f"   ! {message}")
    print("Normalization:", result.normalization_metrics.model_dump())
    print("Database:", result.database_metrics.model_dump())
    print(f"Success: {result.success} ({result.execution_time_ms} ms)")
    return 0 if result.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
