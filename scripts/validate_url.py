"""Check whether posting URLs are still live.

Usage:
  python scripts/validate_url.py https://boards.greenhouse.io/acme/jobs/123 [more urls...]
"""

from __future__ import annotations

import argparse
import asyncio
from typing import List

from ingestion.utils.logging import configure_logging
from liveness.pipeline import ValidationPipeline, build_http_client
from liveness.settings import get_liveness_settings


async def _run(urls: List[str]) -> int:
    settings = get_liveness_settings()
    async with build_http_client(settings) as client:
        records = await ValidationPipeline(client, settings).validate_many(urls)
    dead = 0
    for url in urls:
        record = records[url]
        print(f"{record.status.value:12} http={record.http_code:<3} score={record.score:>3}  {url}")
        print(f"{'':12} {record.reason}")
        if record.final_url and record.final_url != url:
            print(f"{'':12} -> {record.final_url}")
        dead += record.status.value in ("dead", "expired")
    return 1 if dead else 0


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Posting URL liveness check")
    parser.add_argument("urls", nargs="+", help="URLs to check")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log each stage")
    args = parser.parse_args(argv)
    configure_logging("INFO" if args.verbose else "WARNING", json_enabled=False)
    return asyncio.run(_run(args.urls))


if __name__ == "__main__":
    raise SystemExit(main())
