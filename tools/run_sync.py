from __future__ import annotations

import argparse
import asyncio
import sys

from sharktrack.core.log import configure_logging
from sharktrack.core.startup import on_startup
from sharktrack.db.session import SessionLocal
from sharktrack.services.errors import SyncError
from sharktrack.services.feed import FeedFetcher
from sharktrack.services.sync import SyncOrchestrator


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Run one shark position sync pass (for cron / external schedulers)")
    p.add_argument("--feed-url", default=None, help="Override FEED_URL")
    p.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    p.add_argument("--create-schema", action="store_true", help="Create tables before syncing")
    args = p.parse_args(argv)

    configure_logging(args.log_level)
    on_startup(SessionLocal, create_schema=args.create_schema or None)

    orchestrator = SyncOrchestrator(FeedFetcher(args.feed_url), SessionLocal)
    try:
        result = asyncio.run(orchestrator.run())
    except SyncError as exc:
        print(f"sync failed: {exc}", file=sys.stderr)
        return 1

    print(f"inserted {result.inserted} new points ({result.seen} features, {result.skipped} skipped, {result.failed} failed)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
