"""
HN front page enrichment pass.

Fetches the current front page, refreshes popularity stats for stored items,
and attaches OpenGraph previews to each item's link. The result is handed to
whatever renders the feed.

Usage:
    hntop                      # One pass with the default database
    hntop --interval 30        # Run a pass every 30 minutes
    hntop --no-previews        # Stats only
    hntop --debug              # Verbose logging

Environment variables (see hntop/config.py):
    HNTOP_DB            - Database path (default: ./.hntop_data/hntop.db)
    HNTOP_LIMIT         - Items per pass (default: 30)
    HNTOP_MIN_POINTS    - Minimum points for an item to be kept (default: 50)
    HNTOP_OG_TRUNCATE   - Truncate preview text fields (default: off)
"""

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import httpx

from hntop.cache import PreviewCache
from hntop.config import DB_FILE, FEED_ITEM_LIMIT, FEED_MIN_POINTS
from hntop.database import Database
from hntop.enrich import PreviewEnricher
from hntop.errors import StorageError
from hntop.hn_api import Item, fetch_front_page
from hntop.log import setup_logging
from hntop.opengraph import OpenGraphFetcher, PreviewMetadata
from hntop.stats import RefreshSummary, StatsRefresher

log = logging.getLogger("hntop")


@dataclass
class PassResult:
    items: list[Item]
    previews: dict[str, Optional[PreviewMetadata]] = field(default_factory=dict)
    stats: RefreshSummary = field(default_factory=RefreshSummary)

    def preview_for(self, item: Item) -> Optional[PreviewMetadata]:
        return self.previews.get(item.link) if item.link else None


async def run_once(
    db: Database,
    limit: int = FEED_ITEM_LIMIT,
    min_points: int = FEED_MIN_POINTS,
    previews: bool = True,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PassResult:
    """One full pass: sweep, fetch front page, refresh stats, enrich previews."""
    cache = PreviewCache(db)
    try:
        cache.sweep()
    except StorageError as e:
        log.warning(f"[run] Cache sweep failed: {e}")

    async with httpx.AsyncClient(transport=transport) as client:
        new_items = await fetch_front_page(client)
    recently_updated = db.upsert_items(new_items)
    log.info(f"[run] Front page: {len(new_items)} items, {len(recently_updated)} written")

    stored = db.get_items(limit, min_points)
    stats = await StatsRefresher(db, transport=transport).refresh(stored, recently_updated)

    # Re-read to pick up refreshed stats and drop deleted items
    items = db.get_items(limit, min_points)
    result = PassResult(items=items, stats=stats)

    if previews:
        async with OpenGraphFetcher(transport=transport) as fetcher:
            enricher = PreviewEnricher(cache, fetcher)
            result.previews = await enricher.enrich_many(item.link for item in items)

    log.info(f"[run] Pass complete: {len(items)} items")
    return result


async def run_forever(db: Database, interval_minutes: int, stop_event: asyncio.Event, **kwargs):
    """Run a pass immediately and then every `interval_minutes` until stopped."""
    log.info(f"[run] Scheduler started (interval: {interval_minutes}m)")

    while not stop_event.is_set():
        try:
            await run_once(db, **kwargs)
        except StorageError as e:
            log.error(f"[run] Pass aborted: {e}")
        except Exception as e:
            log.exception(f"[run] Pass failed: {type(e).__name__}: {e}")

        next_run = datetime.now() + timedelta(minutes=interval_minutes)
        log.debug(f"[run] Next pass at {next_run.strftime('%H:%M:%S')}")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_minutes * 60)
            break  # Stop event was set
        except asyncio.TimeoutError:
            pass  # Time for the next pass

    log.info("[run] Scheduler stopped")


async def main_async(args) -> int:
    db = Database(args.db)
    try:
        db.init()
    except StorageError as e:
        log.error(f"Failed to open database: {e}")
        return 1

    kwargs = dict(limit=args.limit, min_points=args.min_points, previews=not args.no_previews)
    try:
        if args.interval > 0:
            stop_event = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(sig, stop_event.set)
                except (NotImplementedError, RuntimeError):
                    pass  # Not supported on this platform; Ctrl-C still ends asyncio.run
            await run_forever(db, args.interval, stop_event, **kwargs)
        else:
            result = await run_once(db, **kwargs)
            for item in result.items:
                preview = result.preview_for(item)
                log.info(
                    f"{item.points:>5} pts {item.comment_count:>4} comments  {item.title}"
                    + (f"  [{preview.site_name or preview.title}]" if preview else "")
                )
    except StorageError as e:
        log.error(f"Pass aborted: {e}")
        return 1
    finally:
        db.close()
    return 0


def main():
    parser = argparse.ArgumentParser(description="HN front page enrichment")
    parser.add_argument("--db", type=Path, default=DB_FILE, help=f"Database path (default: {DB_FILE})")
    parser.add_argument(
        "--limit", type=int, default=FEED_ITEM_LIMIT, help=f"Items per pass (default: {FEED_ITEM_LIMIT})"
    )
    parser.add_argument(
        "--min-points",
        type=int,
        default=FEED_MIN_POINTS,
        help=f"Only keep items with more points than this (default: {FEED_MIN_POINTS})",
    )
    parser.add_argument(
        "--interval", type=int, default=0, help="Minutes between passes (default: run once)"
    )
    parser.add_argument("--no-previews", action="store_true", help="Skip OpenGraph enrichment")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    setup_logging(debug=args.debug, use_color=sys.stderr.isatty())

    try:
        code = asyncio.run(main_async(args))
    except (KeyboardInterrupt, asyncio.CancelledError):
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
