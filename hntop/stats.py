"""
Popularity stats refresh.

A fixed set of workers pulls item ids from a shared queue and fetches each
item from Algolia. Results go through one bounded queue to a single consumer,
which is the only code that writes to the store.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import AbstractSet, Iterable, Optional

import httpx

from hntop.config import ALGOLIA_ITEM, STATS_TIMEOUT, STATS_WORKERS
from hntop.database import Database
from hntop.errors import (
    EnrichmentError,
    NetworkError,
    NotFoundError,
    ParseError,
    RateLimitError,
    StorageError,
    status_error,
)
from hntop.hn_api import Item

log = logging.getLogger("hntop")


@dataclass
class StatsResult:
    item_id: str
    points: int = 0
    comment_count: int = 0
    error: Optional[EnrichmentError] = None

    @property
    def gone_upstream(self) -> bool:
        return isinstance(self.error, NotFoundError)

    @property
    def rate_limited(self) -> bool:
        return isinstance(self.error, RateLimitError)


@dataclass
class RefreshSummary:
    updated: int = 0
    deleted: int = 0
    failed: int = 0
    rate_limited: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.updated + self.deleted + self.failed + self.rate_limited


def _parse_stats(item_id: str, data) -> StatsResult:
    if not isinstance(data, dict):
        raise ParseError(f"unexpected payload type {type(data).__name__}")
    try:
        points = int(data.get("points") or 0)
        comments = int(data.get("num_comments") or 0)
    except (TypeError, ValueError) as e:
        raise ParseError(f"bad stats payload: {e}") from e
    return StatsResult(item_id=item_id, points=points, comment_count=comments)


async def fetch_item_stats(
    client: httpx.AsyncClient,
    item_id: str,
    timeout: float = STATS_TIMEOUT,
    item_url: str = ALGOLIA_ITEM,
) -> StatsResult:
    """Fetch current stats for one item. Never raises; failures land in `error`."""

    async def _get() -> StatsResult:
        resp = await client.get(item_url.format(id=item_id))
        if not resp.is_success:
            raise status_error(resp.status_code, resp.reason_phrase, resp.headers.get("Retry-After"))
        try:
            data = resp.json()
        except ValueError as e:
            raise ParseError(f"failed to decode JSON: {e}") from e
        return _parse_stats(item_id, data)

    try:
        return await asyncio.wait_for(_get(), timeout=timeout)
    except EnrichmentError as e:
        return StatsResult(item_id=item_id, error=e)
    except asyncio.TimeoutError:
        return StatsResult(item_id=item_id, error=NetworkError(f"timed out after {timeout:.0f}s"))
    except httpx.HTTPError as e:
        return StatsResult(item_id=item_id, error=NetworkError(str(e) or type(e).__name__))


class StatsRefresher:
    def __init__(
        self,
        db: Database,
        workers: int = STATS_WORKERS,
        timeout: float = STATS_TIMEOUT,
        item_url: str = ALGOLIA_ITEM,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        if workers < 1:
            log.warning(f"[stats] Invalid worker count {workers}, using 1")
            workers = 1
        self.workers = workers
        self.timeout = timeout
        self.item_url = item_url
        self.transport = transport

    def select(self, items: Iterable[Item], exclude_ids: AbstractSet[str], summary: RefreshSummary) -> list[str]:
        """Ids that need a refresh, in input order and without duplicates."""
        ids = []
        for item in items:
            if not item.item_id:
                log.warning(f"[stats] Skipping item with empty id: {item.title!r}")
                continue
            if item.item_id in exclude_ids:
                log.debug(f"[stats] Skipping recently updated item {item.item_id}")
                summary.skipped += 1
                continue
            if item.item_id not in ids:
                ids.append(item.item_id)
        return ids

    async def refresh(self, items: Iterable[Item], exclude_ids: AbstractSet[str] = frozenset()) -> RefreshSummary:
        summary = RefreshSummary()
        ids = self.select(items, exclude_ids, summary)
        if not ids:
            if summary.skipped:
                log.debug(f"[stats] Skipped {summary.skipped} recently updated items")
            return summary

        log.debug(f"[stats] Refreshing {len(ids)} items with {self.workers} workers")
        jobs: asyncio.Queue[str] = asyncio.Queue()
        for item_id in ids:
            jobs.put_nowait(item_id)
        results: asyncio.Queue[StatsResult] = asyncio.Queue(maxsize=self.workers)

        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:

            async def worker():
                while True:
                    try:
                        item_id = jobs.get_nowait()
                    except asyncio.QueueEmpty:
                        return
                    try:
                        result = await fetch_item_stats(client, item_id, self.timeout, self.item_url)
                    except Exception as e:
                        result = StatsResult(item_id=item_id, error=EnrichmentError(f"{type(e).__name__}: {e}"))
                    await results.put(result)

            tasks = [asyncio.create_task(worker()) for _ in range(min(self.workers, len(ids)))]
            try:
                for _ in range(len(ids)):
                    self._apply(await results.get(), summary)
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

        log.info(
            f"[stats] Updated {summary.updated}, deleted {summary.deleted}, "
            f"failed {summary.failed}, rate limited {summary.rate_limited}, skipped {summary.skipped}"
        )
        return summary

    def _apply(self, result: StatsResult, summary: RefreshSummary):
        """Write one result to the store. Runs only on the consumer."""
        item_id = result.item_id
        if result.gone_upstream:
            try:
                self.db.delete_item(item_id)
            except StorageError as e:
                log.warning(f"[stats] Failed to delete dead item {item_id}: {e}")
                summary.failed += 1
                summary.errors.append(f"{item_id}: {e}")
                return
            log.info(f"[stats] Deleted dead item {item_id}")
            summary.deleted += 1
            return

        if result.rate_limited:
            log.error(f"[stats] Rate limit exceeded (429) for {item_id}")
            summary.rate_limited += 1
            summary.errors.append(f"{item_id}: {result.error}")
            return

        if result.error is not None:
            log.warning(f"[stats] Failed to fetch stats for {item_id}: {result.error}")
            summary.failed += 1
            summary.errors.append(f"{item_id}: {result.error}")
            return

        try:
            self.db.update_item_stats(item_id, result.points, result.comment_count, int(time.time()))
        except StorageError as e:
            log.warning(f"[stats] Failed to update stats for {item_id}: {e}")
            summary.failed += 1
            summary.errors.append(f"{item_id}: {e}")
            return
        log.debug(f"[stats] Updated {item_id}: {result.points} points, {result.comment_count} comments")
        summary.updated += 1
