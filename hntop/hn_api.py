"""
Hacker News front page client (Algolia search API).
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx

from hntop.config import ALGOLIA_FRONT_PAGE, HN_COMMENTS_LINK

log = logging.getLogger("hntop")


@dataclass
class Item:
    item_id: str
    title: str
    link: str = ""
    comments_link: str = ""
    points: int = 0
    comment_count: int = 0
    author: str = ""
    created_at: int = 0
    updated_at: int = 0


def extract_domain(url: Optional[str]) -> Optional[str]:
    """Host part of a URL, lowercased. None when the URL has no host."""
    if not url:
        return None
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    host = (parsed.hostname or "").lower()
    return host or None


def parse_algolia_hit(hit: dict, now: Optional[int] = None) -> Optional[Item]:
    """Parse an Algolia API hit into an Item. Returns None for hits without an id."""
    item_id = str(hit.get("objectID") or "").strip()
    if not item_id:
        return None
    now = now if now is not None else int(time.time())
    created_at = hit.get("created_at_i")
    if not isinstance(created_at, int):
        log.warning(f"[algolia] Missing timestamp for {item_id}, using current time")
        created_at = now
    return Item(
        item_id=item_id,
        title=hit.get("title") or "[no title]",
        link=hit.get("url") or "",
        comments_link=HN_COMMENTS_LINK.format(id=item_id),
        points=hit.get("points") or 0,
        comment_count=hit.get("num_comments") or 0,
        author=hit.get("author") or "[deleted]",
        created_at=created_at,
        updated_at=now,
    )


async def fetch_front_page(client: httpx.AsyncClient, url: str = ALGOLIA_FRONT_PAGE) -> list[Item]:
    """Fetch the current front page. Errors are logged and yield an empty list."""
    try:
        resp = await client.get(url, timeout=30)
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        log.error(f"[algolia] Failed to fetch front page: {e}")
        return []

    hits = data.get("hits", []) if isinstance(data, dict) else []
    now = int(time.time())
    items = []
    for hit in hits:
        if not isinstance(hit, dict):
            log.warning(f"[algolia] Skipping malformed hit: {hit!r}")
            continue
        item = parse_algolia_hit(hit, now)
        if item:
            items.append(item)

    log.debug(f"[algolia] Front page: {len(items)} items from {len(hits)} hits")
    return items
