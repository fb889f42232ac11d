"""OpenGraph cache: successful previews and failure tombstones, keyed by URL."""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from hntop.config import OG_CACHE_TTL, OG_FAILURE_TTL
from hntop.database import Database
from hntop.opengraph import PreviewMetadata

log = logging.getLogger("hntop")


@dataclass
class CacheEntry:
    url: str
    title: str
    description: str
    image: str
    site_name: str
    fetched_at: float
    expires_at: float
    success: bool

    def to_preview(self) -> PreviewMetadata:
        return PreviewMetadata(
            url=self.url,
            title=self.title,
            description=self.description,
            image=self.image,
            site_name=self.site_name,
        )


class PreviewCache:
    def __init__(self, db: Database, success_ttl: float = OG_CACHE_TTL, failure_ttl: float = OG_FAILURE_TTL):
        self.db = db
        self.success_ttl = success_ttl
        self.failure_ttl = failure_ttl

    def lookup(self, url: str) -> Optional[CacheEntry]:
        """Live entry for `url`, or None. Raises StorageError only on I/O faults."""
        row = self.db.get_opengraph(url, time.time())
        if row is None:
            log.debug(f"[cache] Miss {url}")
            return None
        return CacheEntry(
            url=row["url"],
            title=row["title"] or "",
            description=row["description"] or "",
            image=row["image"] or "",
            site_name=row["site_name"] or "",
            fetched_at=row["fetched_at"],
            expires_at=row["expires_at"],
            success=bool(row["fetch_success"]),
        )

    def store(self, meta: PreviewMetadata, success: bool) -> CacheEntry:
        """Upsert the outcome of a fetch attempt; the previous entry is overwritten."""
        now = time.time()
        entry = CacheEntry(
            url=meta.url,
            title=meta.title,
            description=meta.description,
            image=meta.image,
            site_name=meta.site_name,
            fetched_at=now,
            expires_at=now + (self.success_ttl if success else self.failure_ttl),
            success=success,
        )
        self.db.upsert_opengraph(
            entry.url,
            entry.title,
            entry.description,
            entry.image,
            entry.site_name,
            entry.fetched_at,
            entry.expires_at,
            entry.success,
        )
        log.debug(f"[cache] Stored {meta.url} (success={success})")
        return entry

    def sweep(self) -> int:
        """Delete expired entries. Returns how many were removed."""
        removed = self.db.delete_expired_opengraph(time.time())
        if removed:
            log.info(f"[cache] Removed {removed} expired entries")
        return removed
