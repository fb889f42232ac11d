"""
Preview enrichment policy: cache hit, negative-cache skip, or fetch.

Callers only ever see a PreviewMetadata or None. Fetch and store failures are
logged here and never propagate.
"""

import asyncio
import logging
from typing import Iterable, Optional

from hntop.cache import PreviewCache
from hntop.config import OG_ENRICH_TIMEOUT, OG_TRUNCATE
from hntop.errors import EnrichmentError, StorageError
from hntop.opengraph import KeyedLocks, OpenGraphFetcher, PreviewMetadata, clean_preview

log = logging.getLogger("hntop")


class PreviewEnricher:
    def __init__(
        self,
        cache: PreviewCache,
        fetcher: OpenGraphFetcher,
        timeout: float = OG_ENRICH_TIMEOUT,
        truncate: bool = OG_TRUNCATE,
    ):
        self.cache = cache
        self.fetcher = fetcher
        self.timeout = timeout
        self.truncate = truncate
        self._inflight = KeyedLocks()

    async def enrich(self, url: str) -> Optional[PreviewMetadata]:
        if not url:
            return None

        # Serialize lookup -> fetch -> store per URL so a concurrent caller
        # sees the entry written by the first one.
        async with self._inflight.hold(url):
            cached = self._lookup(url)
            if cached is not None:
                if cached.success:
                    return cached.to_preview()
                log.debug(f"[enrich] Skipping {url}, recent failure cached")
                return None

            try:
                meta = await asyncio.wait_for(self.fetcher.fetch(url), timeout=self.timeout)
            except asyncio.TimeoutError:
                log.debug(f"[enrich] Timed out after {self.timeout:.0f}s: {url}")
                self._store(PreviewMetadata(url=url), success=False)
                return None
            except EnrichmentError as e:
                log.debug(f"[enrich] Failed {url}: {e}")
                self._store(PreviewMetadata(url=url), success=False)
                return None
            except Exception as e:
                log.warning(f"[enrich] Unexpected error for {url}: {type(e).__name__}: {e}")
                self._store(PreviewMetadata(url=url), success=False)
                return None

            meta = clean_preview(meta, truncate=self.truncate)
            self._store(meta, success=True)
            log.debug(f"[enrich] Fetched {url}: {meta.title!r}")
            return meta

    async def enrich_many(self, urls: Iterable[str]) -> dict[str, Optional[PreviewMetadata]]:
        """Enrich a batch concurrently. Empty URLs are skipped."""
        unique = list(dict.fromkeys(u for u in urls if u))
        results = await asyncio.gather(*(self.enrich(u) for u in unique))
        found = sum(1 for r in results if r is not None)
        log.info(f"[enrich] {found}/{len(unique)} previews available")
        return dict(zip(unique, results))

    def _lookup(self, url: str):
        try:
            return self.cache.lookup(url)
        except StorageError as e:
            log.warning(f"[enrich] Cache lookup failed for {url}: {e}")
            return None

    def _store(self, meta: PreviewMetadata, success: bool):
        try:
            self.cache.store(meta, success)
        except StorageError as e:
            log.warning(f"[enrich] Failed to cache {meta.url}: {e}")
