"""
OpenGraph preview fetching.

OpenGraphFetcher issues one GET per URL with three composable limits:
one in-flight request per URL, a global cap on concurrent requests, and a
minimum interval between request starts to the same domain. Every wait is an
ordinary await, so cancelling the calling task (or wrapping the call in
asyncio.wait_for) unblocks it promptly.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import Optional, Union
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from hntop.config import (
    OG_ACCEPT,
    OG_DOMAIN_DELAY,
    OG_HTML_CONTENT_TYPES,
    OG_MAX_BODY_BYTES,
    OG_MAX_CONCURRENT,
    OG_MAX_REDIRECTS,
    OG_REQUEST_TIMEOUT,
    OG_TRUNCATE_LIMITS,
    OG_USER_AGENT,
)
from hntop.errors import (
    ContentTypeError,
    InvalidURLError,
    NetworkError,
    ParseError,
    status_error,
)
from hntop.hn_api import extract_domain

log = logging.getLogger("hntop")

OG_PROPERTIES = {
    "og:title": "title",
    "og:description": "description",
    "og:image": "image",
    "og:site_name": "site_name",
}


@dataclass
class PreviewMetadata:
    url: str
    title: str = ""
    description: str = ""
    image: str = ""
    site_name: str = ""


# =============================================================================
# Extraction
# =============================================================================


def extract_preview(markup: Union[str, bytes], url: str) -> PreviewMetadata:
    """
    Pull OpenGraph properties out of an HTML document in a single pass.

    The first non-blank og:* value wins. <title> and <meta name="description">
    are collected in the same walk and only used when the og value is missing.
    """
    try:
        soup = BeautifulSoup(markup, "lxml")
    except Exception as e:
        raise ParseError(f"failed to parse HTML: {e}") from e

    og: dict[str, str] = {}
    fallback_title = ""
    fallback_description = ""

    for tag in soup.find_all(["meta", "title"]):
        if tag.name == "title":
            if not fallback_title:
                fallback_title = tag.get_text().strip()
            continue

        content = tag.get("content") or ""
        if not content.strip():
            continue
        field = OG_PROPERTIES.get(tag.get("property") or "")
        if field and field not in og:
            og[field] = content
        if not fallback_description and (tag.get("name") or "").lower() == "description":
            fallback_description = content

    return PreviewMetadata(
        url=url,
        title=og.get("title") or fallback_title,
        description=og.get("description") or fallback_description,
        image=og.get("image", ""),
        site_name=og.get("site_name", ""),
    )


def truncate_string(s: str, max_len: int) -> str:
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."


def _valid_image_url(image: str, page_url: str) -> str:
    """Absolute http(s) image URL, or "" if the value does not parse as one."""
    if not image:
        return ""
    try:
        resolved = httpx.URL(urljoin(page_url, image))
    except (httpx.InvalidURL, ValueError):
        return ""
    if resolved.scheme not in ("http", "https") or not resolved.host:
        return ""
    return str(resolved)


def clean_preview(meta: PreviewMetadata, truncate: bool = False) -> PreviewMetadata:
    """Trim whitespace, validate the image URL and optionally truncate text fields."""
    cleaned = replace(
        meta,
        title=meta.title.strip(),
        description=meta.description.strip(),
        site_name=meta.site_name.strip(),
        image=_valid_image_url(meta.image.strip(), meta.url),
    )
    if truncate:
        cleaned = replace(
            cleaned,
            **{
                field: truncate_string(getattr(cleaned, field), limit)
                for field, limit in OG_TRUNCATE_LIMITS.items()
            },
        )
    return cleaned


# =============================================================================
# Concurrency helpers
# =============================================================================


class KeyedLocks:
    """
    Lazily created per-key locks.

    A lock is dropped as soon as nobody holds or waits on it, so the map only
    ever contains keys that are currently in use.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self):
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]


class DomainPacer:
    """
    Minimum interval between request starts per domain.

    Each caller reserves the next free slot for its domain while holding the
    lock, then sleeps outside it. Other domains are never blocked by a wait.
    A caller cancelled while sleeping releases its slot if it was the last one
    reserved for that domain.
    """

    PRUNE_THRESHOLD = 256

    def __init__(self, interval: float = OG_DOMAIN_DELAY):
        self.interval = interval
        self._next_slot: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def __len__(self):
        return len(self._next_slot)

    async def wait(self, domain: str):
        async with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot.get(domain, 0.0))
            self._next_slot[domain] = slot + self.interval
            if len(self._next_slot) > self.PRUNE_THRESHOLD:
                self._prune(now)

        delay = slot - now
        if delay > 0:
            log.debug(f"[opengraph] Rate limiting {domain}, sleeping {delay:.2f}s")
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                # Give the slot back unless a later caller already queued behind it
                if self._next_slot.get(domain) == slot + self.interval:
                    self._next_slot[domain] = slot
                raise

    def _prune(self, now: float):
        for domain in [d for d, t in self._next_slot.items() if t <= now]:
            del self._next_slot[domain]


async def read_capped(resp: httpx.Response, limit: int) -> bytes:
    """Read a streamed body, stopping after `limit` bytes."""
    chunks = []
    size = 0
    async for chunk in resp.aiter_bytes():
        remaining = limit - size
        if len(chunk) >= remaining:
            chunks.append(chunk[:remaining])
            break
        chunks.append(chunk)
        size += len(chunk)
    return b"".join(chunks)


def _is_html(content_type: str) -> bool:
    ct = content_type.lower()
    return any(t in ct for t in OG_HTML_CONTENT_TYPES)


# =============================================================================
# Fetcher
# =============================================================================


class OpenGraphFetcher:
    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_concurrent: int = OG_MAX_CONCURRENT,
        domain_delay: float = OG_DOMAIN_DELAY,
        timeout: float = OG_REQUEST_TIMEOUT,
        max_redirects: int = OG_MAX_REDIRECTS,
        max_body_bytes: int = OG_MAX_BODY_BYTES,
    ):
        self.max_concurrent = max_concurrent
        self.timeout = timeout
        self.max_body_bytes = max_body_bytes
        self._client = httpx.AsyncClient(
            transport=transport,
            timeout=timeout,
            follow_redirects=True,
            max_redirects=max_redirects,
            headers={"User-Agent": OG_USER_AGENT, "Accept": OG_ACCEPT},
        )
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._url_locks = KeyedLocks()
        self._pacer = DomainPacer(domain_delay)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def fetch(self, url: str) -> PreviewMetadata:
        """
        Fetch `url` and extract its preview metadata.
        Raises an EnrichmentError subclass when the page cannot be used.
        """
        domain = extract_domain(url)
        if not domain or not url.lower().startswith(("http://", "https://")):
            raise InvalidURLError(f"invalid URL: {url!r}")

        async with self._url_locks.hold(url):
            async with self._semaphore:
                await self._pacer.wait(domain)
                log.debug(f"[opengraph] Fetching {url}")
                body = await self._get_html(url)

            meta = extract_preview(body, url)

        log.debug(
            f"[opengraph] Extracted {url}: title={meta.title!r} description={'yes' if meta.description else 'no'}"
        )
        return meta

    async def _get_html(self, url: str) -> bytes:
        # The client timeout bounds each connect or read; this bounds the whole request.
        try:
            return await asyncio.wait_for(self._stream_html(url), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise NetworkError(f"request timed out after {self.timeout:.0f}s: {url}") from e

    async def _stream_html(self, url: str) -> bytes:
        try:
            async with self._client.stream("GET", url) as resp:
                if not resp.is_success:
                    raise status_error(
                        resp.status_code, resp.reason_phrase, resp.headers.get("Retry-After")
                    )
                content_type = resp.headers.get("Content-Type", "")
                if not _is_html(content_type):
                    raise ContentTypeError(f"not an HTML page: {content_type or 'no content type'}")
                return await read_capped(resp, self.max_body_bytes)
        except httpx.TooManyRedirects as e:
            raise NetworkError(f"too many redirects: {url}") from e
        except httpx.TimeoutException as e:
            raise NetworkError(f"request timed out: {url}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"HTTP request failed: {e}") from e
