"""
Runtime configuration.

Every value can be overridden from the environment (or a .env file in the
working directory). Components take these as constructor defaults.
"""

import os
from pathlib import Path

# Load .env file if present (real environment wins)
_env_file = Path.cwd() / ".env"
if _env_file.exists():
    for line in _env_file.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            key, _, value = line.partition("=")
            os.environ.setdefault(key.strip(), value.strip())

# =============================================================================
# Storage
# =============================================================================

DATA_DIR = Path.cwd() / ".hntop_data"
DB_FILE = Path(os.environ.get("HNTOP_DB", DATA_DIR / "hntop.db"))

# =============================================================================
# Hacker News / Algolia API
# =============================================================================

ALGOLIA_API_BASE = "https://hn.algolia.com/api/v1"
ALGOLIA_FRONT_PAGE = f"{ALGOLIA_API_BASE}/search_by_date?tags=front_page&hitsPerPage=100"
ALGOLIA_ITEM = f"{ALGOLIA_API_BASE}/items/{{id}}"
HN_COMMENTS_LINK = "https://news.ycombinator.com/item?id={id}"

FEED_ITEM_LIMIT = int(os.environ.get("HNTOP_LIMIT", "30"))
FEED_MIN_POINTS = int(os.environ.get("HNTOP_MIN_POINTS", "50"))

# =============================================================================
# OpenGraph fetching
# =============================================================================

OG_USER_AGENT = "HNTop-RSS/1.0 (OpenGraph fetcher)"
OG_ACCEPT = "text/html,application/xhtml+xml"
OG_HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")

OG_MAX_CONCURRENT = int(os.environ.get("HNTOP_OG_CONCURRENCY", "5"))
OG_DOMAIN_DELAY = float(os.environ.get("HNTOP_OG_DOMAIN_DELAY", "1.0"))  # seconds between requests to same domain
OG_REQUEST_TIMEOUT = float(os.environ.get("HNTOP_OG_TIMEOUT", "10"))
OG_MAX_REDIRECTS = 10
OG_MAX_BODY_BYTES = 1024 * 1024

# Overall budget for one enrichment (includes lock/permit/pacing waits)
OG_ENRICH_TIMEOUT = float(os.environ.get("HNTOP_OG_ENRICH_TIMEOUT", "15"))

OG_CACHE_TTL = 7 * 24 * 3600  # successful fetches
OG_FAILURE_TTL = 24 * 3600  # tombstones

# Truncation of preview text fields is opt-in
OG_TRUNCATE = os.environ.get("HNTOP_OG_TRUNCATE", "").lower() in ("1", "true", "yes")
OG_TRUNCATE_LIMITS = {"title": 200, "description": 500, "site_name": 100}

# =============================================================================
# Stats refresh
# =============================================================================

STATS_WORKERS = int(os.environ.get("HNTOP_STATS_WORKERS", "10"))
STATS_TIMEOUT = float(os.environ.get("HNTOP_STATS_TIMEOUT", "30"))
