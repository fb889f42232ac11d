"""Tests for the OpenGraph cache (TTL, upsert, sweep)."""

import time

import pytest

from hntop.config import OG_CACHE_TTL, OG_FAILURE_TTL
from hntop.errors import StorageError
from hntop.opengraph import PreviewMetadata

URL = "https://example.com/article"


def row_count(db, url=URL):
    return db.fetchone("SELECT COUNT(*) AS c FROM opengraph_cache WHERE url = ?", (url,))["c"]


def expire(db, url=URL):
    db.execute("UPDATE opengraph_cache SET expires_at = ? WHERE url = ?", (time.time() - 10, url))
    db.commit()


class TestStore:
    def test_success_entry(self, cache):
        before = time.time()
        cache.store(PreviewMetadata(url=URL, title="A", description="B"), success=True)

        entry = cache.lookup(URL)
        assert entry.success is True
        assert entry.title == "A"
        assert entry.description == "B"
        assert before + OG_CACHE_TTL <= entry.expires_at <= time.time() + OG_CACHE_TTL
        assert entry.fetched_at >= before

    def test_failure_entry_has_short_ttl(self, cache):
        before = time.time()
        cache.store(PreviewMetadata(url=URL), success=False)

        entry = cache.lookup(URL)
        assert entry.success is False
        assert entry.title == ""
        assert before + OG_FAILURE_TTL <= entry.expires_at <= time.time() + OG_FAILURE_TTL

    def test_upsert_keeps_one_row(self, db, cache):
        cache.store(PreviewMetadata(url=URL, title="First"), success=True)
        cache.store(PreviewMetadata(url=URL, title="Second"), success=True)

        assert row_count(db) == 1
        assert cache.lookup(URL).title == "Second"

    def test_failure_overwrites_success(self, db, cache):
        cache.store(PreviewMetadata(url=URL, title="Good", image="https://example.com/i.png"), success=True)
        cache.store(PreviewMetadata(url=URL), success=False)

        entry = cache.lookup(URL)
        assert row_count(db) == 1
        assert entry.success is False
        assert entry.title == "" and entry.image == ""

    def test_entry_converts_to_preview(self, cache):
        meta = PreviewMetadata(url=URL, title="T", description="D", image="https://x.example/i.png", site_name="S")
        cache.store(meta, success=True)
        assert cache.lookup(URL).to_preview() == meta


class TestLookup:
    def test_miss(self, cache):
        assert cache.lookup("https://nowhere.example/") is None

    def test_expired_entry_is_absent(self, db, cache):
        cache.store(PreviewMetadata(url=URL, title="Old"), success=True)
        expire(db)
        assert cache.lookup(URL) is None

    def test_storage_fault_raises(self, db, cache):
        db.execute("DROP TABLE opengraph_cache")
        with pytest.raises(StorageError):
            cache.lookup(URL)


class TestSweep:
    def test_removes_only_expired(self, db, cache):
        cache.store(PreviewMetadata(url=URL, title="Old"), success=True)
        cache.store(PreviewMetadata(url="https://example.com/fresh"), success=False)
        expire(db)

        assert cache.sweep() == 1
        assert row_count(db) == 0
        assert row_count(db, "https://example.com/fresh") == 1

    def test_idempotent(self, db, cache):
        cache.store(PreviewMetadata(url=URL), success=False)
        expire(db)
        assert cache.sweep() == 1
        assert cache.sweep() == 0
