"""End-to-end pass tests with all HTTP traffic mocked."""

import argparse
import asyncio
import time

import httpx
import respx

from hntop import main as main_module
from hntop.main import main_async, run_forever, run_once
from tests.conftest import html_page, make_item

FRONT_PAGE = "https://hn.algolia.com/api/v1/search_by_date"
STORY_URL = "https://news.example/story"


def front_page(*hits):
    return httpx.Response(200, json={"hits": list(hits)})


def hit(item_id, link=STORY_URL, points=150):
    return {
        "objectID": item_id,
        "title": f"Story {item_id}",
        "url": link,
        "author": "alice",
        "points": points,
        "num_comments": 12,
        "created_at_i": int(time.time()),
    }


def og_page(title):
    return httpx.Response(
        200,
        text=html_page(f'<meta property="og:title" content="{title}"><meta property="og:site_name" content="News">'),
        headers={"Content-Type": "text/html"},
    )


class TestRunOnce:
    async def test_full_pass(self, db):
        db.upsert_items([make_item("old", points=90, link="https://old.example/x", created_at=1000)])

        with respx.mock:
            respx.get(url__startswith=FRONT_PAGE).mock(return_value=front_page(hit("1")))
            stats_route = respx.get("https://hn.algolia.com/api/v1/items/old").mock(
                return_value=httpx.Response(404)
            )
            preview_route = respx.get(STORY_URL).mock(return_value=og_page("Fresh"))

            result = await run_once(db)

        assert [i.item_id for i in result.items] == ["1"]
        assert db.get_item("old") is None
        assert stats_route.call_count == 1
        assert (result.stats.deleted, result.stats.skipped) == (1, 1)

        assert preview_route.call_count == 1
        preview = result.preview_for(result.items[0])
        assert (preview.title, preview.site_name) == ("Fresh", "News")

    async def test_without_previews(self, db):
        with respx.mock:
            respx.get(url__startswith=FRONT_PAGE).mock(return_value=front_page(hit("1"), hit("2", points=10)))
            result = await run_once(db, previews=False)

        # "2" is stored but below the points threshold
        assert [i.item_id for i in result.items] == ["1"]
        assert db.get_item("2") is not None
        assert result.previews == {}
        assert result.preview_for(result.items[0]) is None

    async def test_front_page_outage_still_refreshes_stored_items(self, db):
        db.upsert_items([make_item("a", points=60)])

        with respx.mock:
            respx.get(url__startswith=FRONT_PAGE).mock(return_value=httpx.Response(503))
            respx.get("https://hn.algolia.com/api/v1/items/a").mock(
                return_value=httpx.Response(200, json={"points": 75, "num_comments": 3})
            )
            result = await run_once(db, previews=False)

        assert result.stats.updated == 1
        assert result.items[0].points == 75


class TestRunForever:
    async def test_stops_after_event(self, db):
        stop_event = asyncio.Event()

        def serve_and_stop(request):
            stop_event.set()
            return front_page()

        with respx.mock:
            route = respx.get(url__startswith=FRONT_PAGE).mock(side_effect=serve_and_stop)
            await asyncio.wait_for(run_forever(db, 60, stop_event, previews=False), timeout=5)

        assert route.call_count == 1

    async def test_failed_pass_does_not_stop_scheduler(self, db, monkeypatch):
        stop_event = asyncio.Event()
        calls = []

        async def flaky_pass(db, **kwargs):
            calls.append(kwargs)
            if len(calls) == 1:
                raise RuntimeError("unexpected payload")
            stop_event.set()

        monkeypatch.setattr(main_module, "run_once", flaky_pass)
        await asyncio.wait_for(run_forever(db, 0.001, stop_event, previews=False), timeout=5)

        assert len(calls) == 2


class TestMainAsync:
    async def test_unopenable_database(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        args = argparse.Namespace(
            db=blocker / "hntop.db", limit=30, min_points=50, interval=0, no_previews=True, debug=False
        )
        assert await main_async(args) == 1
