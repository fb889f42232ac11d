"""Tests for the Algolia front page client."""

import httpx
import respx

from hntop.hn_api import extract_domain, fetch_front_page, parse_algolia_hit

FRONT_PAGE = "https://hn.algolia.com/api/v1/search_by_date"

HIT = {
    "objectID": "4242",
    "title": "Show HN: Something",
    "url": "https://example.com/post",
    "author": "alice",
    "points": 150,
    "num_comments": 42,
    "created_at_i": 1700000000,
}


class TestParseHit:
    def test_full_hit(self):
        item = parse_algolia_hit(HIT, now=1700000500)
        assert item.item_id == "4242"
        assert item.comments_link == "https://news.ycombinator.com/item?id=4242"
        assert (item.points, item.comment_count) == (150, 42)
        assert (item.created_at, item.updated_at) == (1700000000, 1700000500)

    def test_missing_fields(self):
        item = parse_algolia_hit({"objectID": "1", "points": None, "url": None}, now=99)
        assert item.title == "[no title]"
        assert item.link == ""
        assert item.points == 0
        assert item.created_at == 99

    def test_no_id(self):
        assert parse_algolia_hit({"title": "orphan"}) is None


class TestExtractDomain:
    def test_host_is_lowercased(self):
        assert extract_domain("https://Sub.Example.COM:8080/path") == "sub.example.com"

    def test_no_host(self):
        assert extract_domain("") is None
        assert extract_domain("just text") is None


class TestFetchFrontPage:
    async def test_success(self):
        with respx.mock:
            route = respx.get(url__startswith=FRONT_PAGE).mock(
                return_value=httpx.Response(200, json={"hits": [HIT, {"title": "no id"}]})
            )
            async with httpx.AsyncClient() as client:
                items = await fetch_front_page(client)

        assert [i.item_id for i in items] == ["4242"]
        assert route.calls.last.request.url.params["tags"] == "front_page"

    async def test_malformed_hits_are_skipped(self):
        with respx.mock:
            respx.get(url__startswith=FRONT_PAGE).mock(
                return_value=httpx.Response(200, json={"hits": ["oops", None, HIT]})
            )
            async with httpx.AsyncClient() as client:
                items = await fetch_front_page(client)

        assert [i.item_id for i in items] == ["4242"]

    async def test_error_returns_empty(self):
        with respx.mock:
            respx.get(url__startswith=FRONT_PAGE).mock(return_value=httpx.Response(502))
            async with httpx.AsyncClient() as client:
                assert await fetch_front_page(client) == []

    async def test_bad_json_returns_empty(self):
        with respx.mock:
            respx.get(url__startswith=FRONT_PAGE).mock(return_value=httpx.Response(200, text="<html>"))
            async with httpx.AsyncClient() as client:
                assert await fetch_front_page(client) == []
