import time

import pytest

from hntop.cache import PreviewCache
from hntop.database import Database
from hntop.hn_api import Item


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "data" / "hntop.db")
    database.init()
    yield database
    database.close()


@pytest.fixture
def cache(db):
    return PreviewCache(db)


def make_item(item_id: str, points: int = 100, comments: int = 10, link: str = "", created_at: int = 0) -> Item:
    now = int(time.time())
    return Item(
        item_id=item_id,
        title=f"Story {item_id}",
        link=link or f"https://example.com/{item_id}",
        comments_link=f"https://news.ycombinator.com/item?id={item_id}",
        points=points,
        comment_count=comments,
        author="pg",
        created_at=created_at or now,
        updated_at=now,
    )


def html_page(head: str = "", body: str = "") -> str:
    return f"<html><head>{head}</head><body>{body}</body></html>"
