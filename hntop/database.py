"""
SQLite store for front page items and the OpenGraph cache.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Optional

from hntop.errors import StorageError
from hntop.hn_api import Item

log = logging.getLogger("hntop")

SCHEMA = """
-- Front page items
CREATE TABLE IF NOT EXISTS items (
    item_id TEXT PRIMARY KEY,  -- HN id, for deduplication
    title TEXT NOT NULL,
    link TEXT NOT NULL DEFAULT '',  -- the actual article URL
    comments_link TEXT,
    points INTEGER DEFAULT 0,
    comment_count INTEGER DEFAULT 0,
    author TEXT,
    created_at INTEGER,  -- HN submission time (unix)
    updated_at INTEGER  -- last time stats were written (unix)
);

-- OpenGraph previews, one row per URL (success or tombstone)
CREATE TABLE IF NOT EXISTS opengraph_cache (
    url TEXT PRIMARY KEY,
    title TEXT,
    description TEXT,
    image TEXT,
    site_name TEXT,
    fetched_at REAL,
    expires_at REAL NOT NULL,
    fetch_success INTEGER NOT NULL DEFAULT 1
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_items_created ON items(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_opengraph_expires ON opengraph_cache(expires_at);
"""

ITEM_COLUMNS = "item_id, title, link, comments_link, points, comment_count, author, created_at, updated_at"


@contextmanager
def storage_errors(action: str):
    """Re-raise sqlite failures as StorageError."""
    try:
        yield
    except sqlite3.Error as e:
        raise StorageError(f"{action}: {e}") from e


def _row_to_item(row: sqlite3.Row) -> Item:
    return Item(
        item_id=row["item_id"],
        title=row["title"],
        link=row["link"] or "",
        comments_link=row["comments_link"] or "",
        points=row["points"] or 0,
        comment_count=row["comment_count"] or 0,
        author=row["author"] or "",
        created_at=row["created_at"] or 0,
        updated_at=row["updated_at"] or 0,
    )


class Database:
    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._local = threading.local()

    def _get_conn(self) -> sqlite3.Connection:
        if not hasattr(self._local, "conn"):
            self._local.conn = sqlite3.connect(
                str(self.db_path), check_same_thread=False
            )
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA journal_mode = WAL")
            self._local.conn.execute("PRAGMA synchronous = NORMAL")  # Safe with WAL
            self._local.conn.execute("PRAGMA busy_timeout = 5000")  # Wait 5s for locks
        return self._local.conn

    def init(self):
        """Create the data directory and schema. Raises StorageError on failure."""
        with storage_errors("initialize database"):
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(f"create {self.db_path.parent}: {e}") from e
            conn = self._get_conn()
            conn.executescript(SCHEMA)
            conn.commit()
        log.debug(f"Database initialized at {self.db_path}")

    def close(self):
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            del self._local.conn

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        return self._get_conn().execute(sql, params)

    def commit(self):
        self._get_conn().commit()

    def fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        return self.execute(sql, params).fetchall()

    # --- Item operations ---

    def upsert_items(self, items: Iterable[Item]) -> frozenset[str]:
        """
        Insert or update front page items (created_at is kept on conflict).
        Returns the ids that were written; their stats are already fresh.
        """
        written = set()
        for item in items:
            try:
                with storage_errors(f"upsert item {item.item_id}"):
                    cursor = self.execute(
                        """
                        INSERT INTO items (item_id, title, link, comments_link, points, comment_count, author, created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(item_id) DO UPDATE SET
                            title = excluded.title,
                            link = excluded.link,
                            comments_link = excluded.comments_link,
                            points = excluded.points,
                            comment_count = excluded.comment_count,
                            author = excluded.author,
                            updated_at = excluded.updated_at
                    """,
                        (
                            item.item_id,
                            item.title,
                            item.link,
                            item.comments_link,
                            item.points,
                            item.comment_count,
                            item.author,
                            item.created_at,
                            item.updated_at,
                        ),
                    )
            except StorageError as e:
                log.error(f"Error updating item: {e}")
                continue
            if cursor.rowcount > 0:
                written.add(item.item_id)
        with storage_errors("commit items"):
            self.commit()
        return frozenset(written)

    def get_items(self, limit: int = 30, min_points: int = 0) -> list[Item]:
        """Newest items with more than `min_points` points."""
        with storage_errors("query items"):
            rows = self.fetchall(
                f"SELECT {ITEM_COLUMNS} FROM items WHERE points > ? ORDER BY created_at DESC LIMIT ?",
                (min_points, limit),
            )
        return [_row_to_item(row) for row in rows]

    def get_item(self, item_id: str) -> Optional[Item]:
        with storage_errors(f"query item {item_id}"):
            row = self.fetchone(f"SELECT {ITEM_COLUMNS} FROM items WHERE item_id = ?", (item_id,))
        return _row_to_item(row) if row else None

    def update_item_stats(self, item_id: str, points: int, comment_count: int, updated_at: int) -> bool:
        with storage_errors(f"update stats for {item_id}"):
            cursor = self.execute(
                """
                UPDATE items SET
                    points = ?,
                    comment_count = ?,
                    updated_at = ?
                WHERE item_id = ?
            """,
                (points, comment_count, updated_at, item_id),
            )
            self.commit()
        return cursor.rowcount > 0

    def delete_item(self, item_id: str) -> bool:
        with storage_errors(f"delete item {item_id}"):
            cursor = self.execute("DELETE FROM items WHERE item_id = ?", (item_id,))
            self.commit()
        return cursor.rowcount > 0

    # --- OpenGraph cache ---

    def get_opengraph(self, url: str, now: float) -> Optional[sqlite3.Row]:
        """Cache row for `url` unless it has expired."""
        with storage_errors("query opengraph cache"):
            return self.fetchone(
                """
                SELECT url, title, description, image, site_name, fetched_at, expires_at, fetch_success
                FROM opengraph_cache
                WHERE url = ? AND expires_at > ?
            """,
                (url, now),
            )

    def upsert_opengraph(
        self,
        url: str,
        title: str,
        description: str,
        image: str,
        site_name: str,
        fetched_at: float,
        expires_at: float,
        success: bool,
    ):
        with storage_errors("cache opengraph data"):
            self.execute(
                """
                INSERT INTO opengraph_cache (url, title, description, image, site_name, fetched_at, expires_at, fetch_success)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET
                    title = excluded.title,
                    description = excluded.description,
                    image = excluded.image,
                    site_name = excluded.site_name,
                    fetched_at = excluded.fetched_at,
                    expires_at = excluded.expires_at,
                    fetch_success = excluded.fetch_success
            """,
                (url, title, description, image, site_name, fetched_at, expires_at, int(success)),
            )
            self.commit()

    def delete_expired_opengraph(self, now: float) -> int:
        with storage_errors("cleanup expired opengraph cache"):
            cursor = self.execute("DELETE FROM opengraph_cache WHERE expires_at < ?", (now,))
            self.commit()
        return cursor.rowcount
