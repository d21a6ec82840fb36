# rent_aggregator/storage/durable_store.py

"""SQLite-backed durable cache and listing archive."""

import json
import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from rent_aggregator.config.settings import Settings
from rent_aggregator.errors import CacheUnavailable
from rent_aggregator.models.listing import Listing
from rent_aggregator.services.clock import Clock, SystemClock
from rent_aggregator.storage.volatile_store import CacheEntry

logger = logging.getLogger("rent_aggregator.cache.durable")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS search_cache (
    key           TEXT    PRIMARY KEY,
    results       TEXT    NOT NULL,
    created_at    REAL    NOT NULL,
    expires_at    REAL    NOT NULL,
    access_count  INTEGER NOT NULL DEFAULT 0,
    last_accessed REAL
);

CREATE INDEX IF NOT EXISTS idx_search_cache_expires
    ON search_cache(expires_at);

CREATE TABLE IF NOT EXISTS listings (
    id         TEXT PRIMARY KEY,
    source     TEXT NOT NULL,
    url        TEXT NOT NULL,
    title      TEXT NOT NULL,
    data       TEXT NOT NULL,
    first_seen TEXT NOT NULL,
    last_seen  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_listings_source
    ON listings(source);
"""


# Raised by json.loads or Listing.from_dict on a corrupt or foreign row.
_DECODE_ERRORS = (ValueError, KeyError, TypeError, AttributeError)


def _from_ts(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class SQLiteStore:
    """Durable tier of the search cache plus a listing archive.

    Every ``sqlite3.Error`` surfaces as :class:`CacheUnavailable` so the
    cache tier can degrade instead of failing the search.
    """

    def __init__(
        self,
        db_path: Path | str | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.clock = clock or SystemClock()
        path = Path(db_path) if db_path is not None else Settings.CACHE_DB_PATH
        self._lock = threading.Lock()
        try:
            if str(path) != ":memory:":
                path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(path), check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(_SCHEMA)
        except (sqlite3.Error, OSError) as exc:
            logger.error("Cannot open SQLite store at %s: %s", path, exc)
            raise CacheUnavailable(f"durable store at {path} unavailable") from exc
        logger.debug("SQLiteStore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    @contextmanager
    def _guard(self, action: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as exc:
                logger.error("SQLite %s failed: %s", action, exc)
                raise CacheUnavailable(f"durable store {action} failed") from exc

    # ── Search cache ─────────────────────────────────────

    def get_cached_search(self, key: str) -> CacheEntry | None:
        """Return the live cached search for *key*, or None."""
        now = self.clock.now().timestamp()
        with self._guard("read") as conn:
            row = conn.execute(
                "SELECT results, created_at, expires_at, access_count "
                "FROM search_cache WHERE key = ? AND expires_at > ?",
                (key, now),
            ).fetchone()
            if row is None:
                return None
            conn.execute(
                "UPDATE search_cache "
                "SET access_count = access_count + 1, last_accessed = ? "
                "WHERE key = ?",
                (now, key),
            )
            conn.commit()
        try:
            listings = tuple(
                Listing.from_dict(item) for item in json.loads(row[0])
            )
        except _DECODE_ERRORS as exc:
            logger.error("Discarding unreadable cache row %s: %r", key, exc)
            with self._guard("discard") as conn:
                conn.execute("DELETE FROM search_cache WHERE key = ?", (key,))
                conn.commit()
            raise CacheUnavailable(f"cached search {key} is corrupt") from exc
        return CacheEntry(
            key=key,
            listings=listings,
            created_at=_from_ts(row[1]),
            expires_at=_from_ts(row[2]),
            access_count=row[3] + 1,
        )

    def set_cached_search(
        self, key: str, listings: list[Listing], ttl: float,
    ) -> None:
        """Insert or replace the cached search for *key*."""
        now = self.clock.now().timestamp()
        payload = json.dumps(
            [item.to_dict() for item in listings], ensure_ascii=False,
        )
        with self._guard("write") as conn:
            conn.execute(
                "INSERT INTO search_cache "
                "(key, results, created_at, expires_at, access_count) "
                "VALUES (?, ?, ?, ?, 0) "
                "ON CONFLICT(key) DO UPDATE SET "
                "results=excluded.results, created_at=excluded.created_at, "
                "expires_at=excluded.expires_at, access_count=0",
                (key, payload, now, now + ttl),
            )
            conn.commit()

    def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key matching the glob *pattern*."""
        with self._guard("invalidate") as conn:
            cur = conn.execute(
                "DELETE FROM search_cache WHERE key GLOB ?", (pattern,),
            )
            conn.commit()
        if cur.rowcount:
            logger.info(
                "Invalidated %d durable entries matching %s",
                cur.rowcount,
                pattern,
            )
        return cur.rowcount

    def clean_expired_cache(self) -> int:
        """Delete expired rows; returns the number removed."""
        now = self.clock.now().timestamp()
        with self._guard("cleanup") as conn:
            cur = conn.execute(
                "DELETE FROM search_cache WHERE expires_at <= ?", (now,),
            )
            conn.commit()
        if cur.rowcount:
            logger.info("Cleaned %d expired durable entries", cur.rowcount)
        return cur.rowcount

    def clear_all_cache(self) -> int:
        with self._guard("clear") as conn:
            cur = conn.execute("DELETE FROM search_cache")
            conn.commit()
        logger.info("Durable cache purged (%d entries removed)", cur.rowcount)
        return cur.rowcount

    def get_cache_stats(self) -> dict[str, Any]:
        now = self.clock.now().timestamp()
        with self._guard("stats") as conn:
            total, live, accesses = conn.execute(
                "SELECT COUNT(*), "
                "       COALESCE(SUM(CASE WHEN expires_at > ? "
                "                         THEN 1 ELSE 0 END), 0), "
                "       COALESCE(SUM(access_count), 0) "
                "FROM search_cache",
                (now,),
            ).fetchone()
            listings = conn.execute(
                "SELECT COUNT(*) FROM listings"
            ).fetchone()[0]
        return {
            "entries": total,
            "live": live,
            "expired": total - live,
            "total_accesses": accesses,
            "listings": listings,
        }

    # ── Listing archive ──────────────────────────────────

    def upsert_listings(
        self,
        listings: list[Listing],
        seen_at: datetime | None = None,
    ) -> int:
        """Insert or refresh listings keyed by id.

        ``first_seen`` is kept from the original insert; ``last_seen``
        and the payload are updated.  Returns the number written.
        """
        ts = (seen_at or self.clock.now()).isoformat()
        with self._guard("upsert") as conn:
            conn.executemany(
                "INSERT INTO listings "
                "(id, source, url, title, data, first_seen, last_seen) "
                "VALUES (?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET "
                "url=excluded.url, title=excluded.title, "
                "data=excluded.data, last_seen=excluded.last_seen",
                [
                    (
                        item.id,
                        item.source,
                        item.url,
                        item.title,
                        json.dumps(item.to_dict(), ensure_ascii=False),
                        ts,
                        ts,
                    )
                    for item in listings
                ],
            )
            conn.commit()
        if listings:
            logger.info("Upserted %d listings at %s", len(listings), ts)
        return len(listings)

    def get_listing(self, listing_id: str) -> Listing | None:
        with self._guard("read") as conn:
            row = conn.execute(
                "SELECT data FROM listings WHERE id = ?", (listing_id,),
            ).fetchone()
        if row is None:
            return None
        try:
            return Listing.from_dict(json.loads(row[0]))
        except _DECODE_ERRORS as exc:
            raise CacheUnavailable(
                f"archived listing {listing_id} is corrupt"
            ) from exc

    def get_listing_seen(self, listing_id: str) -> tuple[str, str] | None:
        """Return ``(first_seen, last_seen)`` ISO timestamps."""
        with self._guard("read") as conn:
            row = conn.execute(
                "SELECT first_seen, last_seen FROM listings WHERE id = ?",
                (listing_id,),
            ).fetchone()
        return (row[0], row[1]) if row else None

    def count_listings(self, source: str | None = None) -> int:
        with self._guard("count") as conn:
            if source is None:
                row = conn.execute("SELECT COUNT(*) FROM listings").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM listings WHERE source = ?",
                    (source,),
                ).fetchone()
        return int(row[0])

    def health_check(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self._guard("health") as conn:
                conn.execute("SELECT 1").fetchone()
        except CacheUnavailable:
            return False
        return True
