# tests/test_durable_store.py

"""Tests for the SQLite durable cache and listing archive."""

import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from rent_aggregator.errors import CacheUnavailable
from rent_aggregator.storage.durable_store import SQLiteStore
from tests.fakes import FakeClock, make_listing


class TestSQLiteStore(unittest.TestCase):
    """Tests for the SQLiteStore class."""

    def setUp(self) -> None:
        """Create a fresh temp DB for each test."""
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "cache.db"
        self.clock = FakeClock()
        self.store = SQLiteStore(db_path=self.db_path, clock=self.clock)

    def tearDown(self) -> None:
        """Close the database."""
        self.store.close()
        self._tmp.cleanup()

    # ── Search cache ─────────────────────────────────────

    def test_round_trip(self) -> None:
        published = datetime(2026, 2, 1, tzinfo=timezone.utc)
        listings = [make_listing("a:1", published), make_listing("a:2")]
        self.store.set_cached_search("search:k", listings, ttl=600)

        entry = self.store.get_cached_search("search:k")

        assert entry is not None
        self.assertEqual(list(entry.listings), listings)
        self.assertEqual(entry.access_count, 1)
        self.assertEqual(entry.remaining_ttl(self.clock.now()), 600)

    def test_expired_entry_not_returned(self) -> None:
        self.store.set_cached_search("search:k", [make_listing()], ttl=60)
        self.clock.advance(60)
        self.assertIsNone(self.store.get_cached_search("search:k"))

    def test_overwrite_resets_expiry(self) -> None:
        self.store.set_cached_search("search:k", [make_listing("a:1")], ttl=60)
        self.clock.advance(50)
        self.store.set_cached_search("search:k", [make_listing("a:2")], ttl=60)
        self.clock.advance(50)
        entry = self.store.get_cached_search("search:k")
        assert entry is not None
        self.assertEqual(entry.listings[0].id, "a:2")

    def test_invalidate_pattern(self) -> None:
        self.store.set_cached_search('search:{"city":"berlin","x":1}', [], ttl=60)
        self.store.set_cached_search('search:{"city":"berlin","x":2}', [], ttl=60)
        self.store.set_cached_search('search:{"city":"bonn"}', [], ttl=60)

        removed = self.store.invalidate_pattern('search:*"city":"berlin"*')

        self.assertEqual(removed, 2)
        self.assertIsNotNone(
            self.store.get_cached_search('search:{"city":"bonn"}')
        )

    def test_clean_expired(self) -> None:
        self.store.set_cached_search("a", [], ttl=10)
        self.store.set_cached_search("b", [], ttl=100)
        self.clock.advance(30)
        self.assertEqual(self.store.clean_expired_cache(), 1)
        stats = self.store.get_cache_stats()
        self.assertEqual(stats["entries"], 1)
        self.assertEqual(stats["live"], 1)

    def test_clear_all(self) -> None:
        self.store.set_cached_search("a", [], ttl=10)
        self.store.set_cached_search("b", [], ttl=10)
        self.assertEqual(self.store.clear_all_cache(), 2)
        self.assertEqual(self.store.get_cache_stats()["entries"], 0)

    def test_stats_count_accesses(self) -> None:
        self.store.set_cached_search("a", [], ttl=100)
        self.store.get_cached_search("a")
        self.store.get_cached_search("a")
        self.assertEqual(self.store.get_cache_stats()["total_accesses"], 2)

    # ── Listing archive ──────────────────────────────────

    def test_upsert_keeps_first_seen(self) -> None:
        listing = make_listing("a:1", price=500.0)
        self.store.upsert_listings([listing])
        first_ts = self.clock.now().isoformat()

        self.clock.advance(3600)
        updated = make_listing("a:1", price=550.0)
        self.assertEqual(self.store.upsert_listings([updated]), 1)

        self.assertEqual(self.store.count_listings(), 1)
        self.assertEqual(self.store.get_listing("a:1"), updated)
        self.assertEqual(
            self.store.get_listing_seen("a:1"),
            (first_ts, self.clock.now().isoformat()),
        )

    def test_count_by_source(self) -> None:
        self.store.upsert_listings([
            make_listing("a:1", source="a"),
            make_listing("b:1", source="b"),
            make_listing("b:2", source="b"),
        ])
        self.assertEqual(self.store.count_listings("b"), 2)
        self.assertIsNone(self.store.get_listing("missing"))

    # ── Health / outage ──────────────────────────────────

    def test_health_check(self) -> None:
        self.assertTrue(self.store.health_check())
        self.store.close()
        self.assertFalse(self.store.health_check())

    def test_closed_db_raises_cache_unavailable(self) -> None:
        self.store.close()
        with self.assertRaises(CacheUnavailable):
            self.store.get_cached_search("a")
        with self.assertRaises(CacheUnavailable):
            self.store.set_cached_search("a", [], ttl=10)

    def test_unopenable_path_raises_cache_unavailable(self) -> None:
        """A directory where the DB file should be cannot be opened."""
        with self.assertRaises(CacheUnavailable):
            SQLiteStore(db_path=self._tmp.name, clock=self.clock)

    def test_corrupt_row_discarded(self) -> None:
        self.store.set_cached_search("search:k", [make_listing()], ttl=60)
        self.store._conn.execute("UPDATE search_cache SET results = '{'")
        self.store._conn.commit()

        with self.assertRaises(CacheUnavailable):
            self.store.get_cached_search("search:k")
        self.assertIsNone(self.store.get_cached_search("search:k"))
        self.assertEqual(self.store.get_cache_stats()["entries"], 0)

    def test_foreign_row_shape_discarded(self) -> None:
        self.store.set_cached_search("search:k", [], ttl=60)
        self.store._conn.execute(
            "UPDATE search_cache SET results = '[{\"id\": 1}]'"
        )
        self.store._conn.commit()
        with self.assertRaises(CacheUnavailable):
            self.store.get_cached_search("search:k")

    def test_creates_parent_directory(self) -> None:
        nested = Path(self._tmp.name) / "deep" / "dir" / "c.db"
        store = SQLiteStore(db_path=nested, clock=self.clock)
        store.close()
        self.assertTrue(nested.exists())


if __name__ == "__main__":
    unittest.main()
