# rent_aggregator/storage/search_cache.py

"""Two-tier search cache: volatile first, durable as fallback."""

import logging
import threading
from typing import Any

from rent_aggregator.config.settings import Settings
from rent_aggregator.errors import CacheUnavailable
from rent_aggregator.models.criteria import city_key_pattern
from rent_aggregator.models.listing import Listing
from rent_aggregator.services.clock import Clock, SystemClock
from rent_aggregator.storage.durable_store import SQLiteStore
from rent_aggregator.storage.volatile_store import MemoryStore

logger = logging.getLogger("rent_aggregator.cache")


class CacheTier:
    """Memoizes normalized search results by canonical criteria key.

    Reads consult the volatile store, then the durable one; a durable
    hit is copied into the volatile store with its *remaining* TTL.
    Writes go to the volatile store and fall back to the durable one.
    Backend failures never propagate: reads degrade to a miss and
    writes report ``False``.
    """

    def __init__(
        self,
        volatile: MemoryStore | None = None,
        durable: SQLiteStore | None = None,
        clock: Clock | None = None,
        default_ttl: float = Settings.CACHE_TTL,
    ) -> None:
        self.volatile = volatile
        self.durable = durable
        self.clock = clock or SystemClock()
        self.default_ttl = default_ttl
        self._counters: dict[str, int] = {
            "volatile_hits": 0,
            "durable_hits": 0,
            "misses": 0,
            "writes": 0,
            "errors": 0,
        }
        self._counter_lock = threading.Lock()

    def _bump(self, counter: str) -> None:
        with self._counter_lock:
            self._counters[counter] += 1

    def _error(self, tier: str, action: str, exc: Exception) -> None:
        self._bump("errors")
        logger.warning("Cache %s %s failed: %s", tier, action, exc)

    # ── Read / write ─────────────────────────────────────

    def get(self, key: str) -> list[Listing] | None:
        """Return cached listings for *key* or None on miss/outage."""
        if self.volatile is not None:
            try:
                entry = self.volatile.get(key)
            except CacheUnavailable as exc:
                self._error("volatile", "read", exc)
            else:
                if entry is not None:
                    self._bump("volatile_hits")
                    logger.info("Cache hit (volatile) for %s", key)
                    return list(entry.listings)

        if self.durable is not None:
            try:
                entry = self.durable.get_cached_search(key)
            except CacheUnavailable as exc:
                self._error("durable", "read", exc)
            else:
                if entry is not None:
                    self._bump("durable_hits")
                    logger.info("Cache hit (durable) for %s", key)
                    self._promote(key, entry.listings, entry.remaining_ttl(
                        self.clock.now()
                    ))
                    return list(entry.listings)

        self._bump("misses")
        logger.debug("Cache miss for %s", key)
        return None

    def _promote(
        self, key: str, listings: tuple[Listing, ...], ttl: float,
    ) -> None:
        if self.volatile is None or ttl <= 0:
            return
        try:
            self.volatile.set(key, list(listings), ttl)
        except CacheUnavailable as exc:
            self._error("volatile", "promote", exc)

    def set(
        self,
        key: str,
        listings: list[Listing],
        ttl: float | None = None,
    ) -> bool:
        """Store *listings*; returns False if no tier accepted them."""
        effective = self.default_ttl if ttl is None else ttl
        if self.volatile is not None:
            try:
                self.volatile.set(key, listings, effective)
            except CacheUnavailable as exc:
                self._error("volatile", "write", exc)
            else:
                self._bump("writes")
                logger.info(
                    "Cached %d listings for %s (ttl=%ss)",
                    len(listings),
                    key,
                    effective,
                )
                return True

        if self.durable is not None:
            try:
                self.durable.set_cached_search(key, listings, effective)
            except CacheUnavailable as exc:
                self._error("durable", "write", exc)
            else:
                self._bump("writes")
                logger.info(
                    "Cached %d listings for %s in durable store",
                    len(listings),
                    key,
                )
                return True

        logger.warning("No cache tier accepted %s; passing through", key)
        return False

    # ── Invalidation ─────────────────────────────────────

    def invalidate(self, pattern: str) -> int:
        """Delete keys matching the glob *pattern* from both tiers."""
        removed = 0
        if self.volatile is not None:
            try:
                for key in self.volatile.keys(pattern):
                    removed += int(self.volatile.delete(key))
            except CacheUnavailable as exc:
                self._error("volatile", "invalidate", exc)
        if self.durable is not None:
            try:
                removed += self.durable.invalidate_pattern(pattern)
            except CacheUnavailable as exc:
                self._error("durable", "invalidate", exc)
        logger.info("Invalidated %d cache entries matching %s", removed, pattern)
        return removed

    def invalidate_city(self, city: str) -> int:
        return self.invalidate(city_key_pattern(city))

    def clear(self) -> int:
        """Purge both tiers; returns the number of entries removed."""
        removed = 0
        if self.volatile is not None:
            try:
                removed += self.volatile.clear()
            except CacheUnavailable as exc:
                self._error("volatile", "clear", exc)
        if self.durable is not None:
            try:
                removed += self.durable.clear_all_cache()
            except CacheUnavailable as exc:
                self._error("durable", "clear", exc)
        return removed

    # ── Introspection ────────────────────────────────────

    def health_check(self) -> dict[str, str]:
        """Status per configured tier: ``ok``, ``down`` or ``disabled``."""
        status = {"volatile": "disabled", "durable": "disabled"}
        if self.volatile is not None:
            try:
                status["volatile"] = "ok" if self.volatile.ping() else "down"
            except CacheUnavailable:
                status["volatile"] = "down"
        if self.durable is not None:
            status["durable"] = "ok" if self.durable.health_check() else "down"
        return status

    def stats(self) -> dict[str, Any]:
        with self._counter_lock:
            result: dict[str, Any] = dict(self._counters)
        if self.volatile is not None:
            try:
                result["volatile"] = self.volatile.stats()
            except CacheUnavailable as exc:
                result["volatile"] = {"error": str(exc)}
        if self.durable is not None:
            try:
                result["durable"] = self.durable.get_cache_stats()
            except CacheUnavailable as exc:
                result["durable"] = {"error": str(exc)}
        return result
