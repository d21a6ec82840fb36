# rent_aggregator/storage/volatile_store.py

"""In-memory TTL store backing the fast cache tier."""

import fnmatch
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from rent_aggregator.errors import CacheUnavailable
from rent_aggregator.models.listing import Listing
from rent_aggregator.services.clock import Clock, SystemClock

logger = logging.getLogger("rent_aggregator.cache.volatile")


@dataclass
class CacheEntry:
    """Cached listings for one canonical search key."""

    key: str
    listings: tuple[Listing, ...]
    created_at: datetime
    expires_at: datetime
    access_count: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def remaining_ttl(self, now: datetime) -> float:
        """Seconds left before expiry (never negative)."""
        return max(0.0, (self.expires_at - now).total_seconds())


class MemoryStore:
    """Process-local key → CacheEntry map with lazy expiry.

    Reads bump ``access_count`` but never extend ``expires_at``.
    A disabled store raises :class:`CacheUnavailable` on every call so
    the cache tier treats it exactly like an unreachable server.
    """

    def __init__(self, clock: Clock | None = None, enabled: bool = True) -> None:
        self.clock = clock or SystemClock()
        self.enabled = enabled
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def _require(self) -> None:
        if not self.enabled:
            raise CacheUnavailable("volatile store is disabled")

    def ping(self) -> bool:
        self._require()
        return True

    def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for *key*, evicting it if expired."""
        self._require()
        now = self.clock.now()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                logger.debug("Evicted expired entry %s", key)
                return None
            entry.access_count += 1
            return entry

    def set(self, key: str, listings: list[Listing], ttl: float) -> CacheEntry:
        """Store *listings* under *key* for *ttl* seconds."""
        self._require()
        now = self.clock.now()
        entry = CacheEntry(
            key=key,
            listings=tuple(listings),
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
        )
        with self._lock:
            self._entries[key] = entry
        return entry

    def delete(self, key: str) -> bool:
        self._require()
        with self._lock:
            return self._entries.pop(key, None) is not None

    def keys(self, pattern: str = "*") -> list[str]:
        """Glob-match stored keys (``*`` / ``?`` wildcards)."""
        self._require()
        with self._lock:
            return [
                k for k in self._entries
                if fnmatch.fnmatchcase(k, pattern)
            ]

    def clear(self) -> int:
        """Purge all entries; returns how many were removed."""
        self._require()
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Volatile cache purged (%d entries removed)", count)
        return count

    def sweep_expired(self) -> int:
        """Evict every expired entry; returns the number removed."""
        self._require()
        now = self.clock.now()
        with self._lock:
            expired = [
                k for k, e in self._entries.items() if e.is_expired(now)
            ]
            for k in expired:
                del self._entries[k]
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    def stats(self) -> dict[str, int]:
        self._require()
        now = self.clock.now()
        with self._lock:
            live = sum(
                1 for e in self._entries.values() if not e.is_expired(now)
            )
            total = len(self._entries)
        return {"entries": total, "live": live, "expired": total - live}
