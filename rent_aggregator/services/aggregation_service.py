# rent_aggregator/services/aggregation_service.py

"""Search entry point: cache → translate → fetch → normalize → page."""

import asyncio
import logging
import math
from collections import Counter
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from rent_aggregator.config.settings import Settings
from rent_aggregator.connectors.base_connector import BaseConnector
from rent_aggregator.connectors.registry import load_connectors
from rent_aggregator.connectors.request_executor import RequestExecutor
from rent_aggregator.errors import CacheUnavailable, ValidationError
from rent_aggregator.models.criteria import (
    PropertyType,
    SearchCriteria,
    canonical_city,
)
from rent_aggregator.models.listing import Listing
from rent_aggregator.services.clock import Clock, SystemClock
from rent_aggregator.services.fetch_orchestrator import FetchOrchestrator
from rent_aggregator.services.health_checker import HealthChecker
from rent_aggregator.services.normalizer import ListingNormalizer
from rent_aggregator.services.translation import TermTranslator, Translator
from rent_aggregator.storage.durable_store import SQLiteStore
from rent_aggregator.storage.search_cache import CacheTier
from rent_aggregator.storage.volatile_store import MemoryStore

logger = logging.getLogger("rent_aggregator.service")


@dataclass(frozen=True)
class Pagination:
    """1-based page window over the full result list."""

    current_page: int
    page_size: int
    total_results: int
    total_pages: int
    has_next: bool
    has_prev: bool


@dataclass
class SearchResponse:
    """Outcome of one aggregated search."""

    results: list[Listing]
    pagination: Pagination
    cache_status: str  # "hit", "miss", "bypass"
    criteria: dict[str, Any]
    errors: dict[str, str] = field(default_factory=lambda: dict[str, str]())
    dropped: int = 0
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [item.to_dict() for item in self.results],
            "pagination": asdict(self.pagination),
            "cache_status": self.cache_status,
            "criteria": self.criteria,
            "errors": dict(self.errors),
            "dropped": self.dropped,
            "duration_ms": round(self.duration_ms, 1),
        }


def validate_paging(page: int, page_size: int) -> None:
    problems: list[str] = []
    if not 1 <= page <= Settings.MAX_PAGE:
        problems.append(f"page must be between 1 and {Settings.MAX_PAGE}")
    if not 1 <= page_size <= Settings.MAX_PAGE_SIZE:
        problems.append(
            f"page size must be between 1 and {Settings.MAX_PAGE_SIZE}"
        )
    if problems:
        raise ValidationError(problems)


def paginate(
    listings: Sequence[Listing], page: int, page_size: int,
) -> tuple[list[Listing], Pagination]:
    """Slice ``[(page-1)*size, page*size)`` and describe the window."""
    total = len(listings)
    total_pages = math.ceil(total / page_size)
    offset = (page - 1) * page_size
    return list(listings[offset:offset + page_size]), Pagination(
        current_page=page,
        page_size=page_size,
        total_results=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


def sort_by_recency(listings: Sequence[Listing]) -> list[Listing]:
    """Newest first; undated listings last, each group order-stable."""
    dated = [item for item in listings if item.published_at is not None]
    undated = [item for item in listings if item.published_at is None]
    dated.sort(key=lambda item: item.published_at, reverse=True)  # type: ignore[arg-type, return-value]
    return dated + undated


class AggregationService:
    """Coordinates cache, translation, fetching and normalization.

    Portal failures end up in ``SearchResponse.errors``; only invalid
    criteria or paging raise (:class:`ValidationError`).
    """

    def __init__(
        self,
        connectors: Sequence[BaseConnector],
        cache: CacheTier,
        orchestrator: FetchOrchestrator | None = None,
        normalizer: ListingNormalizer | None = None,
        translator: Translator | None = None,
        durable_store: SQLiteStore | None = None,
        clock: Clock | None = None,
        concurrency_limit: int = Settings.CONCURRENCY_LIMIT,
        search_timeout: float | None = Settings.SEARCH_TIMEOUT,
    ) -> None:
        self.clock = clock or SystemClock()
        self.connectors = list(connectors)
        self.cache = cache
        self.orchestrator = orchestrator or FetchOrchestrator(clock=self.clock)
        self.normalizer = normalizer or ListingNormalizer(clock=self.clock)
        self.translator = translator
        self.durable_store = durable_store
        self.concurrency_limit = concurrency_limit
        self.search_timeout = search_timeout
        self.health_checker = HealthChecker(self.connectors, clock=self.clock)
        self._last_refresh: dict[str, datetime] = {}
        self._dropped: Counter[str] = Counter()

    # ── Search ───────────────────────────────────────────

    async def search(
        self,
        criteria: SearchCriteria,
        page: int = 1,
        page_size: int = Settings.DEFAULT_PAGE_SIZE,
        force_refresh: bool = False,
    ) -> SearchResponse:
        """Return one page of aggregated listings for *criteria*."""
        started = self.clock.monotonic()
        criteria.validate()
        validate_paging(page, page_size)

        key = criteria.cache_key()
        listings: list[Listing] | None = None
        cache_status = "bypass" if force_refresh else "miss"
        errors: dict[str, str] = {}
        dropped = 0

        if not force_refresh:
            listings = await asyncio.to_thread(self.cache.get, key)
            if listings is not None:
                cache_status = "hit"

        if listings is None:
            listings, errors, dropped = await self._fetch_fresh(criteria)
            if listings:
                await asyncio.to_thread(self.cache.set, key, listings)
                await self._persist(listings)
            city = canonical_city(criteria.city)
            if city:
                self._last_refresh[city] = self.clock.now()

        results, pagination = paginate(listings, page, page_size)
        duration_ms = (self.clock.monotonic() - started) * 1000
        logger.info(
            "Search %s: %d results (%s) page %d/%d in %.0fms",
            key,
            pagination.total_results,
            cache_status,
            page,
            pagination.total_pages,
            duration_ms,
        )
        return SearchResponse(
            results=results,
            pagination=pagination,
            cache_status=cache_status,
            criteria=criteria.canonical(),
            errors=errors,
            dropped=dropped,
            duration_ms=duration_ms,
        )

    def _translate(self, criteria: SearchCriteria) -> SearchCriteria:
        """Map the city to its German name; failures keep the original."""
        if self.translator is None or not criteria.city:
            return criteria
        try:
            translated = self.translator.translate(criteria.city, "es", "de")
        except Exception as exc:
            logger.warning(
                "Translation of %r failed, using original: %s",
                criteria.city,
                exc,
            )
            return criteria
        if not translated or translated == criteria.city:
            return criteria
        logger.info("Translated city %r → %r", criteria.city, translated)
        return criteria.with_city(translated)

    async def _fetch_fresh(
        self, criteria: SearchCriteria,
    ) -> tuple[list[Listing], dict[str, str], int]:
        fetch_criteria = self._translate(criteria)
        portal_results = await self.orchestrator.run(
            fetch_criteria,
            self.connectors,
            concurrency_limit=self.concurrency_limit,
            timeout=self.search_timeout,
        )

        combined: list[Listing] = []
        errors: dict[str, str] = {}
        dropped = 0
        for result in portal_results:
            if result.error is not None:
                errors[result.portal] = result.error
                continue
            report = self.normalizer.normalize_batch(
                result.listings, result.portal
            )
            dropped += report.dropped
            self._dropped[result.portal] += report.dropped
            combined.extend(report.listings)

        logger.info(
            "Combined %d listings from %d portal(s), %d failed, %d dropped",
            len(combined),
            len(portal_results) - len(errors),
            len(errors),
            dropped,
        )
        return sort_by_recency(combined), errors, dropped

    async def _persist(self, listings: list[Listing]) -> None:
        if self.durable_store is None or not Settings.PERSIST_LISTINGS:
            return
        try:
            await asyncio.to_thread(self.durable_store.upsert_listings, listings)
        except CacheUnavailable as exc:
            logger.warning("Could not archive listings: %s", exc)

    # ── Refresh (scheduler entry points) ─────────────────

    async def refresh(
        self,
        city: str,
        property_type: PropertyType = PropertyType.ANY,
        max_results: int = Settings.DEFAULT_MAX_RESULTS,
    ) -> SearchResponse:
        """Drop every cached search for *city* and fetch it again."""
        criteria = SearchCriteria(
            city=city,
            property_type=property_type,
            max_results_per_source=max_results,
        )
        criteria.validate()
        removed = await asyncio.to_thread(self.cache.invalidate_city, city)
        logger.info("Refreshing %s (%d cache entries dropped)", city, removed)
        return await self.search(criteria, force_refresh=True)

    async def refresh_all(
        self, cities: Sequence[str] | None = None,
    ) -> dict[str, SearchResponse]:
        """Refresh each city in turn; invalid cities are logged and skipped."""
        responses: dict[str, SearchResponse] = {}
        for city in cities if cities is not None else Settings.REFRESH_CITIES:
            try:
                responses[city] = await self.refresh(city)
            except ValidationError as exc:
                logger.error("Skipping refresh of %r: %s", city, exc)
        return responses

    # ── Introspection ────────────────────────────────────

    async def stats(self) -> dict[str, Any]:
        """Connector descriptions and health, cache and drop counters."""
        health = await self.health_checker.check_all()
        status_by_id = {r.source_id: r for r in health}
        connectors: dict[str, Any] = {}
        for connector in self.connectors:
            info = asdict(connector.describe())
            probe = status_by_id.get(connector.SOURCE_ID)
            info["health"] = probe.status if probe else "unknown"
            info["latency_ms"] = round(probe.latency_ms, 1) if probe else None
            connectors[connector.SOURCE_ID] = info

        translator_stats = getattr(self.translator, "stats", None)
        return {
            "connectors": connectors,
            "available_portals": len(self.connectors),
            "cache": await asyncio.to_thread(self.cache.stats),
            "cache_health": await asyncio.to_thread(self.cache.health_check),
            "last_refresh": {
                city: ts.isoformat()
                for city, ts in sorted(self._last_refresh.items())
            },
            "dropped": dict(self._dropped),
            "translation": (
                translator_stats() if callable(translator_stats) else None
            ),
            "timestamp": self.clock.now().isoformat(),
        }

    async def health(self) -> dict[str, Any]:
        """``healthy`` only if every connector and cache tier is up."""
        services: dict[str, str] = {}
        status = "healthy"

        for result in await self.health_checker.check_all():
            services[result.source_id] = (
                "healthy" if result.healthy else "unhealthy"
            )
            if not result.healthy:
                status = "degraded"

        cache_health = await asyncio.to_thread(self.cache.health_check)
        for tier, tier_status in cache_health.items():
            services[f"cache_{tier}"] = tier_status
            if tier_status == "down":
                status = "degraded"

        return {
            "status": status,
            "services": services,
            "timestamp": self.clock.now().isoformat(),
        }


def build_default_service(
    clock: Clock | None = None,
    sources: list[dict[str, str]] | None = None,
) -> AggregationService:
    """Wire the production object graph from Settings."""
    clock = clock or SystemClock()
    connectors = load_connectors(sources, executor=RequestExecutor(clock=clock))
    durable: SQLiteStore | None
    try:
        durable = SQLiteStore(clock=clock)
    except CacheUnavailable as exc:
        logger.warning("Durable cache disabled: %s", exc)
        durable = None
    volatile = MemoryStore(clock=clock) if Settings.USE_VOLATILE_CACHE else None
    return AggregationService(
        connectors=connectors,
        cache=CacheTier(
            volatile=volatile,
            durable=durable,
            clock=clock,
            default_ttl=Settings.CACHE_TTL,
        ),
        orchestrator=FetchOrchestrator(
            clock=clock, batch_delay=Settings.BATCH_DELAY,
        ),
        normalizer=ListingNormalizer(clock=clock),
        translator=TermTranslator(),
        durable_store=durable,
        clock=clock,
        concurrency_limit=Settings.CONCURRENCY_LIMIT,
        search_timeout=Settings.SEARCH_TIMEOUT,
    )
