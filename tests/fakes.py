# tests/fakes.py

"""Test doubles shared across the test modules."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock

from rent_aggregator.connectors.base_connector import BaseConnector
from rent_aggregator.models.criteria import PropertyType, SearchCriteria
from rent_aggregator.models.listing import Listing, Price
from rent_aggregator.services.clock import Clock

EPOCH = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock(Clock):
    """Manually advanced clock that records every sleep."""

    def __init__(self, start: datetime = EPOCH) -> None:
        self.current = start
        self.mono = 1000.0
        self.sleeps: list[float] = []
        self.async_sleeps: list[float] = []

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
        self.mono += seconds

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self.mono

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)

    async def sleep_async(self, seconds: float) -> None:
        self.async_sleeps.append(seconds)
        self.advance(seconds)


class StubConnector(BaseConnector):
    """Connector returning canned records without touching the network."""

    SOURCE_ID = "stub"
    BASE_URL = "https://stub.example"

    def __init__(
        self,
        source_id: str = "stub",
        records: list[dict[str, Any]] | None = None,
        error: Exception | None = None,
        result: Any = None,
        block: threading.Event | None = None,
        healthy: bool = True,
    ) -> None:
        self.SOURCE_ID = source_id
        super().__init__(executor=MagicMock())
        self.records = records or []
        self.error = error
        self.result = result
        self.block = block
        self.healthy = healthy
        self.calls: list[SearchCriteria] = []

    def build_search_url(self, criteria: SearchCriteria) -> str:
        return f"{self.BASE_URL}/search"

    def search(
        self,
        criteria: SearchCriteria,
        deadline: float | None = None,
    ) -> Any:
        self.calls.append(criteria)
        if self.block is not None:
            self.block.wait(5)
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return [dict(r) for r in self.records]

    def health_check(self) -> bool:
        return self.healthy


def raw(
    title: str | None = "Schöne Wohnung",
    url: str | None = "/angebot/1",
    price: str | None = "850 €",
    published: str | None = None,
    **extra: str | None,
) -> dict[str, str | None]:
    """Minimal raw record as a connector would emit it."""
    record: dict[str, str | None] = {
        "title": title,
        "url": url,
        "price": price,
        "published": published,
        "type": "wohnung",
        "location": "Berlin",
    }
    record.update(extra)
    return record


def make_listing(
    listing_id: str = "stub:1",
    published_at: datetime | None = None,
    source: str = "stub",
    price: float | None = 800.0,
) -> Listing:
    return Listing(
        id=listing_id,
        source=source,
        url=f"https://stub.example/{listing_id}",
        title=f"Listing {listing_id}",
        property_type=PropertyType.APARTMENT,
        price=Price(price) if price is not None else None,
        published_at=published_at,
    )
