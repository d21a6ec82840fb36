# rent_aggregator/connectors/base_connector.py

"""Abstract base class for all rental portal connectors."""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from bs4 import BeautifulSoup, Tag

from rent_aggregator.config.settings import Settings
from rent_aggregator.connectors.request_executor import RequestExecutor
from rent_aggregator.errors import FetchError
from rent_aggregator.models.criteria import PropertyType, SearchCriteria
from rent_aggregator.models.listing import RawListing

_TRANSLITERATION = str.maketrans(
    {"ä": "ae", "ö": "oe", "ü": "ue", "ß": "ss", "é": "e", "è": "e"}
)


@lru_cache(maxsize=4)
def load_selector_config(path: Path) -> dict[str, Any]:
    """Load and memoise every portal's selector strategies."""
    with open(path, encoding="utf-8") as f:
        data: dict[str, Any] = json.load(f)
    return data


def slugify_city(city: str | None, default: str = "deutschland") -> str:
    """``"Frankfurt am Main"`` → ``"frankfurt-am-main"``."""
    if not city or not city.strip():
        return default
    lowered = city.strip().lower().translate(_TRANSLITERATION)
    slug = re.sub(r"[^a-z0-9]+", "-", lowered).strip("-")
    return slug or default


@dataclass(frozen=True)
class ConnectorInfo:
    """Static description of a connector for stats output."""

    name: str
    base_url: str
    rate_limit_ms: int
    timeout: int
    max_attempts: int


class BaseConnector(ABC):
    """Shared capability contract for every portal.

    Subclasses set the portal constants and implement
    :meth:`build_search_url`.  Everything else (fetching, ordered
    selector strategies, the generic link heuristic) lives here and is
    driven by the portal's entry in ``selectors.json``.
    """

    SOURCE_ID: str = ""
    BASE_URL: str = ""
    RATE_LIMIT_MS: int = 2000
    TIMEOUT: int = Settings.REQUEST_TIMEOUT
    MAX_ATTEMPTS: int = Settings.MAX_RETRIES

    def __init__(self, executor: RequestExecutor | None = None) -> None:
        if not self.SOURCE_ID or not self.BASE_URL:
            raise ValueError(
                f"{self.__class__.__name__} must define SOURCE_ID and BASE_URL"
            )
        self.logger = logging.getLogger(
            f"rent_aggregator.{self.SOURCE_ID}"
        )
        self.executor = executor or RequestExecutor()
        self.selectors: dict[str, Any] = load_selector_config(
            Settings.SELECTORS_PATH
        ).get(self.SOURCE_ID, {})

    # ── Portal-specific ──────────────────────────────────

    @abstractmethod
    def build_search_url(self, criteria: SearchCriteria) -> str:
        """Return the portal search URL for *criteria* (pure)."""
        ...

    def _headers(self) -> dict[str, str]:
        return {
            **Settings.DEFAULT_HEADERS,
            "Referer": self.BASE_URL + "/",
        }

    # ── Capability contract ──────────────────────────────

    def search(
        self,
        criteria: SearchCriteria,
        deadline: float | None = None,
    ) -> list[RawListing]:
        """Fetch and extract raw records; ``[]`` is a valid outcome.

        Raises :class:`FetchError` when the portal cannot be reached.
        """
        url = self.build_search_url(criteria)
        clock = self.executor.clock
        started = clock.monotonic()
        self.logger.info("[%s] Searching %s", self.SOURCE_ID, url)

        try:
            resp = self.executor.fetch(
                url,
                self._headers(),
                timeout=self.TIMEOUT,
                max_attempts=self.MAX_ATTEMPTS,
                base_delay=self.RATE_LIMIT_MS / 1000,
                deadline=deadline,
            )
        except FetchError as exc:
            self.logger.warning(
                "[%s] Search failed for city=%s: %s",
                self.SOURCE_ID,
                criteria.city or "unknown",
                exc,
            )
            raise

        records = self.parse_listings(str(resp.text), criteria)
        records = records[: criteria.max_results_per_source]
        self.logger.info(
            "[%s] Extracted %d raw listings in %.0fms",
            self.SOURCE_ID,
            len(records),
            (clock.monotonic() - started) * 1000,
        )
        return records

    def health_check(self) -> bool:
        """Return True if the portal homepage answers with 2xx."""
        try:
            self.executor.fetch(
                self.BASE_URL,
                self._headers(),
                timeout=Settings.HEALTH_CHECK_TIMEOUT,
                max_attempts=1,
            )
        except FetchError as exc:
            self.logger.warning(
                "[%s] Health check failed: %s", self.SOURCE_ID, exc
            )
            return False
        return True

    def describe(self) -> ConnectorInfo:
        """Return this connector's static configuration."""
        return ConnectorInfo(
            name=self.SOURCE_ID,
            base_url=self.BASE_URL,
            rate_limit_ms=self.RATE_LIMIT_MS,
            timeout=self.TIMEOUT,
            max_attempts=self.MAX_ATTEMPTS,
        )

    # ── Extraction ───────────────────────────────────────

    def parse_listings(
        self, html: str, criteria: SearchCriteria,
    ) -> list[RawListing]:
        """Apply container strategies in order, then the link heuristic.

        The first container selector producing at least one record
        wins; later strategies are not consulted.
        """
        soup = BeautifulSoup(html, "lxml")
        max_items = int(self.selectors.get("max_items", 50))

        for container_sel in self.selectors.get("containers", []):
            elements = soup.select(container_sel)
            if not elements:
                continue
            records: list[RawListing] = []
            for element in elements[:max_items]:
                record = self._extract_record(element, criteria)
                if record is not None:
                    records.append(record)
            if records:
                self.logger.debug(
                    "[%s] Strategy '%s' yielded %d records",
                    self.SOURCE_ID,
                    container_sel,
                    len(records),
                )
                return records

        self.logger.info(
            "[%s] No structured strategy matched, using link heuristic",
            self.SOURCE_ID,
        )
        return self._extract_fallback(soup, criteria)

    def _extract_record(
        self, element: Tag, criteria: SearchCriteria,
    ) -> RawListing | None:
        """Pull one raw record out of a result container."""
        fields: dict[str, list[str]] = self.selectors.get("fields", {})
        title = self._first_text(element, fields.get("title", []))
        price = self._first_text(element, fields.get("price", []))
        href = self._first_attr(element, fields.get("url", []), ("href",))

        if not title or not (price or href):
            return None

        return {
            "external_id": self._external_id(element),
            "title": title,
            "price": price or None,
            "location": (
                self._first_text(element, fields.get("location", []))
                or criteria.city
            ),
            "rooms": self._first_text(element, fields.get("rooms", [])) or None,
            "area": self._first_text(element, fields.get("area", [])) or None,
            "details": element.get_text(" ", strip=True),
            "url": href or None,
            "image": self._first_attr(
                element,
                fields.get("image", []),
                ("src", "data-src", "data-imgsrc"),
            ) or None,
            "type": (
                self._first_text(element, fields.get("type", []))
                or self._criteria_type(criteria)
            ),
            "published": (
                self._first_text(element, fields.get("published", []))
                or None
            ),
            "description": (
                self._first_text(element, fields.get("description", []))
                or None
            ),
        }

    def _extract_fallback(
        self, soup: BeautifulSoup, criteria: SearchCriteria,
    ) -> list[RawListing]:
        """Generic pass: links whose text mentions a price or a room."""
        keywords = [
            kw.lower() for kw in self.selectors.get("fallback_keywords", ["€"])
        ]
        limit = int(self.selectors.get("max_fallback_items", 20))
        link_sel = self.selectors.get("fallback_link", "a[href]")

        records: list[RawListing] = []
        for link in soup.select(link_sel):
            if len(records) >= limit:
                break
            href = link.get("href")
            text = " ".join(link.get_text(" ", strip=True).split())
            if not href or not text:
                continue
            lowered = text.lower()
            if not any(kw in lowered for kw in keywords):
                continue
            records.append({
                "external_id": None,
                "title": text[:100],
                "price": text,
                "location": criteria.city,
                "rooms": None,
                "area": None,
                "details": text,
                "url": str(href),
                "image": None,
                "type": self._criteria_type(criteria),
                "published": None,
                "description": None,
            })
        return records

    # ── Helpers ──────────────────────────────────────────

    @staticmethod
    def _criteria_type(criteria: SearchCriteria) -> str | None:
        if criteria.property_type is PropertyType.ANY:
            return None
        return criteria.property_type.value

    @staticmethod
    def _first_text(element: Tag, selectors: list[str]) -> str:
        for selector in selectors:
            found = element.select_one(selector)
            if found is None:
                continue
            text = found.get_text(" ", strip=True)
            if text:
                return text
        return ""

    @staticmethod
    def _first_attr(
        element: Tag,
        selectors: list[str],
        attrs: tuple[str, ...],
    ) -> str:
        for selector in selectors:
            found = element.select_one(selector)
            if found is None:
                continue
            for attr in attrs:
                value = found.get(attr)
                if value:
                    return str(value)
        return ""

    def _external_id(self, element: Tag) -> str | None:
        for attr in self.selectors.get("external_id_attrs", []):
            value = element.get(attr)
            if value:
                return str(value)
        return None
