# rent_aggregator/models/criteria.py

"""Search criteria value object and its canonical cache-key form."""

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from rent_aggregator.config.settings import Settings
from rent_aggregator.errors import ValidationError

CACHE_KEY_PREFIX = "search:"

# Letters (any script), spaces, hyphens, apostrophes and dots.
_CITY_RE = re.compile(r"^[^\W\d_](?:[^\W\d_]|[\s\-'.])*$")

_ABSENT_MARKERS = frozenset({"", "all", "any", "none"})


class PropertyType(str, Enum):
    """Canonical property categories."""

    APARTMENT = "apartment"
    ROOM = "room"
    HOUSE = "house"
    STUDIO = "studio"
    ANY = "any"


def _collapse(text: str) -> str:
    return " ".join(text.split())


def canonical_city(city: str | None) -> str:
    """Trim, collapse whitespace and casefold a city name."""
    if not city:
        return ""
    return _collapse(city).casefold()


def _decimal_text(value: Decimal) -> str:
    """Render ``700``, ``700.0`` and ``700.00`` identically."""
    return format(value.normalize(), "f")


@dataclass(frozen=True)
class SearchCriteria:
    """Immutable query parameters shared by every connector."""

    city: str | None = None
    property_type: PropertyType = PropertyType.ANY
    min_rooms: int | None = None
    max_budget: Decimal | None = None
    max_results_per_source: int = Settings.DEFAULT_MAX_RESULTS

    # ── Construction ─────────────────────────────────────

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "SearchCriteria":
        """Build criteria from loosely typed route/CLI parameters.

        ``"all"``, ``"any"`` and blank values mean "not filtered".
        Raises :class:`ValidationError` for unparsable or out-of-range
        values.
        """
        problems: list[str] = []

        def pick(*names: str) -> Any:
            for name in names:
                value = params.get(name)
                if value is None:
                    continue
                if isinstance(value, str):
                    value = value.strip()
                    if value.lower() in _ABSENT_MARKERS:
                        continue
                return value
            return None

        city = pick("city")
        raw_type = pick("property_type", "type")
        property_type = PropertyType.ANY
        if raw_type is not None:
            try:
                property_type = PropertyType(str(raw_type).lower())
            except ValueError:
                problems.append(
                    f"property type must be one of "
                    f"{', '.join(t.value for t in PropertyType)}"
                )

        min_rooms: int | None = None
        raw_rooms = pick("min_rooms", "rooms")
        if raw_rooms is not None:
            try:
                min_rooms = int(raw_rooms)
            except (TypeError, ValueError):
                problems.append("rooms must be an integer")

        max_budget: Decimal | None = None
        raw_budget = pick("max_budget", "budget")
        if raw_budget is not None:
            try:
                max_budget = Decimal(str(raw_budget))
            except InvalidOperation:
                problems.append("budget must be a number")

        max_results = Settings.DEFAULT_MAX_RESULTS
        raw_max = pick("max_results_per_source", "max_results")
        if raw_max is not None:
            try:
                max_results = int(raw_max)
            except (TypeError, ValueError):
                problems.append("max results must be an integer")

        if problems:
            raise ValidationError(problems)

        criteria = cls(
            city=str(city) if city is not None else None,
            property_type=property_type,
            min_rooms=min_rooms,
            max_budget=max_budget,
            max_results_per_source=max_results,
        )
        criteria.validate()
        return criteria

    def with_city(self, city: str | None) -> "SearchCriteria":
        """Return a copy with the locality replaced."""
        return replace(self, city=city)

    # ── Validation ───────────────────────────────────────

    def validate(self) -> None:
        """Raise :class:`ValidationError` listing every problem found."""
        problems: list[str] = []

        if self.city is not None and self.city.strip():
            city = _collapse(self.city)
            if not 2 <= len(city) <= 100:
                problems.append("city must be 2-100 characters long")
            elif not _CITY_RE.match(city):
                problems.append(
                    "city may only contain letters, spaces, "
                    "hyphens, apostrophes and dots"
                )

        if not isinstance(self.property_type, PropertyType):
            problems.append("property type is not a PropertyType")

        if self.min_rooms is not None and not 0 <= self.min_rooms <= 20:
            problems.append("rooms must be between 0 and 20")

        if self.max_budget is not None:
            if not self.max_budget.is_finite() or self.max_budget < 0:
                problems.append("budget must be a non-negative amount")

        if not 1 <= self.max_results_per_source <= Settings.MAX_RESULTS_LIMIT:
            problems.append(
                "max results per source must be between 1 and "
                f"{Settings.MAX_RESULTS_LIMIT}"
            )

        if problems:
            raise ValidationError(problems)

    # ── Canonical form ───────────────────────────────────

    def canonical(self) -> dict[str, Any]:
        """Return the pruned, key-sorted form used for cache keys.

        Absent or empty fields are omitted, ``any`` type and a zero
        room minimum count as "no filter".
        """
        data: dict[str, Any] = {}
        city = canonical_city(self.city)
        if city:
            data["city"] = city
        if self.property_type is not PropertyType.ANY:
            data["property_type"] = self.property_type.value
        if self.min_rooms:
            data["min_rooms"] = self.min_rooms
        if self.max_budget is not None:
            data["max_budget"] = _decimal_text(self.max_budget)
        data["max_results"] = self.max_results_per_source
        return dict(sorted(data.items()))

    def cache_key(self) -> str:
        """Derive the cache key shared by all equivalent queries."""
        return CACHE_KEY_PREFIX + json.dumps(
            self.canonical(),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )


def city_key_pattern(city: str) -> str:
    """Glob pattern matching every cache key that mentions *city*."""
    encoded = json.dumps(canonical_city(city), ensure_ascii=False)
    return f'{CACHE_KEY_PREFIX}*"city":{encoded}*'
