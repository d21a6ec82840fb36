# rent_aggregator/connectors/kleinanzeigen_connector.py

"""Connector for kleinanzeigen.de classifieds (rental categories)."""

from rent_aggregator.connectors.base_connector import (
    BaseConnector,
    slugify_city,
)
from rent_aggregator.models.criteria import PropertyType, SearchCriteria


class KleinanzeigenConnector(BaseConnector):
    """Connector for Kleinanzeigen.

    Filters are encoded in the path rather than the query string:
    ``/s-wohnung-mieten/berlin/preis::700/c203``.
    """

    SOURCE_ID = "kleinanzeigen"
    BASE_URL = "https://www.kleinanzeigen.de"
    RATE_LIMIT_MS = 2000

    CATEGORIES: dict[PropertyType, tuple[str, str]] = {
        PropertyType.ROOM: ("s-auf-zeit-wg", "c199"),
        PropertyType.HOUSE: ("s-haus-mieten", "c205"),
        PropertyType.STUDIO: ("s-wohnung-mieten", "c203"),
        PropertyType.APARTMENT: ("s-wohnung-mieten", "c203"),
        PropertyType.ANY: ("s-wohnung-mieten", "c203"),
    }

    def build_search_url(self, criteria: SearchCriteria) -> str:
        prefix, category = self.CATEGORIES[criteria.property_type]
        parts = [self.BASE_URL, prefix, slugify_city(criteria.city)]
        if criteria.max_budget is not None:
            parts.append(f"preis::{int(criteria.max_budget)}")
        if criteria.min_rooms and category == "c203":
            category += f"+wohnung_mieten.zimmer_d:{criteria.min_rooms},"
        parts.append(category)
        return "/".join(parts)
