# rent_aggregator/connectors/immobilienscout24_connector.py

"""Connector for immobilienscout24.de."""

import urllib.parse

from rent_aggregator.connectors.base_connector import (
    BaseConnector,
    slugify_city,
)
from rent_aggregator.models.criteria import PropertyType, SearchCriteria


class ImmobilienScout24Connector(BaseConnector):
    """Connector for ImmobilienScout24, Germany's largest portal."""

    SOURCE_ID = "immobilienscout24"
    BASE_URL = "https://www.immobilienscout24.de"
    RATE_LIMIT_MS = 2500

    SEGMENTS: dict[PropertyType, str] = {
        PropertyType.ROOM: "wg-zimmer",
        PropertyType.HOUSE: "haus-mieten",
        PropertyType.STUDIO: "wohnung-mieten",
        PropertyType.APARTMENT: "wohnung-mieten",
        PropertyType.ANY: "wohnung-mieten",
    }

    def build_search_url(self, criteria: SearchCriteria) -> str:
        segment = self.SEGMENTS[criteria.property_type]
        url = (
            f"{self.BASE_URL}/Suche/de/"
            f"{slugify_city(criteria.city)}/{segment}"
        )

        params: list[tuple[str, str]] = []
        if criteria.max_budget is not None:
            params.append(("priceTo", str(int(criteria.max_budget))))
        if criteria.property_type is PropertyType.STUDIO:
            params.append(("numberOfRoomsTo", "1"))
        elif criteria.min_rooms:
            params.append(("numberOfRoomsFrom", str(criteria.min_rooms)))

        if params:
            url += "?" + urllib.parse.urlencode(params)
        return url
