# rent_aggregator/connectors/immowelt_connector.py

"""Connector for immowelt.de."""

import urllib.parse

from rent_aggregator.connectors.base_connector import (
    BaseConnector,
    slugify_city,
)
from rent_aggregator.models.criteria import PropertyType, SearchCriteria


class ImmoweltConnector(BaseConnector):
    """Connector for Immowelt result lists."""

    SOURCE_ID = "immowelt"
    BASE_URL = "https://www.immowelt.de"
    RATE_LIMIT_MS = 2500

    SEGMENTS: dict[PropertyType, str] = {
        PropertyType.ROOM: "wg-zimmer",
        PropertyType.HOUSE: "haeuser/mieten",
        PropertyType.STUDIO: "wohnungen/mieten",
        PropertyType.APARTMENT: "wohnungen/mieten",
        PropertyType.ANY: "wohnungen/mieten",
    }

    def build_search_url(self, criteria: SearchCriteria) -> str:
        url = (
            f"{self.BASE_URL}/liste/{slugify_city(criteria.city)}/"
            f"{self.SEGMENTS[criteria.property_type]}"
        )
        params: list[tuple[str, str]] = []
        if criteria.max_budget is not None:
            params.append(("pma", str(int(criteria.max_budget))))
        if criteria.min_rooms:
            params.append(("rmi", str(criteria.min_rooms)))
        params.append(("sort", "createdate desc"))
        return url + "?" + urllib.parse.urlencode(params)
