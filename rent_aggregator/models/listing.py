# rent_aggregator/models/listing.py

"""Canonical listing entity produced by the normalizer."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from rent_aggregator.models.criteria import PropertyType

# Weakly typed record handed from a connector to the normalizer.
RawListing = dict[str, str | None]

FEATURE_FLAGS: tuple[str, ...] = (
    "parking",
    "balcony",
    "garden",
    "elevator",
    "furnished",
)


@dataclass(frozen=True)
class Price:
    """A numeric amount with its currency symbol."""

    amount: float
    currency: str = "€"

    def __str__(self) -> str:
        return f"{self.amount:g} {self.currency}"


@dataclass(frozen=True)
class Listing:
    """A portal-agnostic rental listing."""

    id: str
    source: str
    url: str
    title: str
    property_type: PropertyType
    external_id: str | None = None
    price: Price | None = None
    area_sqm: float | None = None
    main_image: str | None = None
    location: str = ""
    published_at: datetime | None = None
    rooms: int | None = None
    description: str | None = None
    parking: bool | None = None
    balcony: bool | None = None
    garden: bool | None = None
    elevator: bool | None = None
    furnished: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialise to JSON-safe primitives."""
        return {
            "id": self.id,
            "source": self.source,
            "external_id": self.external_id,
            "url": self.url,
            "title": self.title,
            "price": (
                {
                    "amount": self.price.amount,
                    "currency": self.price.currency,
                }
                if self.price is not None
                else None
            ),
            "area_sqm": self.area_sqm,
            "main_image": self.main_image,
            "location": self.location,
            "property_type": self.property_type.value,
            "published_at": (
                self.published_at.isoformat()
                if self.published_at is not None
                else None
            ),
            "rooms": self.rooms,
            "description": self.description,
            "features": {
                flag: getattr(self, flag) for flag in FEATURE_FLAGS
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Listing":
        """Rebuild a listing from :meth:`to_dict` output."""
        raw_price = data.get("price")
        price = (
            Price(
                amount=float(raw_price["amount"]),
                currency=str(raw_price.get("currency", "€")),
            )
            if isinstance(raw_price, dict)
            else None
        )
        raw_date = data.get("published_at")
        features: dict[str, Any] = data.get("features") or {}
        return cls(
            id=str(data["id"]),
            source=str(data["source"]),
            external_id=data.get("external_id"),
            url=str(data["url"]),
            title=str(data["title"]),
            price=price,
            area_sqm=data.get("area_sqm"),
            main_image=data.get("main_image"),
            location=str(data.get("location") or ""),
            property_type=PropertyType(data["property_type"]),
            published_at=(
                datetime.fromisoformat(raw_date) if raw_date else None
            ),
            rooms=data.get("rooms"),
            description=data.get("description"),
            parking=features.get("parking"),
            balcony=features.get("balcony"),
            garden=features.get("garden"),
            elevator=features.get("elevator"),
            furnished=features.get("furnished"),
        )
