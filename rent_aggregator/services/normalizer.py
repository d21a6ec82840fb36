# rent_aggregator/services/normalizer.py

"""Raw portal records → canonical Listing conversion."""

import hashlib
import logging
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urljoin, urlparse

from rent_aggregator.config.settings import Settings
from rent_aggregator.models.criteria import PropertyType
from rent_aggregator.models.listing import Listing, Price
from rent_aggregator.services.clock import Clock, SystemClock

logger = logging.getLogger("rent_aggregator.normalizer")

_NUM = r"(?P<num>\d[\d.,]*)"

_EURO_PRICE: tuple[re.Pattern[str], ...] = (
    re.compile(_NUM + r"\s*(?:€|eur\b|euro)", re.I),
    re.compile(r"(?:€|eur\b)\s*" + _NUM, re.I),
)
_AREA: tuple[re.Pattern[str], ...] = (
    re.compile(_NUM + r"\s*(?:m²|m2|qm|sqm)", re.I),
)
_ROOMS: tuple[re.Pattern[str], ...] = (
    re.compile(_NUM + r"\s*-?\s*(?:zimmer|zi\b|zi\.|räume|rooms?\b)", re.I),
)

# Generic "digits followed by currency symbol" fallback.
_GENERIC_PRICE = re.compile(
    _NUM + r"\s*(?P<cur>€|\$|£|eur\b|usd\b|gbp\b)", re.I
)
_CURRENCY_SYMBOLS = {"eur": "€", "usd": "$", "gbp": "£"}

_DOTTED_DATE = re.compile(r"\b(\d{1,2})\.(\d{1,2})\.(\d{2}|\d{4})\b")

_TRUE_WORDS = frozenset({"yes", "true", "1", "ja", "sí", "si", "y"})
_FALSE_WORDS = frozenset({"no", "false", "0", "nein", "n"})

# Exact-match synonyms shared by every portal.
GLOBAL_TYPE_SYNONYMS: dict[str, PropertyType] = {
    "apartment": PropertyType.APARTMENT,
    "flat": PropertyType.APARTMENT,
    "wohnung": PropertyType.APARTMENT,
    "appartement": PropertyType.APARTMENT,
    "apartamento": PropertyType.APARTMENT,
    "piso": PropertyType.APARTMENT,
    "room": PropertyType.ROOM,
    "zimmer": PropertyType.ROOM,
    "wg-zimmer": PropertyType.ROOM,
    "wg": PropertyType.ROOM,
    "shared-room": PropertyType.ROOM,
    "habitación": PropertyType.ROOM,
    "house": PropertyType.HOUSE,
    "haus": PropertyType.HOUSE,
    "villa": PropertyType.HOUSE,
    "cottage": PropertyType.HOUSE,
    "casa": PropertyType.HOUSE,
    "chalet": PropertyType.HOUSE,
    "studio": PropertyType.STUDIO,
    "1-zimmer": PropertyType.STUDIO,
    "ein-zimmer": PropertyType.STUDIO,
    "estudio": PropertyType.STUDIO,
    "loft": PropertyType.STUDIO,
}


@dataclass(frozen=True)
class PortalProfile:
    """Parsing conventions for one portal.

    ``type_synonyms`` is ordered; the first key contained in the raw
    type text wins, so more specific terms come first.
    """

    origin: str
    currency: str = "€"
    price_patterns: tuple[re.Pattern[str], ...] = _EURO_PRICE
    area_patterns: tuple[re.Pattern[str], ...] = _AREA
    room_patterns: tuple[re.Pattern[str], ...] = _ROOMS
    type_synonyms: tuple[tuple[str, PropertyType], ...] = ()


_GERMAN_TYPES: tuple[tuple[str, PropertyType], ...] = (
    ("wg-zimmer", PropertyType.ROOM),
    ("1-zimmer", PropertyType.STUDIO),
    ("apartment", PropertyType.APARTMENT),
    ("wohnung", PropertyType.APARTMENT),
    ("haus", PropertyType.HOUSE),
    ("zimmer", PropertyType.ROOM),
)

PORTAL_PROFILES: dict[str, PortalProfile] = {
    "wg-gesucht": PortalProfile(
        origin="https://www.wg-gesucht.de",
        room_patterns=_ROOMS + (
            re.compile(_NUM + r"\s*-?\s*zimmer-wohnung", re.I),
        ),
        type_synonyms=(
            ("wg-zimmer", PropertyType.ROOM),
            ("wg", PropertyType.ROOM),
            ("1-zimmer", PropertyType.STUDIO),
            ("wohnung", PropertyType.APARTMENT),
            ("haus", PropertyType.HOUSE),
        ),
    ),
    "immobilienscout24": PortalProfile(
        origin="https://www.immobilienscout24.de",
        type_synonyms=_GERMAN_TYPES,
    ),
    "immowelt": PortalProfile(
        origin="https://www.immowelt.de",
        type_synonyms=_GERMAN_TYPES,
    ),
    "kleinanzeigen": PortalProfile(
        origin="https://www.kleinanzeigen.de",
        type_synonyms=_GERMAN_TYPES,
    ),
}

_GENERIC_PROFILE = PortalProfile(origin="")


def parse_number(text: str) -> float | None:
    """Parse ``1.200,50``, ``1,200.50``, ``850`` or ``65,5``.

    A final separator followed by exactly three digits is treated as a
    thousands separator.
    """
    digits = text.strip().rstrip(".,")
    if not digits:
        return None
    last_sep = max(digits.rfind("."), digits.rfind(","))
    if last_sep == -1:
        whole, fraction = digits, ""
    else:
        tail = digits[last_sep + 1:]
        if len(tail) == 3:
            whole, fraction = digits, ""
        else:
            whole, fraction = digits[:last_sep], tail
    whole = re.sub(r"[.,]", "", whole)
    try:
        value = float(f"{whole}.{fraction}" if fraction else whole)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def clean_text(text: Any, limit: int = Settings.MAX_TEXT_LENGTH) -> str:
    """Trim, collapse whitespace/newlines and truncate."""
    if text is None:
        return ""
    return " ".join(str(text).split())[:limit]


def absolutize_url(url: str | None, origin: str) -> str | None:
    """Resolve relative and protocol-relative URLs against *origin*."""
    if not url:
        return None
    candidate = url.strip()
    if not candidate:
        return None
    if candidate.startswith("//"):
        candidate = "https:" + candidate
    elif not urlparse(candidate).scheme:
        if not origin:
            return None
        candidate = urljoin(origin + "/", candidate)
    if urlparse(candidate).scheme not in ("http", "https"):
        return None
    return candidate


def normalize_boolean(value: Any) -> bool | None:
    """Tri-state feature flag: True, False or unknown (None)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False
    return None


def parse_date(value: Any) -> datetime | None:
    """Parse ISO-8601, epoch seconds or ``dd.mm.yyyy`` into aware UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        # Epoch first: 10 bare digits would also pass as a compact ISO date.
        if text.isdecimal():
            if len(text) < 9:
                return None
            seconds = int(text)
            if len(text) >= 13:
                seconds //= 1000  # milliseconds
            try:
                return datetime.fromtimestamp(seconds, tz=timezone.utc)
            except (ValueError, OverflowError, OSError):
                return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            match = _DOTTED_DATE.search(text)
            if not match:
                return None
            day, month, year = (int(g) for g in match.groups())
            if year < 100:
                year += 2000
            try:
                parsed = datetime(year, month, day)
            except ValueError:
                return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class NormalizationReport:
    """Outcome of normalizing one portal's batch."""

    source: str
    listings: list[Listing] = field(default_factory=lambda: list[Listing]())
    dropped: int = 0
    total: int = 0


class ListingNormalizer:
    """Maps portal-specific raw records to canonical listings.

    Bad records are dropped and counted, never raised; only
    programming errors (a non-mapping record) propagate.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self.clock = clock or SystemClock()

    @staticmethod
    def profile_for(source: str) -> PortalProfile:
        return PORTAL_PROFILES.get(source, _GENERIC_PROFILE)

    # ── Field extraction ─────────────────────────────────

    @staticmethod
    def extract_price(text: str | None, profile: PortalProfile) -> Price | None:
        """Portal patterns first, then the generic currency fallback."""
        if not text:
            return None
        for pattern in profile.price_patterns:
            match = pattern.search(text)
            if match:
                amount = parse_number(match.group("num"))
                if amount:
                    return Price(amount=amount, currency=profile.currency)
        match = _GENERIC_PRICE.search(text)
        if match:
            amount = parse_number(match.group("num"))
            if amount:
                cur = match.group("cur").lower()
                return Price(
                    amount=amount,
                    currency=_CURRENCY_SYMBOLS.get(cur, match.group("cur")),
                )
        return None

    @staticmethod
    def extract_area(
        text: str | None,
        profile: PortalProfile,
        details: str | None = None,
    ) -> float | None:
        """Area in m²; bare numbers are only trusted within 10–1000."""
        for candidate in (text, details):
            if not candidate:
                continue
            for pattern in profile.area_patterns:
                match = pattern.search(candidate)
                if match:
                    value = parse_number(match.group("num"))
                    if value:
                        return value
        if text:
            match = re.search(r"\d[\d.,]*", text)
            if match:
                value = parse_number(match.group())
                if value is not None and 10 <= value <= 1000:
                    return value
        return None

    @staticmethod
    def extract_rooms(
        text: str | None,
        profile: PortalProfile,
        details: str | None = None,
    ) -> int | None:
        """Room count clamped to [1, 20]; anything else is noise."""
        value: float | None = None
        for candidate in (text, details):
            if not candidate or value is not None:
                continue
            for pattern in profile.room_patterns:
                match = pattern.search(candidate)
                if match:
                    value = parse_number(match.group("num"))
                    break
        if value is None and text:
            match = re.search(r"\d+(?:[.,]\d+)?", text)
            if match:
                value = parse_number(match.group())
        if value is None or not math.isfinite(value):
            return None
        rooms = int(value)
        return rooms if 1 <= rooms <= 20 else None

    @staticmethod
    def normalize_type(text: str | None, profile: PortalProfile) -> PropertyType:
        """Portal synonyms, then global synonyms, else apartment."""
        if not text:
            return PropertyType.APARTMENT
        lowered = clean_text(text).lower()
        for key, value in profile.type_synonyms:
            if key in lowered:
                return value
        exact = GLOBAL_TYPE_SYNONYMS.get(lowered)
        if exact is not None:
            return exact
        for key in sorted(GLOBAL_TYPE_SYNONYMS, key=len, reverse=True):
            if key in lowered:
                return GLOBAL_TYPE_SYNONYMS[key]
        return PropertyType.APARTMENT

    def derive_id(
        self, source: str, external_id: str | None, url: str | None,
    ) -> str:
        """Stable id so re-scraping an ad yields the same key."""
        basis = external_id or url or self.clock.now().isoformat()
        digest = hashlib.sha1(basis.encode("utf-8")).hexdigest()[:16]
        return f"{source}:{digest}"

    # ── Entry points ─────────────────────────────────────

    def normalize(self, raw: Mapping[str, Any], source: str) -> Listing | None:
        """Return a valid Listing or None if a required field is missing."""
        if not isinstance(raw, Mapping):
            raise TypeError(
                f"raw listing must be a mapping, got {type(raw).__name__}"
            )
        profile = self.profile_for(source)

        def text(key: str) -> str | None:
            value = raw.get(key)
            return None if value is None else str(value)

        url = absolutize_url(text("url"), profile.origin)
        title = clean_text(text("title"))
        property_type = self.normalize_type(text("type"), profile)

        if not url or not title or not property_type:
            logger.debug(
                "[%s] Dropped raw listing (url=%r, title=%r)",
                source,
                url,
                title,
            )
            return None

        external_id = clean_text(text("external_id")) or None
        details = text("details")
        description = clean_text(text("description")) or None

        return Listing(
            id=self.derive_id(source, external_id, url),
            source=source,
            external_id=external_id,
            url=url,
            title=title,
            price=self.extract_price(text("price"), profile),
            area_sqm=self.extract_area(text("area"), profile, details),
            main_image=absolutize_url(text("image"), profile.origin),
            location=clean_text(text("location")),
            property_type=property_type,
            published_at=parse_date(raw.get("published")),
            rooms=self.extract_rooms(text("rooms"), profile, details),
            description=description,
            parking=normalize_boolean(raw.get("parking")),
            balcony=normalize_boolean(raw.get("balcony")),
            garden=normalize_boolean(raw.get("garden")),
            elevator=normalize_boolean(raw.get("elevator")),
            furnished=normalize_boolean(raw.get("furnished")),
        )

    def normalize_batch(
        self, raws: Iterable[Mapping[str, Any]], source: str,
    ) -> NormalizationReport:
        """Normalize one portal's output, counting dropped records."""
        report = NormalizationReport(source=source)
        for raw in raws:
            report.total += 1
            try:
                listing = self.normalize(raw, source)
            except (ValueError, OverflowError) as exc:
                logger.warning(
                    "[%s] Dropped unparsable raw listing: %s", source, exc,
                )
                listing = None
            if listing is None:
                report.dropped += 1
            else:
                report.listings.append(listing)

        if report.dropped:
            logger.info(
                "[%s] Normalization dropped %d of %d listings",
                source,
                report.dropped,
                report.total,
            )
        return report
