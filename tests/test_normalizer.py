# tests/test_normalizer.py

"""Tests for raw-record → Listing normalization."""

import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from rent_aggregator.models.criteria import PropertyType
from rent_aggregator.models.listing import Price
from rent_aggregator.services.normalizer import (
    PORTAL_PROFILES,
    ListingNormalizer,
    absolutize_url,
    clean_text,
    normalize_boolean,
    parse_date,
    parse_number,
)
from tests.fakes import FakeClock, raw

WG = PORTAL_PROFILES["wg-gesucht"]


class TestParseNumber(unittest.TestCase):
    """German and English separators."""

    def test_german_decimal_comma(self) -> None:
        self.assertEqual(parse_number("1.200,50"), 1200.5)
        self.assertEqual(parse_number("65,5"), 65.5)

    def test_english_decimal_point(self) -> None:
        self.assertEqual(parse_number("1,200.50"), 1200.5)

    def test_thousands_only(self) -> None:
        self.assertEqual(parse_number("1.150"), 1150.0)
        self.assertEqual(parse_number("2,400"), 2400.0)

    def test_plain_and_garbage(self) -> None:
        self.assertEqual(parse_number("850"), 850.0)
        self.assertIsNone(parse_number(""))

    def test_overflowing_digits(self) -> None:
        self.assertIsNone(parse_number("9" * 400))


class TestFieldExtraction(unittest.TestCase):

    def test_price_with_euro_suffix(self) -> None:
        self.assertEqual(
            ListingNormalizer.extract_price("1.150 €", WG), Price(1150.0)
        )

    def test_price_with_eur_word_and_prefix(self) -> None:
        self.assertEqual(
            ListingNormalizer.extract_price("Kaltmiete 850,00 EUR", WG),
            Price(850.0),
        )
        self.assertEqual(
            ListingNormalizer.extract_price("€ 700", WG), Price(700.0)
        )

    def test_price_generic_currency_fallback(self) -> None:
        generic = ListingNormalizer.profile_for("somewhere-else")
        self.assertEqual(
            ListingNormalizer.extract_price("1,200 $", generic),
            Price(1200.0, "$"),
        )

    def test_price_unparsable(self) -> None:
        self.assertIsNone(ListingNormalizer.extract_price("VB", WG))
        self.assertIsNone(ListingNormalizer.extract_price(None, WG))

    def test_area(self) -> None:
        self.assertEqual(ListingNormalizer.extract_area("65,5 m²", WG), 65.5)
        self.assertEqual(ListingNormalizer.extract_area("80", WG), 80.0)
        self.assertIsNone(ListingNormalizer.extract_area("5", WG))
        self.assertEqual(
            ListingNormalizer.extract_area(None, WG, "Altbau, 72 qm, ruhig"),
            72.0,
        )

    def test_rooms(self) -> None:
        self.assertEqual(ListingNormalizer.extract_rooms("3 Zimmer", WG), 3)
        self.assertEqual(ListingNormalizer.extract_rooms("2,5 Zi.", WG), 2)
        self.assertEqual(ListingNormalizer.extract_rooms("4", WG), 4)

    def test_rooms_out_of_range(self) -> None:
        self.assertIsNone(ListingNormalizer.extract_rooms("0", WG))
        self.assertIsNone(ListingNormalizer.extract_rooms("25 Zimmer", WG))

    def test_rooms_from_details(self) -> None:
        self.assertEqual(
            ListingNormalizer.extract_rooms(
                None, WG, "2-Zimmer-Wohnung Mitte 1.150 €"
            ),
            2,
        )

    def test_type_synonyms(self) -> None:
        cases = {
            "WG-Zimmer": PropertyType.ROOM,
            "1-Zimmer-Wohnung": PropertyType.STUDIO,
            "Wohnung": PropertyType.APARTMENT,
            "Haus": PropertyType.HOUSE,
            "villa": PropertyType.HOUSE,
            "room": PropertyType.ROOM,
            "studio": PropertyType.STUDIO,
            "castle": PropertyType.APARTMENT,
            None: PropertyType.APARTMENT,
        }
        for text, expected in cases.items():
            with self.subTest(text=text):
                self.assertIs(
                    ListingNormalizer.normalize_type(text, WG), expected
                )


class TestHelpers(unittest.TestCase):

    def test_absolutize(self) -> None:
        origin = "https://www.wg-gesucht.de"
        self.assertEqual(
            absolutize_url("/angebot/1.html", origin),
            "https://www.wg-gesucht.de/angebot/1.html",
        )
        self.assertEqual(
            absolutize_url("//img.example/1.jpg", origin),
            "https://img.example/1.jpg",
        )
        self.assertEqual(
            absolutize_url("https://other.example/x", origin),
            "https://other.example/x",
        )

    def test_absolutize_rejects_unusable(self) -> None:
        self.assertIsNone(absolutize_url("javascript:void(0)", "https://a.de"))
        self.assertIsNone(absolutize_url("/relative", ""))
        self.assertIsNone(absolutize_url("  ", "https://a.de"))

    def test_clean_text(self) -> None:
        self.assertEqual(clean_text("  Helle\n\t Wohnung  "), "Helle Wohnung")
        self.assertEqual(len(clean_text("x" * 5000)), 1000)
        self.assertEqual(clean_text(None), "")

    def test_booleans_are_tri_state(self) -> None:
        self.assertIs(normalize_boolean("Ja"), True)
        self.assertIs(normalize_boolean("sí"), True)
        self.assertIs(normalize_boolean("nein"), False)
        self.assertIs(normalize_boolean("0"), False)
        self.assertIsNone(normalize_boolean("vielleicht"))
        self.assertIsNone(normalize_boolean(None))

    def test_dates(self) -> None:
        utc = timezone.utc
        self.assertEqual(parse_date("03.02.2026"), datetime(2026, 2, 3, tzinfo=utc))
        self.assertEqual(parse_date("03.02.26"), datetime(2026, 2, 3, tzinfo=utc))
        self.assertEqual(
            parse_date("2026-02-03T10:00:00Z"),
            datetime(2026, 2, 3, 10, tzinfo=utc),
        )
        self.assertEqual(
            parse_date("1767225600"), datetime(2026, 1, 1, tzinfo=utc)
        )
        self.assertIsNone(parse_date("Heute"))
        self.assertIsNone(parse_date("31.02.2026"))

    def test_epoch_milliseconds(self) -> None:
        self.assertEqual(
            parse_date("1767225600000"),
            datetime(2026, 1, 1, tzinfo=timezone.utc),
        )

    def test_out_of_range_dates(self) -> None:
        self.assertIsNone(parse_date("9" * 30))
        self.assertIsNone(parse_date("²²²²²²²²²²"))

    def test_dates_are_aware(self) -> None:
        parsed = parse_date("2026-02-03T10:00:00+01:00")
        assert parsed is not None
        self.assertEqual(parsed.tzinfo, timezone.utc)
        self.assertEqual(parsed.hour, 9)


class TestNormalize(unittest.TestCase):
    """Full record normalization."""

    def setUp(self) -> None:
        self.normalizer = ListingNormalizer(clock=FakeClock())

    def test_full_record(self) -> None:
        listing = self.normalizer.normalize(
            raw(
                title="  Helle 2-Zimmer-Wohnung ",
                url="/wohnungen-in-Berlin.9002.html",
                price="1.150 €",
                published="03.02.2026",
                external_id="9002",
                area="62 m²",
                rooms="2 Zimmer",
                image="//img.wg-gesucht.de/9002.jpg",
                balcony="ja",
            ),
            "wg-gesucht",
        )
        assert listing is not None
        self.assertTrue(listing.id.startswith("wg-gesucht:"))
        self.assertEqual(len(listing.id), len("wg-gesucht:") + 16)
        self.assertEqual(listing.title, "Helle 2-Zimmer-Wohnung")
        self.assertEqual(
            listing.url, "https://www.wg-gesucht.de/wohnungen-in-Berlin.9002.html"
        )
        self.assertEqual(listing.main_image, "https://img.wg-gesucht.de/9002.jpg")
        self.assertEqual(listing.price, Price(1150.0))
        self.assertEqual(listing.area_sqm, 62.0)
        self.assertEqual(listing.rooms, 2)
        self.assertIs(listing.property_type, PropertyType.APARTMENT)
        self.assertEqual(listing.location, "Berlin")
        self.assertIs(listing.balcony, True)
        self.assertIsNone(listing.parking)
        self.assertEqual(
            listing.published_at, datetime(2026, 2, 3, tzinfo=timezone.utc)
        )

    def test_idempotent(self) -> None:
        """Same raw record twice → identical listing and id."""
        record = raw(external_id="42")
        first = self.normalizer.normalize(record, "immowelt")
        second = self.normalizer.normalize(record, "immowelt")
        self.assertEqual(first, second)

    def test_id_depends_on_external_id_first(self) -> None:
        a = self.normalizer.normalize(raw(url="/a", external_id="7"), "immowelt")
        b = self.normalizer.normalize(raw(url="/b", external_id="7"), "immowelt")
        assert a is not None and b is not None
        self.assertEqual(a.id, b.id)

    def test_unparsable_price_keeps_listing(self) -> None:
        listing = self.normalizer.normalize(raw(price="auf Anfrage"), "immowelt")
        assert listing is not None
        self.assertIsNone(listing.price)

    def test_missing_title_dropped(self) -> None:
        self.assertIsNone(self.normalizer.normalize(raw(title=None), "immowelt"))
        self.assertIsNone(self.normalizer.normalize(raw(title="   "), "immowelt"))

    def test_missing_url_dropped(self) -> None:
        self.assertIsNone(self.normalizer.normalize(raw(url=None), "immowelt"))

    def test_relative_url_unknown_portal_dropped(self) -> None:
        self.assertIsNone(self.normalizer.normalize(raw(), "nowhere"))

    def test_huge_room_count_ignored(self) -> None:
        listing = self.normalizer.normalize(raw(rooms="9" * 400), "wg-gesucht")
        assert listing is not None
        self.assertIsNone(listing.rooms)

    def test_millisecond_timestamp(self) -> None:
        listing = self.normalizer.normalize(
            raw(published="1767225600000"), "wg-gesucht",
        )
        assert listing is not None
        self.assertEqual(
            listing.published_at, datetime(2026, 1, 1, tzinfo=timezone.utc)
        )

    def test_non_mapping_raises(self) -> None:
        with self.assertRaises(TypeError):
            self.normalizer.normalize(["not", "a", "dict"], "immowelt")  # type: ignore[arg-type]


class TestNormalizeBatch(unittest.TestCase):

    def test_counts_drops(self) -> None:
        normalizer = ListingNormalizer(clock=FakeClock())
        report = normalizer.normalize_batch(
            [raw(url="/1"), raw(title=None), raw(url="/3")], "kleinanzeigen",
        )
        self.assertEqual(report.total, 3)
        self.assertEqual(report.dropped, 1)
        self.assertEqual(len(report.listings), 2)
        self.assertEqual(report.source, "kleinanzeigen")

    def test_unparsable_record_counted_as_drop(self) -> None:
        normalizer = ListingNormalizer(clock=FakeClock())
        with patch.object(
            normalizer, "normalize",
            side_effect=[OverflowError("too big"), None],
        ):
            report = normalizer.normalize_batch([raw(), raw()], "immowelt")
        self.assertEqual((report.total, report.dropped), (2, 2))

    def test_empty_batch(self) -> None:
        report = ListingNormalizer().normalize_batch([], "immowelt")
        self.assertEqual((report.total, report.dropped, report.listings), (0, 0, []))


if __name__ == "__main__":
    unittest.main()
