# tests/test_criteria.py

"""Tests for SearchCriteria parsing, validation and cache keys."""

import unittest
from decimal import Decimal

from rent_aggregator.errors import ValidationError
from rent_aggregator.models.criteria import (
    PropertyType,
    SearchCriteria,
    canonical_city,
    city_key_pattern,
)


class TestFromParams(unittest.TestCase):
    """Loosely typed input → criteria."""

    def test_route_style_params(self) -> None:
        criteria = SearchCriteria.from_params({
            "city": " Berlin ",
            "type": "room",
            "rooms": "2",
            "budget": "700",
        })
        self.assertEqual(criteria.city, "Berlin")
        self.assertIs(criteria.property_type, PropertyType.ROOM)
        self.assertEqual(criteria.min_rooms, 2)
        self.assertEqual(criteria.max_budget, Decimal("700"))

    def test_all_means_absent(self) -> None:
        """'all' and blanks are treated as missing filters."""
        criteria = SearchCriteria.from_params({
            "city": "Köln", "type": "all", "rooms": "all", "budget": "",
        })
        self.assertIs(criteria.property_type, PropertyType.ANY)
        self.assertIsNone(criteria.min_rooms)
        self.assertIsNone(criteria.max_budget)

    def test_unparsable_values_listed(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            SearchCriteria.from_params({
                "city": "Berlin", "rooms": "two", "budget": "cheap",
            })
        self.assertEqual(len(ctx.exception.problems), 2)

    def test_unknown_type_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            SearchCriteria.from_params({"city": "Berlin", "type": "castle"})


class TestValidate(unittest.TestCase):
    """Bounds checks."""

    def test_valid_defaults(self) -> None:
        SearchCriteria(city="Frankfurt am Main").validate()

    def test_city_too_short(self) -> None:
        with self.assertRaises(ValidationError):
            SearchCriteria(city="B").validate()

    def test_city_with_digits_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            SearchCriteria(city="Berlin 10115").validate()

    def test_city_allows_apostrophe_and_dot(self) -> None:
        SearchCriteria(city="St. Peter-Ording").validate()
        SearchCriteria(city="L'Hospitalet").validate()

    def test_negative_budget_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            SearchCriteria(city="Berlin", max_budget=Decimal("-1")).validate()

    def test_rooms_out_of_range(self) -> None:
        with self.assertRaises(ValidationError):
            SearchCriteria(city="Berlin", min_rooms=21).validate()

    def test_max_results_bounds(self) -> None:
        with self.assertRaises(ValidationError):
            SearchCriteria(city="Berlin", max_results_per_source=0).validate()
        with self.assertRaises(ValidationError):
            SearchCriteria(city="Berlin", max_results_per_source=101).validate()

    def test_all_problems_reported_together(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            SearchCriteria(
                city="X", min_rooms=-1, max_budget=Decimal("-5"),
            ).validate()
        self.assertEqual(len(ctx.exception.problems), 3)


class TestCanonicalForm(unittest.TestCase):
    """Semantically equal queries share one cache key."""

    def test_city_case_and_whitespace_collapse(self) -> None:
        a = SearchCriteria(city="  Berlin ")
        b = SearchCriteria(city="berlin")
        c = SearchCriteria(city="BERLIN")
        self.assertEqual(a.cache_key(), b.cache_key())
        self.assertEqual(b.cache_key(), c.cache_key())

    def test_any_type_and_zero_rooms_omitted(self) -> None:
        plain = SearchCriteria(city="Berlin")
        explicit = SearchCriteria(
            city="Berlin", property_type=PropertyType.ANY, min_rooms=0,
        )
        self.assertEqual(plain.cache_key(), explicit.cache_key())
        self.assertNotIn("property_type", plain.canonical())
        self.assertNotIn("min_rooms", plain.canonical())

    def test_budget_normalized(self) -> None:
        a = SearchCriteria(city="Berlin", max_budget=Decimal("700"))
        b = SearchCriteria(city="Berlin", max_budget=Decimal("700.00"))
        self.assertEqual(a.cache_key(), b.cache_key())
        self.assertEqual(a.canonical()["max_budget"], "700")

    def test_different_filters_differ(self) -> None:
        a = SearchCriteria(city="Berlin", property_type=PropertyType.ROOM)
        b = SearchCriteria(city="Berlin", property_type=PropertyType.HOUSE)
        self.assertNotEqual(a.cache_key(), b.cache_key())

    def test_key_is_prefixed_sorted_json(self) -> None:
        key = SearchCriteria(
            city="München", property_type=PropertyType.ROOM,
        ).cache_key()
        self.assertEqual(
            key,
            'search:{"city":"münchen","max_results":30,'
            '"property_type":"room"}',
        )

    def test_with_city_returns_copy(self) -> None:
        original = SearchCriteria(city="Múnich")
        translated = original.with_city("München")
        self.assertEqual(original.city, "Múnich")
        self.assertEqual(translated.city, "München")

    def test_canonical_city_helper(self) -> None:
        self.assertEqual(canonical_city("  Frankfurt   am Main "), "frankfurt am main")
        self.assertEqual(canonical_city(None), "")


class TestCityKeyPattern(unittest.TestCase):

    def test_pattern_matches_city_keys(self) -> None:
        import fnmatch

        pattern = city_key_pattern("Berlin")
        matching = SearchCriteria(
            city="berlin", property_type=PropertyType.ROOM,
        ).cache_key()
        other = SearchCriteria(city="Hamburg").cache_key()
        self.assertTrue(fnmatch.fnmatchcase(matching, pattern))
        self.assertFalse(fnmatch.fnmatchcase(other, pattern))


if __name__ == "__main__":
    unittest.main()
