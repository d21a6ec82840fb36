# tests/test_registry.py

"""Tests for dynamic connector loading."""

import unittest
from unittest.mock import MagicMock

from rent_aggregator.config.settings import Settings
from rent_aggregator.connectors.registry import (
    load_connector_class,
    load_connectors,
)
from rent_aggregator.connectors.wg_gesucht_connector import (
    WgGesuchtConnector,
)


class TestRegistry(unittest.TestCase):

    def test_load_connector_class(self) -> None:
        cls = load_connector_class(
            "rent_aggregator.connectors.wg_gesucht_connector"
            ".WgGesuchtConnector"
        )
        self.assertIs(cls, WgGesuchtConnector)

    def test_all_registered_connectors_load(self) -> None:
        """Every registry entry resolves and shares the executor."""
        executor = MagicMock()
        connectors = load_connectors(Settings.AVAILABLE_SOURCES, executor)

        self.assertEqual(
            [c.SOURCE_ID for c in connectors],
            [s["id"] for s in Settings.AVAILABLE_SOURCES],
        )
        for connector in connectors:
            self.assertIs(connector.executor, executor)

    def test_broken_source_skipped(self) -> None:
        """A source that fails to import does not block the others."""
        sources = [
            {"id": "ghost", "connector": "nonexistent.module.Ghost"},
            Settings.AVAILABLE_SOURCES[0],
        ]
        with self.assertLogs("rent_aggregator.registry", "WARNING"):
            connectors = load_connectors(sources, MagicMock())
        self.assertEqual(len(connectors), 1)
        self.assertEqual(connectors[0].SOURCE_ID, "wg-gesucht")


if __name__ == "__main__":
    unittest.main()
