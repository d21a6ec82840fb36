# tests/conftest.py

"""Fixtures applied to every rent_aggregator test."""

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest

from rent_aggregator.config.settings import Settings


@pytest.fixture(autouse=True)
def instant_backoff() -> Iterator[None]:
    """Retry backoff through SystemClock must not slow the suite down."""
    with patch("time.sleep"):
        yield


@pytest.fixture(autouse=True)
def isolated_storage(tmp_path: Path) -> Iterator[Path]:
    """Point the cache DB and run logs at a per-test directory."""
    with patch.object(Settings, "CACHE_DB_PATH", tmp_path / "cache.db"), \
            patch.object(Settings, "LOGS_DIR", tmp_path / "logs"):
        yield tmp_path
