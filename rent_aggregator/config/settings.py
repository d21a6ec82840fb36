# rent_aggregator/config/settings.py

"""Central configuration for the rent_aggregator engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    """Read a boolean toggle such as ``USE_VOLATILE_CACHE=false``."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


def _env_number(name: str, default: float) -> float:
    """Read a numeric override, ignoring unparsable values."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class Settings:
    """Central configuration for the rent_aggregator engine."""

    # --- Fetching ---
    REQUEST_DELAY: float = 2.0          # Backoff base (seconds)
    REQUEST_TIMEOUT: int = 15           # Seconds before a request times out
    MAX_RETRIES: int = 3                # Attempts per request
    HEALTH_CHECK_TIMEOUT: int = 5       # Seconds per connector probe
    CLOUDSCRAPER_FALLBACK: bool = _env_flag(
        "CLOUDSCRAPER_FALLBACK", False
    )

    # --- Orchestration ---
    CONCURRENCY_LIMIT: int = int(
        _env_number("MAX_CONCURRENT_REQUESTS", 3)
    )
    BATCH_DELAY: float = 1.0            # Pause between connector batches
    SEARCH_TIMEOUT: float = _env_number("SEARCH_TIMEOUT", 60.0)

    # --- Cache ---
    CACHE_TTL: int = int(_env_number("CACHE_TTL", 1800))
    USE_VOLATILE_CACHE: bool = _env_flag("USE_VOLATILE_CACHE", True)
    PERSIST_LISTINGS: bool = _env_flag("PERSIST_LISTINGS", True)

    # --- Paging / criteria bounds ---
    DEFAULT_PAGE_SIZE: int = 12
    MAX_PAGE_SIZE: int = 50
    MAX_PAGE: int = 100
    DEFAULT_MAX_RESULTS: int = 30
    MAX_RESULTS_LIMIT: int = 100
    MAX_TEXT_LENGTH: int = 1000

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,*/*;q=0.8"
        ),
        "Accept-Language": "de-DE,de;q=0.9,en;q=0.8",
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "none",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = (
        BASE_DIR / "rent_aggregator" / "config" / "selectors.json"
    )
    CACHE_DB_PATH: Path = Path(
        os.getenv("CACHE_DB_PATH", str(BASE_DIR / "data" / "cache.db"))
    )
    LOGS_DIR: Path = BASE_DIR / "logs"
    CONSOLE_LOG_LEVEL: str = os.getenv("LOG_LEVEL", "WARNING").upper()

    # --- Scheduled refresh targets ---
    REFRESH_CITIES: list[str] = [
        "Berlin",
        "München",
        "Hamburg",
        "Köln",
        "Frankfurt",
    ]

    # --- Sources (registry of portal connectors) ---
    AVAILABLE_SOURCES: list[dict[str, str]] = [
        {
            "id": "wg-gesucht",
            "label": "WG-Gesucht",
            "connector": (
                "rent_aggregator.connectors.wg_gesucht_connector"
                ".WgGesuchtConnector"
            ),
            "env": "WG_GESUCHT_ENABLED",
        },
        {
            "id": "immobilienscout24",
            "label": "ImmobilienScout24",
            "connector": (
                "rent_aggregator.connectors.immobilienscout24_connector"
                ".ImmobilienScout24Connector"
            ),
            "env": "IS24_ENABLED",
        },
        {
            "id": "immowelt",
            "label": "Immowelt",
            "connector": (
                "rent_aggregator.connectors.immowelt_connector"
                ".ImmoweltConnector"
            ),
            "env": "IMMOWELT_ENABLED",
        },
        {
            "id": "kleinanzeigen",
            "label": "Kleinanzeigen",
            "connector": (
                "rent_aggregator.connectors.kleinanzeigen_connector"
                ".KleinanzeigenConnector"
            ),
            "env": "KLEINANZEIGEN_ENABLED",
        },
    ]

    @classmethod
    def enabled_sources(cls) -> list[dict[str, str]]:
        """Return the sources whose env toggle is not switched off."""
        return [
            src
            for src in cls.AVAILABLE_SOURCES
            if _env_flag(src.get("env", ""), True)
        ]
