# rent_aggregator/services/health_checker.py

"""Portal connectivity health checker."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from rent_aggregator.connectors.base_connector import BaseConnector
from rent_aggregator.services.clock import Clock, SystemClock

logger = logging.getLogger("rent_aggregator.health")

_SLOW_THRESHOLD_MS = 5000


@dataclass
class HealthResult:
    """Result of a single connector health check."""

    source_id: str
    status: str  # "ok", "slow", "down"
    latency_ms: float
    message: str

    @property
    def healthy(self) -> bool:
        return self.status != "down"


def probe_connector(
    connector: BaseConnector,
    clock: Clock | None = None,
) -> HealthResult:
    """Probe one connector's portal homepage."""
    clock = clock or SystemClock()
    start = clock.monotonic()
    try:
        reachable = connector.health_check()
    except Exception as exc:
        return HealthResult(
            source_id=connector.SOURCE_ID,
            status="down",
            latency_ms=(clock.monotonic() - start) * 1000,
            message=str(exc)[:80],
        )
    elapsed_ms = (clock.monotonic() - start) * 1000

    if not reachable:
        return HealthResult(
            source_id=connector.SOURCE_ID,
            status="down",
            latency_ms=elapsed_ms,
            message="Unreachable",
        )
    if elapsed_ms > _SLOW_THRESHOLD_MS:
        return HealthResult(
            source_id=connector.SOURCE_ID,
            status="slow",
            latency_ms=elapsed_ms,
            message="High latency",
        )
    return HealthResult(
        source_id=connector.SOURCE_ID,
        status="ok",
        latency_ms=elapsed_ms,
        message="",
    )


class HealthChecker:
    """Runs concurrent health probes against every connector."""

    def __init__(
        self,
        connectors: Sequence[BaseConnector],
        clock: Clock | None = None,
    ) -> None:
        self.connectors = list(connectors)
        self.clock = clock or SystemClock()

    async def check_all(self) -> list[HealthResult]:
        """Probe every connector concurrently."""
        tasks = [
            asyncio.to_thread(probe_connector, c, self.clock)
            for c in self.connectors
        ]
        results: list[HealthResult] = list(await asyncio.gather(*tasks))
        for r in results:
            logger.info(
                "Health check %s: %s (%.0fms) %s",
                r.source_id,
                r.status,
                r.latency_ms,
                r.message,
            )
        return results
