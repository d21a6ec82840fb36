# rent_aggregator/services/fetch_orchestrator.py

"""Runs connectors in bounded batches and collects per-portal outcomes."""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from rent_aggregator.config.settings import Settings
from rent_aggregator.connectors.base_connector import BaseConnector
from rent_aggregator.errors import ConnectorContractError
from rent_aggregator.models.criteria import SearchCriteria
from rent_aggregator.models.listing import RawListing
from rent_aggregator.services.clock import Clock, SystemClock

logger = logging.getLogger("rent_aggregator.orchestrator")

TIMED_OUT = "timed out"
DEADLINE_EXCEEDED = "deadline exceeded"


@dataclass
class PortalResult:
    """What one connector contributed to a search."""

    portal: str
    listings: list[RawListing] = field(
        default_factory=lambda: list[RawListing]()
    )
    error: str | None = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


class FetchOrchestrator:
    """Fans a search out to connectors, ``concurrency_limit`` at a time.

    Connectors are synchronous and run in worker threads.  A failing
    connector only affects its own :class:`PortalResult`; ``run`` never
    raises because of a portal.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        batch_delay: float = Settings.BATCH_DELAY,
    ) -> None:
        self.clock = clock or SystemClock()
        self.batch_delay = batch_delay

    def _run_one(
        self,
        connector: BaseConnector,
        criteria: SearchCriteria,
        deadline: float | None,
    ) -> PortalResult:
        """Worker-thread body: call the connector and check its output."""
        portal = connector.SOURCE_ID
        started = self.clock.monotonic()
        result = PortalResult(portal=portal)
        try:
            records = connector.search(criteria, deadline=deadline)
            if not isinstance(records, Sequence) or isinstance(records, (str, bytes)):
                raise ConnectorContractError(
                    f"{portal} returned {type(records).__name__}, "
                    "expected a list of records"
                )
            bad = [r for r in records if not isinstance(r, Mapping)]
            if bad:
                raise ConnectorContractError(
                    f"{portal} returned {len(bad)} non-mapping record(s)"
                )
            result.listings = [dict(r) for r in records]
        except ConnectorContractError as exc:
            logger.error("Connector contract violated: %s", exc)
            result.error = str(exc)
        except Exception as exc:
            logger.warning(
                "Connector %s failed: %s",
                portal,
                exc,
                exc_info=True,
            )
            result.error = str(exc) or type(exc).__name__
        result.duration_ms = (self.clock.monotonic() - started) * 1000
        logger.info(
            "[%s] %s: %d raw listings in %.0fms",
            portal,
            "ok" if result.ok else f"error ({result.error})",
            len(result.listings),
            result.duration_ms,
        )
        return result

    async def run(
        self,
        criteria: SearchCriteria,
        connectors: Sequence[BaseConnector],
        concurrency_limit: int = Settings.CONCURRENCY_LIMIT,
        timeout: float | None = None,
    ) -> list[PortalResult]:
        """Return one PortalResult per connector, in connector order.

        With *timeout*, connectors still running when it elapses are
        abandoned (``"timed out"``) and batches not yet started are
        skipped (``"deadline exceeded"``).
        """
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")

        started = self.clock.monotonic()
        deadline = started + timeout if timeout is not None else None
        results: list[PortalResult] = []
        batches = [
            list(connectors[i:i + concurrency_limit])
            for i in range(0, len(connectors), concurrency_limit)
        ]

        for index, batch in enumerate(batches):
            if index > 0 and self.batch_delay > 0:
                await self.clock.sleep_async(self.batch_delay)

            remaining = (
                None if deadline is None
                else deadline - self.clock.monotonic()
            )
            if remaining is not None and remaining <= 0:
                skipped = [c for rest in batches[index:] for c in rest]
                logger.warning(
                    "Search deadline reached; skipping %d connector(s)",
                    len(skipped),
                )
                results.extend(
                    PortalResult(portal=c.SOURCE_ID, error=DEADLINE_EXCEEDED)
                    for c in skipped
                )
                break

            logger.debug(
                "Batch %d/%d: %s",
                index + 1,
                len(batches),
                ", ".join(c.SOURCE_ID for c in batch),
            )
            batch_started = self.clock.monotonic()
            tasks = [
                asyncio.ensure_future(
                    asyncio.to_thread(self._run_one, c, criteria, deadline)
                )
                for c in batch
            ]
            _, pending = await asyncio.wait(tasks, timeout=remaining)

            for connector, task in zip(batch, tasks):
                if task in pending:
                    task.cancel()
                    logger.warning(
                        "Connector %s abandoned after search timeout",
                        connector.SOURCE_ID,
                    )
                    results.append(PortalResult(
                        portal=connector.SOURCE_ID,
                        error=TIMED_OUT,
                        duration_ms=(
                            self.clock.monotonic() - batch_started
                        ) * 1000,
                    ))
                else:
                    results.append(task.result())

        ok = sum(1 for r in results if r.ok)
        logger.info(
            "Fetched from %d/%d connector(s) in %.0fms",
            ok,
            len(results),
            (self.clock.monotonic() - started) * 1000,
        )
        return results
