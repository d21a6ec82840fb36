# rent_aggregator/connectors/request_executor.py

"""Shared HTTP GET executor with bounded exponential-backoff retries."""

import logging
import threading
from typing import Any

import cloudscraper  # type: ignore[import-untyped]
from curl_cffi import requests as curl_requests

from rent_aggregator.config.settings import Settings
from rent_aggregator.errors import FetchError
from rent_aggregator.services.clock import Clock, SystemClock

logger = logging.getLogger("rent_aggregator.http")


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Wait before retrying after failed *attempt* (1-based)."""
    return base_delay * 2 ** (attempt - 1)


class RequestExecutor:
    """Performs one GET with retries; never interprets response bodies.

    Each worker thread gets its own ``curl_cffi`` session, so a single
    executor can be shared by every connector and every concurrent
    search.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        impersonate: str | None = None,
        cloudscraper_fallback: bool | None = None,
    ) -> None:
        self.clock = clock or SystemClock()
        self._impersonate = impersonate or Settings.IMPERSONATE_BROWSER
        self._cloudscraper_fallback = (
            Settings.CLOUDSCRAPER_FALLBACK
            if cloudscraper_fallback is None
            else cloudscraper_fallback
        )
        self._local = threading.local()

    def _session(self) -> curl_requests.Session:
        """Return the calling thread's session, creating it lazily."""
        session: curl_requests.Session | None = getattr(
            self._local, "session", None
        )
        if session is None:
            session = curl_requests.Session(
                impersonate=self._impersonate  # type: ignore[arg-type]
            )
            self._local.session = session
        return session

    def _remaining(self, deadline: float | None) -> float | None:
        if deadline is None:
            return None
        return deadline - self.clock.monotonic()

    def fetch(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        *,
        timeout: float = Settings.REQUEST_TIMEOUT,
        max_attempts: int = Settings.MAX_RETRIES,
        base_delay: float = Settings.REQUEST_DELAY,
        deadline: float | None = None,
    ) -> Any:
        """GET *url*, retrying non-2xx answers and transport errors.

        Waits ``base_delay * 2**(attempt-1)`` between attempts.  The
        per-request timeout is capped by the time left before
        *deadline* (a ``clock.monotonic()`` value) and no attempt starts
        after it.  Raises :class:`FetchError` once attempts run out.
        """
        request_headers = dict(headers or {})
        last_status: int | None = None
        last_error: BaseException | None = None

        for attempt in range(1, max_attempts + 1):
            remaining = self._remaining(deadline)
            if remaining is not None and remaining <= 0:
                raise FetchError(
                    f"Deadline exceeded before attempt {attempt} for {url}",
                    url=url,
                    cause=last_error,
                    status_code=last_status,
                )
            request_timeout = (
                timeout if remaining is None else min(timeout, remaining)
            )

            try:
                resp = self._session().get(
                    url,
                    headers=request_headers,
                    timeout=request_timeout,
                )
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Request error on attempt %d/%d for %s: %s",
                    attempt,
                    max_attempts,
                    url,
                    exc,
                )
            else:
                if 200 <= resp.status_code < 300:
                    return resp
                last_status = resp.status_code
                logger.warning(
                    "HTTP %d on attempt %d/%d for %s",
                    resp.status_code,
                    attempt,
                    max_attempts,
                    url,
                )

            if attempt == max_attempts:
                break
            delay = backoff_delay(base_delay, attempt)
            remaining = self._remaining(deadline)
            if remaining is not None and delay >= remaining:
                logger.info(
                    "Backoff of %.1fs would pass the deadline for %s",
                    delay,
                    url,
                )
                break
            self.clock.sleep(delay)

        if self._cloudscraper_fallback:
            fallback = self._fetch_cloudscraper(
                url, request_headers, timeout
            )
            if fallback is not None:
                return fallback

        raise FetchError(
            f"GET {url} failed after {max_attempts} attempt(s)"
            + (f" (last HTTP {last_status})" if last_status else ""),
            url=url,
            cause=last_error,
            status_code=last_status,
            retryable=False,
        )

    def _fetch_cloudscraper(
        self,
        url: str,
        headers: dict[str, str],
        timeout: float,
    ) -> Any:
        """Single JS-challenge-solving attempt after curl_cffi gave up."""
        logger.info(
            "curl_cffi exhausted, falling back to cloudscraper for %s",
            url,
        )
        try:
            _cs: Any = cloudscraper
            scraper: Any = _cs.create_scraper()
            resp: Any = scraper.get(url, headers=headers, timeout=timeout)
            if 200 <= int(resp.status_code) < 300:
                return resp
            logger.warning(
                "cloudscraper fallback got HTTP %s for %s",
                resp.status_code,
                url,
            )
        except Exception as exc:
            logger.error(
                "cloudscraper fallback also failed for %s: %s",
                url,
                exc,
                exc_info=True,
            )
        return None
