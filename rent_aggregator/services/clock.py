# rent_aggregator/services/clock.py

"""Clock abstraction for backoff, batch pacing, TTLs and deadlines."""

import asyncio
import time
from datetime import datetime, timezone


class Clock:
    """Interface every time-dependent component receives by injection."""

    def now(self) -> datetime:
        """Current wall-clock time as an aware UTC datetime."""
        raise NotImplementedError

    def monotonic(self) -> float:
        """Monotonic seconds, used for deadlines and latency."""
        raise NotImplementedError

    def sleep(self, seconds: float) -> None:
        """Block the calling thread."""
        raise NotImplementedError

    async def sleep_async(self, seconds: float) -> None:
        """Suspend the calling coroutine."""
        raise NotImplementedError


class SystemClock(Clock):
    """Real time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    async def sleep_async(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)
