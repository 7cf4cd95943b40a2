"""Per-session call pacing.

Providers throttle on call *rate* per session, so every remote call an
adapter issues (list, detail, attachment, delete) waits its turn here
first.  Each adapter owns its own limiter; sessions never cross-throttle.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger()


class RateLimiter:
    """Enforce a minimum spacing between consecutive calls.

    Not safe for concurrent use from several tasks; one batch call at a
    time per adapter instance.
    """

    def __init__(
        self,
        min_interval_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if min_interval_seconds < 0:
            raise ValueError("min_interval_seconds must be >= 0")
        self._min_interval = min_interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None
        self._calls: int = 0

    @property
    def min_interval_seconds(self) -> float:
        return self._min_interval

    @property
    def calls(self) -> int:
        """Number of turns granted so far."""
        return self._calls

    async def wait(self) -> None:
        """Suspend until at least ``min_interval_seconds`` passed since the last turn."""
        if self._last_call is not None:
            elapsed = self._clock() - self._last_call
            remaining = self._min_interval - elapsed
            if remaining > 0:
                logger.debug("rate_limit_delay", delay_seconds=round(remaining, 3))
                await self._sleep(remaining)
        self._last_call = self._clock()
        self._calls += 1
