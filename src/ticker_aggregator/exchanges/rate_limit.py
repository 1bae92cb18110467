from __future__ import annotations

import asyncio
import logging
import time
from datetime import timedelta
from typing import Awaitable, Callable, List

from ..domain import RateLimitInfo, utcnow

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


class RateLimiter:
    """Per-adapter request budget over a rolling 60 second window.

    The limiter keeps the grant instants that can still matter: every grant
    inside the window ending now plus the ones reserved for the future.  A new
    request is granted no earlier than one window after the ``N``-th most
    recent grant, so no rolling window ever holds more grants than the
    ceiling.  Requests are never rejected, only delayed.

    Bookkeeping happens under an :class:`asyncio.Lock`; the delay itself is
    awaited after the lock is released, so a throttled caller parks only its
    own task.  A caller cancelled while waiting gives its reservation back.
    """

    def __init__(
        self,
        requests_per_minute: int,
        *,
        name: str = "",
        window: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be positive")
        self.requests_per_minute = requests_per_minute
        self.name = name
        self._window = window
        self._clock = clock
        self._sleep = sleep
        self._grants: List[float] = []
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        lower = now - self._window
        expired = 0
        while expired < len(self._grants) and self._grants[expired] <= lower:
            expired += 1
        if expired:
            del self._grants[:expired]

    async def acquire(self) -> float:
        """Reserve one request slot and wait until it is due.

        Returns the number of seconds the caller was delayed.
        """

        async with self._lock:
            now = self._clock()
            self._prune(now)
            grant_at = now
            if self._grants:
                grant_at = max(grant_at, self._grants[-1])
            if len(self._grants) >= self.requests_per_minute:
                grant_at = max(grant_at, self._grants[-self.requests_per_minute] + self._window)
            self._grants.append(grant_at)

        delay = grant_at - now
        if delay <= 0:
            return 0.0
        logger.warning("Rate limit reached for %s, waiting %.3f s", self.name or "adapter", delay)
        try:
            await self._sleep(delay)
        except asyncio.CancelledError:
            # the critical section never awaits, so this removal cannot interleave with it
            self._release(grant_at)
            raise
        return delay

    def _release(self, grant_at: float) -> None:
        if grant_at > self._clock() and grant_at in self._grants:
            self._grants.remove(grant_at)
            logger.debug("Released reserved slot of %s at %.3f", self.name or "adapter", grant_at)

    def _in_window(self, now: float) -> list[float]:
        lower = now - self._window
        return [ts for ts in self._grants if ts > lower]

    def used(self) -> int:
        """Grants counted against the window ending now, including reserved ones."""

        return len(self._in_window(self._clock()))

    def info(self) -> RateLimitInfo:
        now = self._clock()
        active = self._in_window(now)
        used = len(active)
        remaining = max(0, self.requests_per_minute - used)
        reset_in = (active[0] + self._window - now) if active else 0.0
        return RateLimitInfo(
            requests_per_minute=self.requests_per_minute,
            used=min(used, self.requests_per_minute),
            remaining=remaining,
            reset_at=utcnow() + timedelta(seconds=max(reset_in, 0.0)),
            is_limited=remaining == 0,
        )
