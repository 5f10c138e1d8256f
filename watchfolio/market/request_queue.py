"""Rate-limited FIFO request queue with retry and backoff."""
from __future__ import annotations

import asyncio
import logging
import random
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable

from ..config import RateLimitConfig
from ..errors import HttpStatusError, ThrottledError, TransportError
from ..interfaces.transport import Transport
from ..models import HttpResponse

logger = logging.getLogger(__name__)


@dataclass
class QueueItem:
    url: str
    future: asyncio.Future


class RequestQueue:
    """Serialize outbound requests so they respect the upstream rate limit.

    A single drain task dispatches queued URLs in arrival order and waits at
    least ``min_interval_seconds`` between the start of two dispatches. A
    request that fails after its retries only rejects its own caller; the
    drain loop moves on to the next item.
    """

    def __init__(
        self,
        transport: Transport,
        config: RateLimitConfig,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
    ) -> None:
        self._transport = transport
        self._config = config
        self._clock = clock
        self._sleep = sleep
        self._jitter = jitter

        self._items: deque[QueueItem] = deque()
        self._draining = False
        self._drain_task: asyncio.Task | None = None
        self._last_dispatch: float | None = None
        self._rate_limited_at: float | None = None

    # ------------------------------------------------------------------
    # Rate-limit flag
    # ------------------------------------------------------------------

    def mark_rate_limited(self) -> None:
        self._rate_limited_at = self._clock()

    @property
    def recently_rate_limited(self) -> bool:
        """True when a 429 was seen within the configured window."""
        if self._rate_limited_at is None:
            return False
        elapsed = self._clock() - self._rate_limited_at
        return elapsed < self._config.rate_limited_window_seconds

    @property
    def pending(self) -> int:
        return len(self._items)

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    async def enqueue(self, url: str) -> HttpResponse:
        """Queue ``url`` and wait for its response."""
        future = asyncio.get_running_loop().create_future()
        self._items.append(QueueItem(url=url, future=future))
        self._ensure_draining()
        return await future

    def _ensure_draining(self) -> None:
        if self._draining:
            return
        self._draining = True
        self._drain_task = asyncio.ensure_future(self._drain())

    async def _drain(self) -> None:
        try:
            while self._items:
                item = self._items.popleft()

                if self._last_dispatch is not None:
                    wait = self._config.min_interval_seconds - (
                        self._clock() - self._last_dispatch
                    )
                    if wait > 0:
                        logger.debug("Rate limit: waiting %.2fs before %s", wait, item.url)
                        await self._sleep(wait)

                self._last_dispatch = self._clock()

                try:
                    response = await self.fetch_with_retry(item.url)
                except Exception as e:
                    if not item.future.done():
                        item.future.set_exception(e)
                else:
                    if not item.future.done():
                        item.future.set_result(response)
        finally:
            self._draining = False

    # ------------------------------------------------------------------
    # Retry
    # ------------------------------------------------------------------

    async def fetch_with_retry(self, url: str) -> HttpResponse:
        """GET ``url``, retrying throttling replies and network failures.

        429 replies back off with ``base * 2**attempt + jitter``; network
        errors with ``base * 1.5**attempt``. Any other non-success status is
        raised immediately.
        """
        max_retries = self._config.max_retries
        base = self._config.base_backoff_seconds

        for attempt in range(max_retries + 1):
            try:
                response = await self._transport.get(url)
            except TransportError as e:
                if attempt == max_retries:
                    raise
                delay = base * (1.5**attempt)
                logger.warning(
                    "Network error (attempt %d/%d), retrying in %.1fs: %s",
                    attempt + 1,
                    max_retries + 1,
                    delay,
                    e,
                )
                await self._sleep(delay)
                continue

            if response.status == 429:
                self.mark_rate_limited()
                if attempt == max_retries:
                    logger.error("Rate limited after %d attempts: %s", attempt + 1, url)
                    raise ThrottledError(attempt + 1, url)
                delay = base * (2**attempt) + self._jitter() * self._config.jitter_seconds
                logger.warning(
                    "Rate limited (attempt %d/%d), backing off %.1fs",
                    attempt + 1,
                    max_retries + 1,
                    delay,
                )
                await self._sleep(delay)
                continue

            if not response.ok:
                raise HttpStatusError(response.status, response.reason, url)

            return response

        raise RuntimeError("Max retries exceeded")
