"""Latest-wins debounce for search-as-you-type."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

SUPERSEDED: Any = object()


class Debouncer:
    """Run only the most recent call after a quiet period.

    Each :meth:`run` bumps a generation counter and sleeps ``delay``; if a
    newer call arrived in the meantime it returns :data:`SUPERSEDED` without
    running. A call that already started is never cancelled, but its result
    is also reported as superseded when a newer call came in while it ran.
    """

    def __init__(
        self,
        delay: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.delay = delay
        self._sleep = sleep
        self._generation = 0

    def cancel(self) -> None:
        """Invalidate whatever call is currently pending."""
        self._generation += 1

    async def run(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        self._generation += 1
        generation = self._generation

        await self._sleep(self.delay)
        if generation != self._generation:
            return SUPERSEDED

        result = await func(*args, **kwargs)
        if generation != self._generation:
            return SUPERSEDED
        return result
