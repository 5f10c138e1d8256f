"""Transport protocol: one HTTP GET against the market-data API."""
from typing import Protocol

from ..models import HttpResponse


class Transport(Protocol):
    """Abstract interface for a single unqueued HTTP GET."""

    async def get(self, url: str) -> HttpResponse: ...
