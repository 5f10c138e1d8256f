"""Market data protocol: what the portfolio store needs from the client."""
from typing import Protocol, Sequence

from ..models import Token


class MarketDataSource(Protocol):
    """Abstract interface for fetching normalized market snapshots."""

    async def get_market_data(
        self, page: int = 1, per_page: int = 10, force_refresh: bool = False
    ) -> list[Token]: ...

    async def get_coins_by_ids(self, ids: Sequence[str]) -> list[Token]: ...
