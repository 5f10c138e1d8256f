"""Balance resolver protocol: wallet token discovery."""
from typing import Protocol

from ..models import TokenBalance


class BalanceResolver(Protocol):
    """Abstract interface for discovering the tokens held by a wallet."""

    async def resolve_balances(
        self, address: str, chain_id: int
    ) -> list[TokenBalance]: ...
