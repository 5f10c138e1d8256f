"""Display-ready view of the portfolio store and wallet signal."""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from ..config import PortfolioConfig
from ..formatting import format_balance, format_clock, format_currency, parse_numeric
from ..market.coingecko import CoinGeckoClient
from ..models import Token, WalletState
from ..portfolio.store import PortfolioStore
from ..wallet import WalletSignal
from .debounce import SUPERSEDED, Debouncer

logger = logging.getLogger(__name__)


def _identity(wallet: WalletState) -> str | None:
    """Lower-cased address of a connected wallet, None otherwise."""
    if not wallet.is_connected or not wallet.address:
        return None
    return wallet.address.strip().lower() or None


@dataclass(frozen=True)
class AllocationSlice:
    """Share of the portfolio held in one token."""

    name: str
    symbol: str
    percent: float
    value: str


class PortfolioViewModel:
    """Adapt store state and wallet signal into fields a presentation layer shows."""

    def __init__(
        self,
        store: PortfolioStore,
        client: CoinGeckoClient,
        wallet: WalletSignal,
        config: PortfolioConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._client = client
        self._wallet = wallet
        self._config = config
        self._search = Debouncer(config.search_debounce_seconds, sleep)
        self.wallet_value = 0.0
        self._bound_identity = _identity(wallet.state)
        self._unsubscribe = wallet.subscribe(self._on_wallet_change)

    def close(self) -> None:
        self._unsubscribe()

    # ------------------------------------------------------------------
    # Derived fields
    # ------------------------------------------------------------------

    @property
    def tokens(self) -> tuple[Token, ...]:
        return self._store.state.tokens

    @property
    def holdings(self) -> dict[str, str]:
        return dict(self._store.state.holdings)

    @property
    def watchlist(self) -> tuple[str, ...]:
        return self._store.state.watchlist

    @property
    def portfolio_total(self) -> str:
        return format_currency(self._store.state.total)

    @property
    def last_updated(self) -> str:
        return format_clock(self._store.state.last_updated)

    @property
    def is_loading(self) -> bool:
        return self._store.state.is_loading

    @property
    def error(self) -> str | None:
        return self._store.state.error

    @property
    def is_connected(self) -> bool:
        return self._wallet.state.is_connected

    @property
    def balance(self) -> str:
        wallet = self._wallet.state
        return format_balance(wallet.balance, wallet.symbol)

    def paginated_tokens(self, page: int, items_per_page: int | None = None) -> tuple[Token, ...]:
        size = items_per_page or self._config.page_size
        start = (page - 1) * size
        return self.tokens[start : start + size]

    def total_pages(self, items_per_page: int | None = None) -> int:
        size = items_per_page or self._config.page_size
        return math.ceil(len(self.tokens) / size)

    def allocation(self) -> list[AllocationSlice]:
        """Per-token share of portfolio value; tokens worth nothing are left out."""
        holdings = self._store.state.holdings
        values = [
            (t, parse_numeric(holdings.get(t.id, "0")) * t.current_price)
            for t in self.tokens
        ]
        total = sum(v for _, v in values)
        if total == 0:
            return []
        return [
            AllocationSlice(
                name=t.name,
                symbol=t.symbol,
                percent=value / total * 100,
                value=format_currency(value),
            )
            for t, value in values
            if value > 0
        ]

    # ------------------------------------------------------------------
    # Wallet
    # ------------------------------------------------------------------

    def _on_wallet_change(self, wallet: WalletState) -> None:
        identity = _identity(wallet)
        if identity == self._bound_identity:
            return
        self._bound_identity = identity
        self._store.load_identity(identity)

    async def sync_wallet(self) -> None:
        """Bind the wallet's identity and load its watchlist when nothing is shown."""
        wallet = self._wallet.state
        self._bound_identity = _identity(wallet)
        self._store.load_identity(self._bound_identity)

        state = self._store.state
        if wallet.is_connected and wallet.address and state.watchlist and not state.tokens:
            await self._store.add_tokens_by_id(state.watchlist)

    async def wallet_portfolio_value(self) -> float:
        wallet = self._wallet.state
        if not wallet.address or not wallet.is_connected:
            return 0.0
        return await self._client.get_portfolio_value(wallet.address, wallet.chain_id)

    async def refresh_portfolio(self) -> None:
        self._store.touch()
        if self._store.state.watchlist:
            await self._store.refresh_watchlist()
        if self.is_connected:
            self.wallet_value = await self.wallet_portfolio_value()

    # ------------------------------------------------------------------
    # Store delegation
    # ------------------------------------------------------------------

    async def add_tokens(self, coin_ids: Sequence[str]) -> None:
        await self._store.add_tokens_by_id(coin_ids)

    def update_token_holding(self, token_id: str, amount: str) -> None:
        self._store.update_holding(token_id, amount)

    def add_token_to_watchlist(self, token_id: str) -> None:
        self._store.add_to_watchlist(token_id)

    def remove_token_from_watchlist(self, token_id: str) -> None:
        self._store.remove_from_watchlist(token_id)

    def clear_watchlist(self) -> None:
        self._store.clear_portfolio()

    # ------------------------------------------------------------------
    # Token discovery
    # ------------------------------------------------------------------

    async def trending(self) -> list[dict[str, Any]]:
        payload = await self._client.get_trending_coins()
        if not payload:
            return []
        coins = payload.get("coins", [])[: self._config.trending_limit]
        return [c["item"] for c in coins if isinstance(c, dict) and "item" in c]

    async def search(self, query: str) -> list[dict[str, Any]] | None:
        """Debounced search; ``None`` means a newer keystroke superseded this one."""
        if len(query.strip()) < self._config.search_min_length:
            self._search.cancel()
            return []

        results = await self._search.run(self._client.search_coins, query)
        if results is SUPERSEDED:
            logger.debug("Search for '%s' superseded", query)
            return None
        return results[: self._config.search_limit]
