"""Portfolio aggregation store: single source of truth for watchlist state."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Callable, Sequence

from ..config import PortfolioConfig
from ..errors import MarketDataError
from ..interfaces.market_data import MarketDataSource
from ..interfaces.storage import KeyValueStorage
from ..models import PortfolioState
from . import transitions

logger = logging.getLogger(__name__)

WATCHLIST_KEY = "portfolio-watchlist"
HOLDINGS_KEY = "portfolio-holdings"
ANONYMOUS_NAMESPACE = "anonymous"

StateListener = Callable[[PortfolioState], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_address(address: str | None) -> str | None:
    if not address:
        return None
    return address.strip().lower() or None


def storage_keys(address: str | None) -> tuple[str, str]:
    """Watchlist and holdings keys for an identity namespace."""
    namespace = _normalize_address(address) or ANONYMOUS_NAMESPACE
    return f"{WATCHLIST_KEY}:{namespace}", f"{HOLDINGS_KEY}:{namespace}"


class PortfolioStore:
    """Apply transitions, persist the bound identity, notify subscribers.

    Async actions re-read the current state when their fetch completes, so
    edits made while a request is in flight are not lost. A fetch that
    completes after :meth:`load_identity` switched identity is dropped.
    """

    def __init__(
        self,
        market: MarketDataSource,
        storage: KeyValueStorage,
        config: PortfolioConfig,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._market = market
        self._storage = storage
        self._config = config
        self._now = now
        self._listeners: list[StateListener] = []
        self._generation = 0

        watchlist, holdings = self._load(None)
        self._state = PortfolioState(
            watchlist=tuple(watchlist),
            holdings=holdings,
            last_updated=now(),
            default_holding=config.default_holding,
        )

    @property
    def state(self) -> PortfolioState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _apply(self, state: PortfolioState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self, address: str | None) -> tuple[list[str], dict[str, str]]:
        watchlist_key, holdings_key = storage_keys(address)

        watchlist = list(self._config.default_watchlist)
        raw = self._storage.get_item(watchlist_key)
        if raw is not None:
            try:
                parsed = json.loads(raw)
            except ValueError as e:
                logger.warning("Corrupt watchlist under %s: %s", watchlist_key, e)
            else:
                if isinstance(parsed, list):
                    watchlist = [str(i) for i in parsed]

        holdings: dict[str, str] = {}
        raw = self._storage.get_item(holdings_key)
        if raw is not None:
            try:
                parsed = json.loads(raw)
            except ValueError as e:
                logger.warning("Corrupt holdings under %s: %s", holdings_key, e)
            else:
                if isinstance(parsed, dict):
                    holdings = {str(k): str(v) for k, v in parsed.items()}

        for token_id in watchlist:
            holdings.setdefault(token_id, self._config.default_holding)
        return list(dict.fromkeys(watchlist)), holdings

    def _persist(self, watchlist: bool = True, holdings: bool = True) -> None:
        watchlist_key, holdings_key = storage_keys(self._state.address)
        if watchlist:
            self._storage.set_item(watchlist_key, json.dumps(list(self._state.watchlist)))
        if holdings:
            self._storage.set_item(holdings_key, json.dumps(dict(self._state.holdings)))

    # ------------------------------------------------------------------
    # Async actions
    # ------------------------------------------------------------------

    def _failure(self, e: Exception, fallback: str) -> str:
        """Error string for a failed fetch; unexpected errors are logged with traceback."""
        if not isinstance(e, MarketDataError):
            logger.exception("Unexpected error from market data source")
        return str(e) or fallback

    async def fetch_tokens(
        self, page: int = 1, per_page: int = 100, force_refresh: bool = False
    ) -> None:
        """Replace the token list with a market snapshot."""
        generation = self._generation
        self._apply(transitions.fetch_pending(self._state))

        try:
            tokens = await self._market.get_market_data(page, per_page, force_refresh)
        except Exception as e:
            tokens, error = [], self._failure(e, "Failed to fetch tokens")
        else:
            error = "" if tokens else "No market data available"

        if generation != self._generation:
            logger.info("Dropping market snapshot fetched for a previous identity")
            return
        if error:
            logger.warning("Token fetch failed: %s", error)
            self._apply(transitions.fetch_rejected(self._state, error))
            return
        self._apply(transitions.tokens_fetched(self._state, tokens, self._now()))

    async def add_tokens_by_id(self, ids: Sequence[str]) -> None:
        """Fetch and insert tokens that are not in the list yet."""
        wanted = [i.strip() for i in ids if i and i.strip()]
        if not wanted:
            return

        generation = self._generation
        self._apply(transitions.fetch_pending(self._state))

        try:
            tokens = await self._market.get_coins_by_ids(wanted)
        except Exception as e:
            error = self._failure(e, "Failed to add tokens")
            if generation == self._generation:
                self._apply(transitions.fetch_rejected(self._state, error))
            return

        if generation != self._generation:
            logger.info("Dropping tokens fetched for a previous identity")
            return
        self._apply(
            transitions.tokens_added(
                self._state, tokens, self._now(), self._config.default_holding
            )
        )
        self._persist()

    async def refresh_watchlist(self) -> None:
        """Re-price the watchlist tokens without reordering the list."""
        watchlist = list(self._state.watchlist)
        if not watchlist:
            return

        generation = self._generation
        self._apply(transitions.fetch_pending(self._state))

        try:
            tokens = await self._market.get_coins_by_ids(watchlist)
        except Exception as e:
            error = self._failure(e, "Failed to refresh")
            if generation == self._generation:
                self._apply(transitions.fetch_rejected(self._state, error))
            return

        if generation != self._generation:
            return
        self._apply(transitions.prices_refreshed(self._state, tokens, self._now()))

    # ------------------------------------------------------------------
    # Synchronous actions
    # ------------------------------------------------------------------

    def update_holding(self, token_id: str, amount: str) -> None:
        self._apply(
            transitions.holding_updated(self._state, token_id, amount, self._now())
        )
        self._persist(watchlist=False)

    def add_to_watchlist(self, token_id: str) -> None:
        if not token_id or token_id in self._state.watchlist:
            return
        self._apply(
            transitions.watchlist_added(
                self._state, token_id, self._now(), self._config.default_holding
            )
        )
        self._persist()

    def remove_from_watchlist(self, token_id: str) -> None:
        self._apply(transitions.watchlist_removed(self._state, token_id, self._now()))
        self._persist()

    def load_identity(self, address: str | None) -> None:
        """Bind the storage namespace of ``address`` (None = anonymous)."""
        address = _normalize_address(address)
        if address != self._state.address:
            self._generation += 1
            logger.info("Switching portfolio identity to %s", address or ANONYMOUS_NAMESPACE)

        watchlist, holdings = self._load(address)
        self._apply(
            transitions.identity_loaded(
                self._state, address, watchlist, holdings, self._now()
            )
        )

    def clear_portfolio(self) -> None:
        """Reset everything and erase the identity's persisted state."""
        self._apply(transitions.cleared(self._state, self._now()))
        for key in storage_keys(self._state.address):
            self._storage.remove_item(key)

    def clear_tokens_only(self) -> None:
        """Reset in-memory state; persisted state is left alone."""
        self._apply(transitions.cleared(self._state, self._now()))

    def touch(self) -> None:
        self._apply(transitions.touched(self._state, self._now()))

    def clear_error(self) -> None:
        self._apply(transitions.error_cleared(self._state))
