"""CoinGecko market-data client."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence
from urllib.parse import urlencode

from ..config import AppConfig
from ..errors import HttpStatusError, MarketDataError, ThrottledError
from ..interfaces.balances import BalanceResolver
from ..interfaces.transport import Transport
from ..models import Token, WalletToken
from .cache import CacheStore
from .networks import network_for_chain
from .normalize import normalize_coins
from .request_queue import RequestQueue
from .transport import AiohttpTransport

logger = logging.getLogger(__name__)


def _endpoint(url: str) -> str:
    """URL without its query string, safe to log (no API key)."""
    return url.split("?", 1)[0]


class CoinGeckoClient:
    """Fetch market data through a shared cache and rate-limited queue.

    Interactive reads (trending, search, forced market refresh) try a direct
    unqueued request first and only fall back to the queue when it fails.
    Everything else goes through :meth:`cached_fetch`.
    """

    def __init__(
        self,
        config: AppConfig,
        transport: Transport,
        queue: RequestQueue,
        cache: CacheStore,
        search_cache: CacheStore,
        balance_resolver: BalanceResolver | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._api = config.coingecko
        self._rate_limit = config.rate_limit
        self._sparkline_points = config.portfolio.sparkline_points
        self.transport = transport
        self.queue = queue
        self.cache = cache
        self.search_cache = search_cache
        self._balances = balance_resolver
        self._sleep = sleep
        self._wallet_tokens: list[WalletToken] = []

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------

    def api_url(self, endpoint: str, params: dict[str, Any] | None = None) -> str:
        """Build a full URL, appending the API key for the configured tier."""
        query = dict(params or {})
        if self._api.pro_api_key:
            base = self._api.pro_base_url
            query["x_cg_pro_api_key"] = self._api.pro_api_key
        else:
            base = self._api.base_url
            if self._api.api_key:
                query["x_cg_demo_api_key"] = self._api.api_key

        url = f"{base}{endpoint}"
        if query:
            url = f"{url}?{urlencode(query, safe=',')}"
        return url

    async def direct_fetch(self, url: str) -> Any:
        """Single unqueued GET; raises instead of retrying."""
        response = await self.transport.get(url)
        if response.status == 429:
            self.queue.mark_rate_limited()
            raise ThrottledError(1, url)
        if not response.ok:
            raise HttpStatusError(response.status, response.reason, url)
        return response.data

    async def cached_fetch(self, url: str) -> Any:
        """Serve from cache, else go through the queue.

        When the queued request fails, an expired cache entry is still
        returned if one exists; otherwise the error propagates.
        """
        entry = self.cache.get(url)
        if entry is not None:
            return entry.data

        try:
            response = await self.queue.enqueue(url)
        except MarketDataError as e:
            stale = self.cache.get_entry(url)
            if stale is not None:
                logger.warning(
                    "Serving stale cache for %s after error: %s", _endpoint(url), e
                )
                return stale.data
            raise

        self.cache.set(url, response.data)
        return response.data

    # ------------------------------------------------------------------
    # Market endpoints
    # ------------------------------------------------------------------

    def _markets_url(self, page: int, per_page: int, sparkline: bool, ids: str = "") -> str:
        params: dict[str, Any] = {"vs_currency": "usd"}
        if ids:
            params["ids"] = ids
        params.update(
            {
                "order": "market_cap_desc",
                "per_page": per_page,
                "page": page,
                "sparkline": "true" if sparkline else "false",
                "price_change_percentage": "24h",
            }
        )
        return self.api_url("/coins/markets", params)

    async def get_market_data(
        self, page: int = 1, per_page: int = 10, force_refresh: bool = False
    ) -> list[Token]:
        """Page of coins ordered by market cap, as ranked upstream.

        On persistent throttling the page size is halved (after a cooldown)
        while it is above ``min_halving_per_page``; other failures yield an
        empty list.
        """
        try:
            data = await self._fetch_markets(page, per_page, force_refresh)
        except ThrottledError as e:
            if per_page > self._rate_limit.min_halving_per_page:
                smaller = per_page // 2
                logger.warning(
                    "%s; retrying with per_page=%d in %.0fs",
                    e,
                    smaller,
                    self._rate_limit.cooldown_seconds,
                )
                await self._sleep(self._rate_limit.cooldown_seconds)
                return await self.get_market_data(page, smaller, force_refresh)
            logger.error("Market data unavailable: %s", e)
            return []
        except MarketDataError as e:
            logger.error("Market data unavailable: %s", e)
            return []

        if not isinstance(data, list):
            logger.error("Unexpected markets payload: %s", type(data).__name__)
            return []
        return normalize_coins(data, self._sparkline_points)

    async def _fetch_markets(self, page: int, per_page: int, force_refresh: bool) -> Any:
        if self.queue.recently_rate_limited:
            per_page = min(per_page, self._rate_limit.rate_limited_per_page_cap)

        url = self._markets_url(page, per_page, sparkline=False)

        if force_refresh:
            self.cache.delete(url)
            try:
                data = await self.direct_fetch(url)
            except MarketDataError as e:
                logger.info("Direct refresh failed (%s), falling back to queue", e)
            else:
                self.cache.set(url, data)
                return data

        return await self.cached_fetch(url)

    async def get_coins_by_ids(self, ids: Sequence[str]) -> list[Token]:
        """Market records (with sparkline) for a specific set of coin ids."""
        unique = list(dict.fromkeys(i for i in ids if i))
        if not unique:
            return []

        url = self._markets_url(1, 250, sparkline=True, ids=",".join(unique))
        try:
            data = await self.cached_fetch(url)
        except MarketDataError as e:
            logger.error("Failed to fetch coins %s: %s", ",".join(unique), e)
            return []

        if not isinstance(data, list):
            return []
        return normalize_coins(data, self._sparkline_points)

    async def get_trending_coins(self) -> dict[str, Any] | None:
        """Raw ``/search/trending`` payload, or None when unavailable."""
        url = self.api_url("/search/trending")

        entry = self.cache.get(url)
        if entry is not None:
            return entry.data

        try:
            data = await self.direct_fetch(url)
        except MarketDataError as e:
            logger.info("Direct trending fetch failed (%s), using queue", e)
            try:
                return await self.cached_fetch(url)
            except MarketDataError as err:
                logger.error("Trending coins unavailable: %s", err)
                return None

        self.cache.set(url, data)
        return data

    async def search_coins(self, query: str) -> list[dict[str, Any]]:
        """Best-effort coin search. Never raises; empty query -> []."""
        normalized = query.lower().strip()
        if not normalized:
            return []

        search_key = f"search:{normalized}"
        cached = self.search_cache.get(search_key)
        if cached is not None:
            return cached.data

        url = self.api_url("/search", {"query": query.strip()})
        try:
            data = await self.direct_fetch(url)
        except MarketDataError as e:
            stale = self.search_cache.get_entry(search_key)
            if stale is not None:
                return stale.data
            entry = self.cache.get_entry(url)
            if entry is not None and isinstance(entry.data, dict):
                return entry.data.get("coins", [])
            logger.warning("Search for '%s' failed: %s", normalized, e)
            return []

        coins = data.get("coins", []) if isinstance(data, dict) else []
        self.search_cache.set(search_key, coins)
        self.cache.set(url, data)
        return coins

    async def get_token_price_data(
        self, addresses: str | Sequence[str], network: str = "ethereum"
    ) -> dict[str, Any] | None:
        """Contract prices keyed by (lower-case) address.

        The free tier accepts one contract per request, so each address is
        fetched on its own; failed addresses are left out.
        """
        if isinstance(addresses, str):
            addresses = [addresses]

        results: dict[str, Any] = {}
        for address in addresses:
            url = self.api_url(
                f"/simple/token_price/{network}",
                {
                    "contract_addresses": address,
                    "vs_currencies": "usd",
                    "include_market_cap": "true",
                    "include_24hr_vol": "true",
                    "include_24hr_change": "true",
                    "include_last_updated_at": "true",
                },
            )
            try:
                data = await self.cached_fetch(url)
            except MarketDataError as e:
                logger.warning("Price lookup failed for %s on %s: %s", address, network, e)
                continue
            if isinstance(data, dict):
                results.update(data)

        return results or None

    # ------------------------------------------------------------------
    # Wallet-aware helpers
    # ------------------------------------------------------------------

    async def get_wallet_token_balances(
        self, wallet_address: str, chain_id: int
    ) -> list[WalletToken]:
        """Discover wallet balances and price them on the chain's network."""
        if self._balances is None:
            return []

        network = network_for_chain(chain_id)
        try:
            balances = await self._balances.resolve_balances(wallet_address, chain_id)
        except Exception as e:
            logger.error("Balance discovery failed for %s: %s", wallet_address, e)
            return []
        if not balances:
            return []

        prices = await self.get_token_price_data(
            [b.contract_address for b in balances], network
        )
        if not prices:
            return []

        self._wallet_tokens = [
            WalletToken(
                address=b.contract_address,
                network=network,
                balance=b.balance,
                price_data=prices.get(b.contract_address.lower()),
            )
            for b in balances
        ]
        return list(self._wallet_tokens)

    async def get_portfolio_value(self, wallet_address: str, chain_id: int) -> float:
        tokens = await self.get_wallet_token_balances(wallet_address, chain_id)
        return sum(t.usd_value for t in tokens)

    def get_wallet_token_balance(self, token_address: str) -> float:
        """Balance of ``token_address`` in the last discovered wallet set."""
        wanted = token_address.lower()
        for token in self._wallet_tokens:
            if token.address.lower() == wanted:
                return token.balance
        return 0.0

    async def get_token_data_with_wallet_info(
        self,
        addresses: str | Sequence[str],
        network: str = "ethereum",
        wallet_address: str | None = None,
    ) -> list[dict[str, Any]] | None:
        price_data = await self.get_token_price_data(addresses, network)
        if not price_data:
            return None

        held = {t.address.lower() for t in self._wallet_tokens}
        return [
            {
                "address": address,
                "network": network,
                "price_data": data,
                "is_in_wallet": bool(wallet_address) and address.lower() in held,
                "wallet_balance": (
                    self.get_wallet_token_balance(address) if wallet_address else 0.0
                ),
            }
            for address, data in price_data.items()
        ]


def build_client(
    config: AppConfig, balance_resolver: BalanceResolver | None = None
) -> CoinGeckoClient:
    """Wire transport, queue and caches for one application instance."""
    transport = AiohttpTransport(config.coingecko)
    return CoinGeckoClient(
        config,
        transport=transport,
        queue=RequestQueue(transport, config.rate_limit),
        cache=CacheStore(config.cache.ttl_seconds),
        search_cache=CacheStore(config.cache.search_ttl_seconds),
        balance_resolver=balance_resolver,
    )
