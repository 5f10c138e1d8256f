"""Shared test fixtures and sample data."""
from __future__ import annotations

import asyncio
import textwrap
from pathlib import Path
from typing import Any, Callable
from urllib.parse import parse_qs, urlsplit

import pytest

from watchfolio.config import (
    AppConfig,
    CacheConfig,
    CoinGeckoConfig,
    PortfolioConfig,
    RateLimitConfig,
    StorageConfig,
    WalletConfig,
)
from watchfolio.market.cache import CacheStore
from watchfolio.market.coingecko import CoinGeckoClient
from watchfolio.market.normalize import normalize_coin
from watchfolio.market.request_queue import RequestQueue
from watchfolio.models import HttpResponse, Token, TokenBalance
from watchfolio.storage import MemoryStorage


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeTransport:
    """Transport answering from a handler; handler may return an exception."""

    def __init__(
        self, handler: Callable[[str], HttpResponse | Exception], clock: FakeClock | None = None
    ) -> None:
        self.handler = handler
        self.clock = clock
        self.calls: list[str] = []
        self.call_times: list[float] = []

    async def get(self, url: str) -> HttpResponse:
        self.calls.append(url)
        if self.clock is not None:
            self.call_times.append(self.clock())
        await asyncio.sleep(0)
        result = self.handler(url)
        if isinstance(result, Exception):
            raise result
        return result


class FakeMarket:
    """MarketDataSource serving tokens from a price table."""

    def __init__(self, prices: dict[str, float]) -> None:
        self.prices = dict(prices)
        self.market_calls: list[tuple[int, int, bool]] = []
        self.id_calls: list[list[str]] = []
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None

    async def get_market_data(
        self, page: int = 1, per_page: int = 10, force_refresh: bool = False
    ) -> list[Token]:
        self.market_calls.append((page, per_page, force_refresh))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        ids = list(self.prices)[(page - 1) * per_page : page * per_page]
        return [make_token(i, self.prices[i]) for i in ids]

    async def get_coins_by_ids(self, ids: list[str]) -> list[Token]:
        self.id_calls.append(list(ids))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return [make_token(i, self.prices[i]) for i in ids if i in self.prices]


class FakeBalanceResolver:
    def __init__(self, balances: dict[str, float]) -> None:
        self.balances = balances

    async def resolve_balances(self, address: str, chain_id: int) -> list[TokenBalance]:
        return [TokenBalance(k, v) for k, v in self.balances.items()]


# ---------------------------------------------------------------------------
# Sample upstream data
# ---------------------------------------------------------------------------


def market_record(coin_id: str, price: float, change: float = 1.5) -> dict[str, Any]:
    return {
        "id": coin_id,
        "symbol": coin_id[:3],
        "name": coin_id.title(),
        "image": f"https://img.example.com/{coin_id}.png",
        "current_price": price,
        "price_change_percentage_24h": change,
        "sparkline_in_7d": {"price": [float(n) for n in range(30)]},
    }


def make_token(coin_id: str, price: float) -> Token:
    return normalize_coin(market_record(coin_id, price))


# Market-cap order; prices deliberately not sorted.
RANKED_IDS = [f"coin-{n:03d}" for n in range(1, 301)]


def ranked_records(page: int, per_page: int) -> list[dict[str, Any]]:
    ids = RANKED_IDS[(page - 1) * per_page : page * per_page]
    return [market_record(i, price=float((n * 37) % 101 + 1)) for n, i in enumerate(ids)]


def query_params(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


def markets_handler(url: str) -> HttpResponse:
    params = query_params(url)
    if "ids" in params:
        ids = params["ids"].split(",")
        return HttpResponse(200, "OK", [market_record(i, 10.0) for i in ids])
    return HttpResponse(
        200, "OK", ranked_records(int(params["page"]), int(params["per_page"]))
    )


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def rate_limit_config() -> RateLimitConfig:
    return RateLimitConfig(
        min_interval_seconds=6.0,
        max_retries=2,
        base_backoff_seconds=2.0,
        jitter_seconds=2.0,
        rate_limited_window_seconds=60.0,
        rate_limited_per_page_cap=50,
        cooldown_seconds=10.0,
        min_halving_per_page=20,
    )


@pytest.fixture()
def portfolio_config() -> PortfolioConfig:
    return PortfolioConfig(
        default_watchlist=("bitcoin", "ethereum"),
        default_holding="0.0000",
        page_size=2,
        search_debounce_seconds=0.01,
        search_min_length=3,
        search_limit=2,
        trending_limit=3,
    )


@pytest.fixture()
def sample_app_config(
    rate_limit_config: RateLimitConfig, portfolio_config: PortfolioConfig, tmp_path: Path
) -> AppConfig:
    return AppConfig(
        coingecko=CoinGeckoConfig(
            base_url="https://api.example.com/api/v3",
            pro_base_url="https://pro-api.example.com/api/v3",
            api_key="",
            pro_api_key="",
            timeout=5,
        ),
        rate_limit=rate_limit_config,
        cache=CacheConfig(ttl_seconds=600.0, search_ttl_seconds=300.0),
        storage=StorageConfig(path=str(tmp_path / "storage.json")),
        portfolio=portfolio_config,
        wallet=WalletConfig(address="", chain_id=1, balances={}),
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def token_factory() -> Callable[[str, float], Token]:
    return make_token


@pytest.fixture()
def record_factory() -> Callable[..., dict[str, Any]]:
    return market_record


@pytest.fixture()
def fake_market() -> FakeMarket:
    return FakeMarket(
        {
            "bitcoin": 50000.0,
            "ethereum": 3000.0,
            "solana": 150.0,
            "dogecoin": 0.1,
        }
    )


@pytest.fixture()
def transport_factory(clock: FakeClock):
    def _make(handler: Callable[[str], HttpResponse | Exception]) -> FakeTransport:
        return FakeTransport(handler, clock)

    return _make


@pytest.fixture()
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture()
def make_client(sample_app_config: AppConfig, clock: FakeClock):
    """Factory building a CoinGeckoClient over a FakeTransport."""

    def _make(
        handler: Callable[[str], HttpResponse | Exception],
        config: AppConfig | None = None,
        balances: dict[str, float] | None = None,
    ) -> tuple[CoinGeckoClient, FakeTransport]:
        cfg = config or sample_app_config
        transport = FakeTransport(handler, clock)
        queue = RequestQueue(
            transport, cfg.rate_limit, clock=clock, sleep=clock.sleep, jitter=lambda: 0.0
        )
        client = CoinGeckoClient(
            cfg,
            transport=transport,
            queue=queue,
            cache=CacheStore(cfg.cache.ttl_seconds, clock),
            search_cache=CacheStore(cfg.cache.search_ttl_seconds, clock),
            balance_resolver=FakeBalanceResolver(balances) if balances is not None else None,
            sleep=clock.sleep,
        )
        return client, transport

    return _make


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    coingecko:
      base_url: "https://api.example.com/api/v3/"
      api_key: "demo-key"
      timeout: 10
    rate_limit:
      min_interval_seconds: 3
      max_retries: 4
      cooldown_seconds: 5
    cache:
      ttl_seconds: 120
      search_ttl_seconds: 60
    storage:
      path: "/tmp/watchfolio-test.json"
    portfolio:
      default_watchlist: [bitcoin, solana]
      page_size: 25
    wallet:
      address: "0xWALLET"
      chain_id: 137
      balances:
        "0xAAA": 1.5
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
