"""Configuration loader: reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_WATCHLIST = (
    "bitcoin",
    "ethereum",
    "solana",
    "dogecoin",
    "usd-coin",
    "stellar",
)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CoinGeckoConfig:
    base_url: str = "https://api.coingecko.com/api/v3"
    pro_base_url: str = "https://pro-api.coingecko.com/api/v3"
    api_key: str = ""
    pro_api_key: str = ""
    timeout: int = 30


@dataclass(frozen=True)
class RateLimitConfig:
    min_interval_seconds: float = 6.0
    max_retries: int = 5
    base_backoff_seconds: float = 2.0
    jitter_seconds: float = 2.0
    rate_limited_window_seconds: float = 60.0
    rate_limited_per_page_cap: int = 50
    cooldown_seconds: float = 10.0
    min_halving_per_page: int = 20


@dataclass(frozen=True)
class CacheConfig:
    ttl_seconds: float = 600.0
    search_ttl_seconds: float = 300.0


@dataclass(frozen=True)
class StorageConfig:
    path: str = "~/.watchfolio/storage.json"


@dataclass(frozen=True)
class PortfolioConfig:
    default_watchlist: tuple[str, ...] = DEFAULT_WATCHLIST
    default_holding: str = "0.0000"
    sparkline_points: int = 20
    page_size: int = 10
    search_debounce_seconds: float = 0.3
    search_min_length: int = 3
    search_limit: int = 10
    trending_limit: int = 7


@dataclass(frozen=True)
class WalletConfig:
    address: str = ""
    chain_id: int = 1
    balances: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class AppConfig:
    coingecko: CoinGeckoConfig = field(default_factory=CoinGeckoConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    portfolio: PortfolioConfig = field(default_factory=PortfolioConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_coingecko(raw: dict[str, Any]) -> CoinGeckoConfig:
    return CoinGeckoConfig(
        base_url=raw.get("base_url", CoinGeckoConfig.base_url).rstrip("/"),
        pro_base_url=raw.get("pro_base_url", CoinGeckoConfig.pro_base_url).rstrip("/"),
        api_key=raw.get("api_key") or "",
        pro_api_key=raw.get("pro_api_key") or "",
        timeout=int(raw.get("timeout", 30)),
    )


def _build_rate_limit(raw: dict[str, Any]) -> RateLimitConfig:
    return RateLimitConfig(
        min_interval_seconds=float(raw.get("min_interval_seconds", 6.0)),
        max_retries=int(raw.get("max_retries", 5)),
        base_backoff_seconds=float(raw.get("base_backoff_seconds", 2.0)),
        jitter_seconds=float(raw.get("jitter_seconds", 2.0)),
        rate_limited_window_seconds=float(
            raw.get("rate_limited_window_seconds", 60.0)
        ),
        rate_limited_per_page_cap=int(raw.get("rate_limited_per_page_cap", 50)),
        cooldown_seconds=float(raw.get("cooldown_seconds", 10.0)),
        min_halving_per_page=int(raw.get("min_halving_per_page", 20)),
    )


def _build_cache(raw: dict[str, Any]) -> CacheConfig:
    return CacheConfig(
        ttl_seconds=float(raw.get("ttl_seconds", 600.0)),
        search_ttl_seconds=float(raw.get("search_ttl_seconds", 300.0)),
    )


def _build_storage(raw: dict[str, Any]) -> StorageConfig:
    return StorageConfig(path=raw.get("path") or StorageConfig.path)


def _build_portfolio(raw: dict[str, Any]) -> PortfolioConfig:
    return PortfolioConfig(
        default_watchlist=tuple(raw.get("default_watchlist", DEFAULT_WATCHLIST)),
        default_holding=str(raw.get("default_holding", "0.0000")),
        sparkline_points=int(raw.get("sparkline_points", 20)),
        page_size=int(raw.get("page_size", 10)),
        search_debounce_seconds=float(raw.get("search_debounce_seconds", 0.3)),
        search_min_length=int(raw.get("search_min_length", 3)),
        search_limit=int(raw.get("search_limit", 10)),
        trending_limit=int(raw.get("trending_limit", 7)),
    )


def _build_wallet(raw: dict[str, Any]) -> WalletConfig:
    balances = raw.get("balances") or {}
    return WalletConfig(
        address=raw.get("address") or "",
        chain_id=int(raw.get("chain_id", 1)),
        balances={str(k): float(v) for k, v in balances.items()},
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        coingecko=_build_coingecko(raw.get("coingecko", {})),
        rate_limit=_build_rate_limit(raw.get("rate_limit", {})),
        cache=_build_cache(raw.get("cache", {})),
        storage=_build_storage(raw.get("storage", {})),
        portfolio=_build_portfolio(raw.get("portfolio", {})),
        wallet=_build_wallet(raw.get("wallet", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    for name, url in (
        ("base_url", cfg.coingecko.base_url),
        ("pro_base_url", cfg.coingecko.pro_base_url),
    ):
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"coingecko.{name} must be an http(s) URL, got '{url}'")

    rl = cfg.rate_limit
    if rl.min_interval_seconds < 0:
        raise ValueError("rate_limit.min_interval_seconds must not be negative")
    if rl.max_retries < 0:
        raise ValueError("rate_limit.max_retries must not be negative")
    if rl.base_backoff_seconds < 0 or rl.cooldown_seconds < 0:
        raise ValueError("rate_limit backoff and cooldown must not be negative")

    if cfg.cache.ttl_seconds <= 0 or cfg.cache.search_ttl_seconds <= 0:
        raise ValueError("cache TTLs must be positive")

    if cfg.portfolio.page_size <= 0:
        raise ValueError("portfolio.page_size must be positive")
    for coin_id in cfg.portfolio.default_watchlist:
        if not str(coin_id).strip():
            raise ValueError("portfolio.default_watchlist contains an empty id")
