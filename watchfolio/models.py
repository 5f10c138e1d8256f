"""Data models: all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

DEFAULT_HOLDING = "0.0000"


@dataclass(frozen=True)
class Token:
    """Normalized market entry for a single coin.

    ``current_price`` and ``change_percent`` are kept numeric next to their
    display strings (``price``, ``change``) so nothing downstream ever has to
    parse a formatted value.
    """

    id: str
    name: str
    symbol: str
    icon: str
    current_price: float
    change_percent: float
    price: str
    change: str
    sparkline: tuple[float, ...] = ()
    holdings: str = DEFAULT_HOLDING
    value: str = "$0.00"


@dataclass(frozen=True)
class PortfolioState:
    """Root state owned by the portfolio store."""

    tokens: tuple[Token, ...] = ()
    holdings: Mapping[str, str] = field(default_factory=dict)
    watchlist: tuple[str, ...] = ()
    total: float = 0.0
    last_updated: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    is_loading: bool = False
    error: str | None = None
    address: str | None = None
    default_holding: str = DEFAULT_HOLDING

    def token(self, token_id: str) -> Token | None:
        for token in self.tokens:
            if token.id == token_id:
                return token
        return None


@dataclass(frozen=True)
class HttpResponse:
    """Status line plus decoded JSON body of an upstream call."""

    status: int
    reason: str = ""
    data: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class CacheEntry:
    key: str
    data: Any
    timestamp: float


@dataclass(frozen=True)
class TokenBalance:
    """Raw balance of one contract held by a wallet."""

    contract_address: str
    balance: float


@dataclass(frozen=True)
class WalletToken:
    """A wallet-held token priced through the market-data API."""

    address: str
    network: str
    balance: float
    price_data: Mapping[str, Any] | None = None

    @property
    def usd_value(self) -> float:
        if not self.price_data:
            return 0.0
        return float(self.price_data.get("usd") or 0.0) * self.balance


@dataclass(frozen=True)
class WalletState:
    """Read-only view of the wallet-connection collaborator."""

    address: str | None = None
    is_connected: bool = False
    balance: str = "0"
    symbol: str = "ETH"
    chain_id: int = 1
