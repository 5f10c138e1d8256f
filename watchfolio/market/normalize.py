"""Map raw CoinGecko market records onto :class:`Token`."""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from ..formatting import format_change, format_currency
from ..models import DEFAULT_HOLDING, Token


def _number(value: Any) -> float:
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def normalize_coin(
    coin: Mapping[str, Any], sparkline_points: int = 20
) -> Token:
    """Normalize one ``/coins/markets`` record."""
    symbol = str(coin.get("symbol") or "").upper()
    price = _number(coin.get("current_price"))
    change = _number(coin.get("price_change_percentage_24h"))

    sparkline_in_7d = coin.get("sparkline_in_7d")
    sparkline_raw = (
        sparkline_in_7d.get("price") if isinstance(sparkline_in_7d, Mapping) else None
    )
    if not isinstance(sparkline_raw, list):
        sparkline_raw = []
    sparkline = tuple(_number(p) for p in sparkline_raw[-sparkline_points:])

    return Token(
        id=str(coin["id"]),
        name=f"{coin.get('name', '')} ({symbol})",
        symbol=symbol,
        icon=coin.get("image") or "",
        current_price=price,
        change_percent=change,
        price=format_currency(price),
        change=format_change(change),
        sparkline=sparkline,
        holdings=DEFAULT_HOLDING,
        value=format_currency(0.0),
    )


def normalize_coins(
    coins: Iterable[Mapping[str, Any]] | None, sparkline_points: int = 20
) -> list[Token]:
    """Normalize a market payload, skipping non-objects and records without an id."""
    if not coins:
        return []
    return [
        normalize_coin(c, sparkline_points)
        for c in coins
        if isinstance(c, Mapping) and c.get("id")
    ]
