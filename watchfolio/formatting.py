"""Display formatting and lenient numeric parsing."""
from __future__ import annotations

import re
from datetime import datetime

_LEADING_NUMBER_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_numeric(value: str | float | int | None) -> float:
    """Parse a user-entered amount; anything unparseable counts as zero.

    Leading numeric prefixes are honoured (``"1.5 BTC"`` -> 1.5).
    """
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_NUMBER_RE.match(value)
    if not match:
        return 0.0
    return float(match.group(1))


def format_currency(value: float) -> str:
    """``1234.5`` -> ``$1,234.50``."""
    return f"${value:,.2f}"


def format_change(percent: float) -> str:
    """``2.3`` -> ``+2.30%``, ``-1.2`` -> ``-1.20%``."""
    sign = "+" if percent >= 0 else ""
    return f"{sign}{percent:.2f}%"


def format_clock(moment: datetime) -> str:
    """12-hour clock with seconds, e.g. ``03:04:05 PM`` (local time)."""
    if moment.tzinfo is not None:
        moment = moment.astimezone()
    return moment.strftime("%I:%M:%S %p")


def format_balance(balance: str | float, symbol: str) -> str:
    return f"{parse_numeric(balance):.4f} {symbol}"
