"""Exception hierarchy for the market-data layer."""
from __future__ import annotations


class MarketDataError(Exception):
    """Base exception for market-data failures."""


class TransportError(MarketDataError):
    """Network-level failure (connection refused, DNS, timeout...)."""


class HttpStatusError(MarketDataError):
    """Upstream answered with a non-success HTTP status."""

    def __init__(
        self, status: int, reason: str = "", url: str = "", message: str = ""
    ) -> None:
        super().__init__(message or f"HTTP {status}: {reason}")
        self.status = status
        self.reason = reason
        self.url = url


class ThrottledError(HttpStatusError):
    """Upstream kept answering 429 after the retry budget was spent."""

    def __init__(self, attempts: int, url: str = "") -> None:
        super().__init__(
            429,
            "Too Many Requests",
            url,
            message=f"Rate limited after {attempts} attempts",
        )
        self.attempts = attempts
