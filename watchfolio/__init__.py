"""Watchlist portfolio tracker core for the CoinGecko market-data API."""

__version__ = "0.1.0"
