"""Market-data access: transport, cache, rate-limited queue and client."""
from .cache import CacheStore
from .coingecko import CoinGeckoClient, build_client
from .networks import network_for_chain
from .request_queue import RequestQueue
from .transport import AiohttpTransport

__all__ = [
    "AiohttpTransport",
    "CacheStore",
    "CoinGeckoClient",
    "RequestQueue",
    "build_client",
    "network_for_chain",
]
