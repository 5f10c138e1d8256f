"""aiohttp transport for the market-data API."""
import asyncio
import logging
import ssl

import aiohttp
import certifi

from ..config import CoinGeckoConfig
from ..errors import MarketDataError, TransportError
from ..models import HttpResponse

logger = logging.getLogger(__name__)


class AiohttpTransport:
    """Perform a single GET and decode the JSON body of successful replies.

    Network failures raise :class:`TransportError` (retried by the queue); a
    2xx reply whose body is not JSON raises a plain :class:`MarketDataError`.
    """

    def __init__(self, config: CoinGeckoConfig) -> None:
        self.timeout = config.timeout

    async def get(self, url: str) -> HttpResponse:
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    url,
                    headers={"Accept": "application/json"},
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    data = None
                    if 200 <= response.status < 300:
                        try:
                            data = await response.json(content_type=None)
                        except ValueError as e:
                            raise MarketDataError(f"Malformed JSON body: {e}") from e
                    return HttpResponse(
                        status=response.status,
                        reason=response.reason or "",
                        data=data,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug("GET %s failed: %s", url, e)
            raise TransportError(f"Request failed: {e}") from e
