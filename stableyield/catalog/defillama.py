"""DefiLlama yields index client."""
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ..config import FeedConfig
from ..errors import DataSourceError

logger = logging.getLogger(__name__)


class DefiLlamaClient:
    """Fetch raw pool records from the DefiLlama yields API."""

    def __init__(self, config: FeedConfig) -> None:
        self.url = config.url
        self.timeout = config.timeout

    async def fetch_pools(self) -> list[dict[str, Any]]:
        """Fetch every pool the index knows about.

        Raises:
            DataSourceError: on HTTP errors, network errors or a body without
                a ``data`` list.
        """
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    self.url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if response.status != 200:
                        raise DataSourceError(
                            f"Yield index returned HTTP {response.status}"
                        )
                    body = await response.json()
        except DataSourceError:
            raise
        except Exception as e:
            raise DataSourceError(f"Yield index unreachable: {e}") from e

        pools = body.get("data") if isinstance(body, dict) else None
        if not isinstance(pools, list):
            raise DataSourceError("Yield index response has no 'data' list")

        logger.info("Fetched %d pool records from %s", len(pools), self.url)
        return pools
