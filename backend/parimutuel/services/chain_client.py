"""
Chain Client - Reads stake pools, market listings and user predictions over HTTP
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp
from loguru import logger

from ..errors import AppError, MarketNotFoundError, NetworkError
from ..models.pool import PoolStatus


@dataclass
class ChainClientConfig:
    """Configuration for the read API and indexer client."""
    pool_api_base: str = "http://localhost:3001/api"
    indexer_api_base: str = "http://localhost:3002/api"
    timeout_seconds: float = 10.0
    max_connections: int = 20


class ChainClient:
    """
    Thin async reader for the StakePool read API and the prediction indexer.
    Raises NetworkError for transport failures, non-200 responses and
    undecodable bodies. Parsing into models is left to the callers.
    """

    def __init__(self, config: Optional[ChainClientConfig] = None):
        self.config = config or ChainClientConfig()
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
            connector = aiohttp.TCPConnector(limit=self.config.max_connections)
            self.session = aiohttp.ClientSession(timeout=timeout, connector=connector)
        return self.session

    async def close(self):
        """Close HTTP session."""
        if self.session and not self.session.closed:
            await self.session.close()

    async def _get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        not_found: Optional[AppError] = None,
    ) -> Any:
        session = await self._get_session()
        try:
            async with session.get(url, params=params) as resp:
                if resp.status == 404 and not_found is not None:
                    raise not_found
                if resp.status != 200:
                    raise NetworkError(f"GET {url} returned HTTP {resp.status}")
                return await resp.json(content_type=None)
        except AppError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"GET {url} failed: {str(e) or type(e).__name__}")
        except ValueError as e:
            raise NetworkError(f"GET {url} returned invalid JSON: {e}")

    # -------- StakePool read API --------

    async def fetch_pool(self, market_id: str) -> Dict[str, Any]:
        """Raw pool snapshot for one market."""
        url = f"{self.config.pool_api_base}/markets/{market_id}/pool"
        data = await self._get_json(url, not_found=MarketNotFoundError(market_id))
        logger.debug(f"Fetched pool for {market_id}")
        return data

    async def fetch_markets(self, status: Optional[PoolStatus] = None) -> List[Dict[str, Any]]:
        """All markets, or only those in a given pool status."""
        url = f"{self.config.pool_api_base}/markets"
        if status is not None:
            url = f"{url}/{status.value}"
        data = await self._get_json(url)
        if not isinstance(data, list):
            raise NetworkError(f"Unexpected /markets response type: {type(data).__name__}")
        return data

    # -------- Prediction indexer --------

    async def fetch_predictions(self, user_id: str) -> List[Dict[str, Any]]:
        """Full current set of prediction records for a user."""
        url = f"{self.config.indexer_api_base}/users/{user_id}/predictions"
        data = await self._get_json(url)
        if isinstance(data, dict):
            data = data.get('predictions')
        if not isinstance(data, list):
            raise NetworkError(f"Unexpected predictions response type: {type(data).__name__}")
        return data
