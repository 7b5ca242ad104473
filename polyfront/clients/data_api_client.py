"""
Data API client for Polymarket trade activity.
Fetches recent trades per user from the public data API.
"""

from typing import Optional

import aiohttp

from ..utils.logger import get_logger

logger = get_logger("data_api")


class DataApiClient:
    """
    Client for the Polymarket data API.

    The data API exposes per-user trade history without authentication.
    """

    BASE_URL = "https://data-api.polymarket.com"

    def __init__(self, base_url: Optional[str] = None, timeout_seconds: float = 10.0):
        """
        Initialize data API client.

        Args:
            base_url: Override for the API root
            timeout_seconds: Total timeout per request
        """
        self.base_url = base_url or self.BASE_URL
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    async def initialize(self) -> None:
        """Initialize HTTP session."""
        if not self._session:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
        logger.info("Data API client initialized")

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def _request(self, endpoint: str, params: Optional[dict] = None):
        """Make HTTP request to the data API."""
        if not self._session:
            await self.initialize()

        url = f"{self.base_url}{endpoint}"

        try:
            async with self._session.get(url, params=params) as response:
                response.raise_for_status()
                return await response.json()
        except aiohttp.ClientError as e:
            logger.error(f"Data API request failed: {e}")
            raise

    async def get_recent_trades(self, user: str, limit: int = 50) -> list[dict]:
        """
        Fetch the most recent trades of one user.

        Args:
            user: Wallet (proxy) address
            limit: Maximum records to return

        Returns:
            Raw trade records, newest first
        """
        data = await self._request(
            "/trades",
            params={
                "user": user,
                "limit": limit,
                "takerOnly": "false"
            }
        )

        if not isinstance(data, list):
            raise ValueError(f"Unexpected trades payload: {str(data)[:100]}")

        return data
