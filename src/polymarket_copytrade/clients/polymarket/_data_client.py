"""Async HTTP client for the Polymarket Data API.

The Data API (``https://data-api.polymarket.com``) is public and
unauthenticated.  It reports the positions and recent trades of any
wallet, which makes it both the position source and the trade source for
the copytrade engine.  This client follows the ``GammaClient`` pattern:
async context manager with structured error handling.
"""

from typing import Any

import httpx

from polymarket_copytrade.clients.polymarket._constants import HTTP_BAD_REQUEST
from polymarket_copytrade.clients.polymarket.exceptions import PolymarketAPIError


class DataClient:
    """Async HTTP client for Polymarket Data API positions and trades.

    Args:
        base_url: Base URL for the Data API.
        timeout: Request timeout in seconds.

    """

    BASE_URL = "https://data-api.polymarket.com"

    def __init__(
        self,
        base_url: str = BASE_URL,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the Data API client.

        Args:
            base_url: Base URL for the Data API.
            timeout: Request timeout in seconds.

        """
        self.base_url = base_url.rstrip("/")
        self._http_client = httpx.AsyncClient(timeout=timeout)

    async def get_positions(
        self,
        user: str,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Fetch one page of positions held by a wallet.

        Args:
            user: Proxy wallet address.
            limit: Maximum number of positions in the page.
            offset: Pagination offset.

        Returns:
            List of position dictionaries from the Data API.

        Raises:
            PolymarketAPIError: When the API returns an error response.

        """
        params: dict[str, str | int] = {
            "user": user,
            "limit": limit,
            "offset": offset,
            "sizeThreshold": 0,
        }
        return await self._get("/positions", params=params)

    async def get_trades(self, user: str, *, limit: int = 50) -> list[dict[str, Any]]:
        """Fetch the most recent trades made by a wallet.

        Args:
            user: Proxy wallet address.
            limit: Maximum number of trades to return.

        Returns:
            List of trade dictionaries, newest first.

        Raises:
            PolymarketAPIError: When the API returns an error response.

        """
        params: dict[str, str | int] = {"user": user, "limit": limit}
        return await self._get("/trades", params=params)

    async def _get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a GET request and return parsed JSON.

        Args:
            path: Request path relative to base_url.
            params: Query parameters.

        Returns:
            Parsed JSON response.

        Raises:
            PolymarketAPIError: When the request fails or the API returns
                an error response.

        """
        url = f"{self.base_url}{path}"
        try:
            response = await self._http_client.request("GET", url, params=params)
        except httpx.HTTPError as exc:
            raise PolymarketAPIError(
                msg=f"HTTP connection failed: {exc}",
                status_code=0,
            ) from exc

        if response.status_code >= HTTP_BAD_REQUEST:
            self._handle_error(response)

        result: Any = response.json()
        return result

    @staticmethod
    def _handle_error(response: httpx.Response) -> None:
        """Raise a PolymarketAPIError from an error response.

        Args:
            response: HTTP response with a non-2xx status code.

        Raises:
            PolymarketAPIError: Always raised with status code and message.

        """
        try:
            data = response.json()
            msg: str = data.get("error", f"HTTP {response.status_code}")
        except Exception:
            msg = f"HTTP {response.status_code}"
        raise PolymarketAPIError(msg=msg, status_code=response.status_code)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http_client.aclose()

    async def __aenter__(self) -> "DataClient":
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager."""
        await self.close()
