r"""Async HTTP client for the Polymarket Gamma API.

The Gamma API (``https://gamma-api.polymarket.com``) provides market
metadata, including markets that have already resolved.  The copytrade
engine uses it as the fallback price source for assets that have dropped
out of the trader's position feed.

Note:
    The Gamma API returns ``outcomePrices`` and ``clobTokenIds`` as
    JSON-encoded strings (e.g. ``"[\"0.72\",\"0.28\"]"``).  Callers
    must call ``json.loads()`` on these fields before use.

"""

from typing import Any

import httpx

from polymarket_copytrade.clients.polymarket._constants import HTTP_BAD_REQUEST
from polymarket_copytrade.clients.polymarket.exceptions import PolymarketAPIError


class GammaClient:
    """Async HTTP client for Polymarket Gamma API market metadata.

    Args:
        base_url: Base URL for the Gamma API.
        timeout: Request timeout in seconds.

    """

    BASE_URL = "https://gamma-api.polymarket.com"

    def __init__(
        self,
        base_url: str = BASE_URL,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the Gamma API client.

        Args:
            base_url: Base URL for the Gamma API.
            timeout: Request timeout in seconds.

        """
        self.base_url = base_url.rstrip("/")
        self._http_client = httpx.AsyncClient(timeout=timeout)

    async def get_markets_by_token_ids(self, token_ids: list[str]) -> list[dict[str, Any]]:
        """Fetch the markets that contain any of the given CLOB token IDs.

        Resolved and closed markets are included so settled prices (0 or 1)
        can be read back.

        Args:
            token_ids: CLOB token identifiers to look up.

        Returns:
            List of market dictionaries from the Gamma API.

        Raises:
            PolymarketAPIError: When the API returns an error response.

        """
        if not token_ids:
            return []
        params: dict[str, Any] = {"clob_token_ids": list(token_ids), "limit": len(token_ids)}
        return await self._get("/markets", params=params)

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
            msg: str = data.get("message", f"HTTP {response.status_code}")
        except Exception:
            msg = f"HTTP {response.status_code}"
        raise PolymarketAPIError(msg=msg, status_code=response.status_code)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http_client.aclose()

    async def __aenter__(self) -> "GammaClient":
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager."""
        await self.close()
