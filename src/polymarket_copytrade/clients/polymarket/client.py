"""Typed async facade for Polymarket positions, trades, prices, and orders.

Compose the synchronous CLOB adapter with the async Data API and Gamma
clients into a single async interface.  Synchronous CLOB calls are wrapped
in ``asyncio.to_thread()`` to avoid blocking the event loop.
"""

import asyncio
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from polymarket_copytrade.clients.polymarket import _clob_adapter
from polymarket_copytrade.clients.polymarket._data_client import DataClient
from polymarket_copytrade.clients.polymarket._gamma_client import GammaClient
from polymarket_copytrade.clients.polymarket.exceptions import PolymarketAPIError
from polymarket_copytrade.clients.polymarket.models import (
    Balance,
    MarketPosition,
    OrderRequest,
    OrderResponse,
    OrderStatus,
    TraderTrade,
)

logger = logging.getLogger(__name__)

_ZERO = Decimal(0)
_USDC_DECIMALS = Decimal("1e6")


class PolymarketClient:
    """Typed async client for Polymarket copytrading.

    Read trader positions and trades from the public Data API, fall back to
    Gamma market metadata for prices, and place and manage orders on the
    CLOB.  All public methods are async and return typed dataclasses.

    Args:
        host: Base URL for the Polymarket CLOB API.
        gamma_base_url: Base URL for the Gamma metadata API.
        data_base_url: Base URL for the Data API.

    """

    CLOB_HOST = "https://clob.polymarket.com"
    GAMMA_URL = "https://gamma-api.polymarket.com"
    DATA_API_URL = "https://data-api.polymarket.com"

    def __init__(  # noqa: PLR0913
        self,
        host: str = CLOB_HOST,
        gamma_base_url: str = GAMMA_URL,
        data_base_url: str = DATA_API_URL,
        private_key: str | None = None,
        api_key: str | None = None,
        api_secret: str | None = None,
        api_passphrase: str | None = None,
        funder_address: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the Polymarket client.

        When ``private_key`` is provided, create an authenticated client
        capable of placing trades.  If API credentials are also provided,
        skip the key derivation step and connect at Level 2 immediately.
        Without a private key the client can only read public data.

        Args:
            host: Base URL for the Polymarket CLOB API.
            gamma_base_url: Base URL for the Gamma metadata API.
            data_base_url: Base URL for the Data API.
            private_key: Polygon wallet private key (hex ``0x...`` string).
            api_key: Pre-existing CLOB API key.
            api_secret: Pre-existing CLOB API secret.
            api_passphrase: Pre-existing CLOB API passphrase.
            funder_address: Proxy wallet address holding the trading funds.
            timeout: Request timeout in seconds for the HTTP APIs.

        """
        self._funder_address = funder_address
        self._authenticated = private_key is not None
        self._clob_client: Any = None
        if private_key is not None:
            creds = (
                (api_key, api_secret, api_passphrase)
                if api_key and api_secret and api_passphrase
                else None
            )
            self._clob_client = _clob_adapter.create_authenticated_clob_client(
                host, private_key, creds=creds, funder=funder_address
            )
        self._gamma = GammaClient(base_url=gamma_base_url, timeout=timeout)
        self._data = DataClient(base_url=data_base_url, timeout=timeout)
        self._clob_lock = asyncio.Lock()

    @property
    def funder_address(self) -> str | None:
        """Return the proxy wallet address that holds the trading funds."""
        return self._funder_address

    async def get_positions(self, user: str, *, page_size: int = 100) -> list[MarketPosition]:
        """Fetch every position held by a wallet.

        Page through the Data API with ``limit``/``offset`` until a short
        page signals the end of the list.

        Args:
            user: Proxy wallet address.
            page_size: Number of positions requested per page.

        Returns:
            All positions reported for the wallet, in API order.

        Raises:
            PolymarketAPIError: When a page request fails.

        """
        positions: list[MarketPosition] = []
        offset = 0
        while True:
            page = await self._data.get_positions(user, limit=page_size, offset=offset)
            positions.extend(_parse_position(raw) for raw in page)
            if len(page) < page_size:
                break
            offset += page_size
        logger.debug("Fetched %d positions for %s", len(positions), user)
        return positions

    async def get_trades(self, user: str, *, limit: int = 50) -> list[TraderTrade]:
        """Fetch the most recent trades made by a wallet.

        Args:
            user: Proxy wallet address.
            limit: Maximum number of trades to return.

        Returns:
            Trades newest first, each with a unique transaction hash.

        Raises:
            PolymarketAPIError: When the Data API request fails.

        """
        raw_trades = await self._data.get_trades(user, limit=limit)
        return [_parse_trade(raw) for raw in raw_trades]

    async def get_token_prices(self, token_ids: list[str]) -> dict[str, Decimal]:
        """Look up current or settled outcome prices from Gamma market metadata.

        Tokens that Gamma does not report are absent from the result rather
        than mapped to zero.

        Args:
            token_ids: CLOB token identifiers to price.

        Returns:
            Mapping of token ID to price for every token found.

        Raises:
            PolymarketAPIError: When the Gamma request fails.

        """
        if not token_ids:
            return {}
        wanted = set(token_ids)
        raw_markets = await self._gamma.get_markets_by_token_ids(token_ids)
        prices: dict[str, Decimal] = {}
        for raw in raw_markets:
            ids = _json_list(raw.get("clobTokenIds"))
            outcome_prices = _json_list(raw.get("outcomePrices"))
            for token_id, price in zip(ids, outcome_prices, strict=False):
                if token_id in wanted:
                    prices[token_id] = _safe_decimal(price)
        return prices

    def _require_auth(self) -> None:
        """Raise if the client was not initialised with a private key.

        Raises:
            PolymarketAPIError: When no private key was provided.

        """
        if not self._authenticated:
            raise PolymarketAPIError(
                msg="Authentication required. Provide a private_key to trade.",
                status_code=0,
            )

    async def place_limit_order(self, request: OrderRequest) -> OrderResponse:
        """Build, sign, and submit a GTC limit order.

        Args:
            request: Typed order request with token, side, price, and size.

        Returns:
            Typed response with the venue order ID and initial status.

        Raises:
            PolymarketAPIError: When not authenticated or submission fails.

        """
        self._require_auth()
        async with self._clob_lock:
            raw = await asyncio.to_thread(
                _clob_adapter.place_limit_order,
                self._clob_client,
                request.token_id,
                request.side,
                float(request.price),
                float(request.size),
            )
        return _parse_post_response(raw, request)

    async def get_order(self, order_id: str) -> OrderResponse | None:
        """Fetch the current state of an order.

        Args:
            order_id: Identifier returned when the order was posted.

        Returns:
            Typed order state, or ``None`` when the venue does not know it.

        Raises:
            PolymarketAPIError: When not authenticated, the query fails, or
                the venue reports an unknown status.

        """
        self._require_auth()
        async with self._clob_lock:
            raw = await asyncio.to_thread(_clob_adapter.get_order, self._clob_client, order_id)
        if raw is None:
            return None
        return _parse_raw_order(raw)

    async def cancel_orders(self, order_ids: list[str]) -> dict[str, Any]:
        """Cancel several open orders in one request.

        Args:
            order_ids: Identifiers of the orders to cancel.

        Returns:
            Raw API response with ``canceled`` and ``not_canceled`` keys.

        Raises:
            PolymarketAPIError: When not authenticated or cancellation fails.

        """
        self._require_auth()
        if not order_ids:
            return {"canceled": [], "not_canceled": {}}
        async with self._clob_lock:
            return await asyncio.to_thread(
                _clob_adapter.cancel_orders, self._clob_client, list(order_ids)
            )

    async def cancel_all_orders(self) -> dict[str, Any]:
        """Cancel every open order for the authenticated user.

        Returns:
            Raw API response with ``canceled`` and ``not_canceled`` keys.

        Raises:
            PolymarketAPIError: When not authenticated or cancellation fails.

        """
        self._require_auth()
        async with self._clob_lock:
            return await asyncio.to_thread(_clob_adapter.cancel_all_orders, self._clob_client)

    async def sync_balance(self, asset_type: str = "COLLATERAL") -> None:
        """Tell the CLOB to re-sync its cached balance from on-chain state.

        Call this before ``get_balance`` so the returned value reflects the
        latest on-chain USDC balance rather than a stale cached value.

        Args:
            asset_type: ``"COLLATERAL"`` for USDC or ``"CONDITIONAL"`` for tokens.

        Raises:
            PolymarketAPIError: When not authenticated or the sync fails.

        """
        self._require_auth()
        async with self._clob_lock:
            await asyncio.to_thread(_clob_adapter.update_balance, self._clob_client, asset_type)

    async def get_balance(self, asset_type: str = "COLLATERAL") -> Balance:
        """Fetch the balance and allowance for an asset.

        Args:
            asset_type: ``"COLLATERAL"`` for USDC or ``"CONDITIONAL"`` for tokens.

        Returns:
            Typed balance with balance and allowance amounts.

        Raises:
            PolymarketAPIError: When not authenticated or the query fails.

        """
        self._require_auth()
        async with self._clob_lock:
            raw = await asyncio.to_thread(_clob_adapter.get_balance, self._clob_client, asset_type)
        raw_balance = _safe_decimal(raw.get("balance"))
        raw_allowance = _safe_decimal(raw.get("allowance"))
        return Balance(
            asset_type=asset_type,
            balance=raw_balance / _USDC_DECIMALS,
            allowance=raw_allowance / _USDC_DECIMALS,
        )

    async def close(self) -> None:
        """Close the underlying HTTP clients."""
        await self._gamma.close()
        await self._data.close()

    async def __aenter__(self) -> "PolymarketClient":
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager."""
        await self.close()


def _json_list(value: Any) -> list[str]:
    """Decode a Gamma field that may be a JSON-encoded list.

    Args:
        value: A list, a JSON string encoding a list, or ``None``.

    Returns:
        List of string items, empty when the value is missing or malformed.

    """
    if value is None:
        return []
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return []
        if not isinstance(decoded, list):
            return []
        return [str(item) for item in decoded]  # pyright: ignore[reportUnknownVariableType]
    if isinstance(value, list):
        return [str(item) for item in value]  # pyright: ignore[reportUnknownVariableType]
    return []


def _safe_decimal(value: Any) -> Decimal:
    """Convert a value to Decimal, returning zero for None/empty strings.

    Raise ``PolymarketAPIError`` for values that are present but
    cannot be parsed into a valid Decimal.  This avoids silently
    substituting zero for genuinely corrupt data.

    Args:
        value: Value to convert (string, float, int, or None).

    Returns:
        Decimal representation, or ``Decimal("0")`` for None/empty.

    Raises:
        PolymarketAPIError: If the value is non-empty but malformed.

    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return _ZERO
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        msg = f"Cannot convert {value!r} to Decimal"
        raise PolymarketAPIError(msg=msg, status_code=0) from exc
    if not result.is_finite():
        msg = f"Cannot convert {value!r} to Decimal"
        raise PolymarketAPIError(msg=msg, status_code=0)
    return result


def _parse_status(raw: Any) -> OrderStatus:
    """Parse a venue status string, surfacing unknown values as API errors.

    Args:
        raw: Status value from a CLOB response.

    Returns:
        The matching ``OrderStatus``.

    Raises:
        PolymarketAPIError: If the status is missing or unknown.

    """
    try:
        return OrderStatus.parse(str(raw or ""))
    except ValueError as exc:
        raise PolymarketAPIError(msg=str(exc), status_code=0) from exc


def _parse_position(raw: dict[str, Any]) -> MarketPosition:
    """Convert a Data API position dictionary into a typed MarketPosition.

    Args:
        raw: Position dictionary from the ``/positions`` endpoint.

    Returns:
        Typed MarketPosition dataclass.

    """
    return MarketPosition(
        asset=str(raw.get("asset", "")),
        condition_id=str(raw.get("conditionId", "")),
        title=str(raw.get("title", "")),
        outcome=str(raw.get("outcome", "")),
        outcome_index=int(raw.get("outcomeIndex") or 0),
        size=_safe_decimal(raw.get("size")),
        avg_price=_safe_decimal(raw.get("avgPrice")),
        cur_price=_safe_decimal(raw.get("curPrice")),
        current_value=_safe_decimal(raw.get("currentValue")),
        initial_value=_safe_decimal(raw.get("initialValue")),
        cash_pnl=_safe_decimal(raw.get("cashPnl")),
        percent_pnl=_safe_decimal(raw.get("percentPnl")),
        realized_pnl=_safe_decimal(raw.get("realizedPnl")),
        redeemable=bool(raw.get("redeemable", False)),
        mergeable=bool(raw.get("mergeable", False)),
        event_slug=str(raw.get("eventSlug", "")),
    )


def _parse_trade(raw: dict[str, Any]) -> TraderTrade:
    """Convert a Data API trade dictionary into a typed TraderTrade.

    Args:
        raw: Trade dictionary from the ``/trades`` endpoint.

    Returns:
        Typed TraderTrade dataclass.

    """
    return TraderTrade(
        transaction_hash=str(raw.get("transactionHash", "")),
        asset=str(raw.get("asset", "")),
        side=str(raw.get("side", "")),
        size=_safe_decimal(raw.get("size")),
        price=_safe_decimal(raw.get("price")),
        timestamp=int(raw.get("timestamp") or 0),
        title=str(raw.get("title", "")),
        outcome=str(raw.get("outcome", "")),
    )


def _parse_post_response(raw: dict[str, Any], request: OrderRequest) -> OrderResponse:
    """Convert a raw ``post_order`` response into a typed OrderResponse.

    A response with ``success: false`` is a rejection; its status is
    reported as ``UNMATCHED`` and the venue's reason kept in ``error_msg``.

    Args:
        raw: Raw dictionary from the CLOB ``post_order`` call.
        request: Original order request used for the order details.

    Returns:
        Typed OrderResponse dataclass.

    Raises:
        PolymarketAPIError: If an accepted order carries an unknown status.

    """
    success = bool(raw.get("success", True))
    error_msg = str(raw.get("errorMsg") or "")
    status = _parse_status(raw.get("status")) if success else OrderStatus.UNMATCHED
    filled = request.size if status is OrderStatus.MATCHED else _ZERO
    return OrderResponse(
        order_id=str(raw.get("orderID", raw.get("id", ""))),
        status=status,
        token_id=request.token_id,
        side=request.side,
        price=request.price,
        size=request.size,
        filled=filled,
        success=success,
        error_msg=error_msg,
    )


def _parse_raw_order(raw: dict[str, Any]) -> OrderResponse:
    """Convert a raw order dictionary into a typed OrderResponse.

    Args:
        raw: Order dictionary from the CLOB ``get_order`` endpoint.

    Returns:
        Typed OrderResponse dataclass.

    Raises:
        PolymarketAPIError: If the order carries an unknown status.

    """
    return OrderResponse(
        order_id=str(raw.get("id", raw.get("orderID", ""))),
        status=_parse_status(raw.get("status")),
        token_id=str(raw.get("asset_id", raw.get("token_id", ""))),
        side=str(raw.get("side", "")),
        price=_safe_decimal(raw.get("price", "0")),
        size=_safe_decimal(raw.get("original_size", raw.get("size", "0"))),
        filled=_safe_decimal(raw.get("size_matched", raw.get("filled", "0"))),
    )
