"""Synchronous bridge between the copytrade facade and ``py-clob-client``.

Nothing else in the package imports ``py_clob_client``.  Every function here
takes a ``ClobClient`` and returns plain dictionaries; ``client.py`` runs
them in a worker thread and turns the dictionaries into typed models.
Library failures are normalised into ``PolymarketAPIError`` carrying the
venue's HTTP status, which the executor's retry loop relies on.
"""

import logging
from typing import Any, cast

from eth_account import Account  # type: ignore[import-untyped]
from py_clob_client.client import ClobClient  # type: ignore[import-untyped]
from py_clob_client.clob_types import (  # type: ignore[import-untyped]
    ApiCreds,
    AssetType,
    BalanceAllowanceParams,
    OrderArgs,
    OrderType,
    PartialCreateOrderOptions,
)
from py_clob_client.exceptions import PolyApiException  # type: ignore[import-untyped]

from polymarket_copytrade.clients.polymarket._constants import (
    HTTP_BAD_REQUEST,
    HTTP_NOT_FOUND,
    HTTP_SERVICE_UNAVAILABLE,
)
from polymarket_copytrade.clients.polymarket.exceptions import PolymarketAPIError

_POLYGON_CHAIN_ID = 137
_POLYGON_PROXY_WALLET = 1
_TICK_SIZE = "0.01"

_logger = logging.getLogger(__name__)


def _safe_clob_call(
    action: str,
    fn: Any,
    *args: Any,
    allow_404: bool = False,
) -> Any:
    """Execute a CLOB API call with standardised error handling.

    Wrap a synchronous ``py-clob-client`` call in a try/except that
    converts ``PolyApiException`` and unexpected errors into
    ``PolymarketAPIError``.  The venue's HTTP status is preserved so the
    executor can tell transient failures from rejections; an exception
    without a response (network failure) maps to 503.  Any other error
    raised while building or signing an order maps to 400.

    Args:
        action: Human-readable description for error messages (e.g.
            ``"fetch order <id>"``).
        fn: The callable to invoke.
        *args: Positional arguments forwarded to *fn*.
        allow_404: When ``True``, return ``None`` instead of raising
            on HTTP 404.

    Returns:
        The raw result from *fn*, or ``None`` when *allow_404* is set
        and the API returns 404.

    Raises:
        PolymarketAPIError: When the call fails and the error is not
            a suppressed 404.

    """
    try:
        return fn(*args)
    except PolyApiException as exc:
        status = getattr(exc, "status_code", None)
        if allow_404 and status == HTTP_NOT_FOUND:
            _logger.debug("404 for %s, returning None", action)
            return None
        raise PolymarketAPIError(
            msg=f"Failed to {action}: {exc}",
            status_code=status or HTTP_SERVICE_UNAVAILABLE,
        ) from exc
    except Exception as exc:
        raise PolymarketAPIError(
            msg=f"Failed to {action}: {exc}",
            status_code=HTTP_BAD_REQUEST,
        ) from exc


def derive_funder_address(private_key: str) -> str:
    """Derive the EOA address from a private key.

    Args:
        private_key: Hex-encoded private key (with ``0x`` prefix).

    Returns:
        Checksummed Ethereum address string.

    """
    return Account.from_key(private_key).address  # type: ignore[no-any-return]


def create_authenticated_clob_client(
    host: str,
    private_key: str,
    chain_id: int = _POLYGON_CHAIN_ID,
    creds: tuple[str, str, str] | None = None,
    funder: str | None = None,
) -> ClobClient:  # type: ignore[no-any-unimported]
    """Create an authenticated CLOB client for trading.

    When ``creds`` are provided, create a Level 2 client immediately.
    Otherwise derive (or create) API credentials from the private key and
    attach them, so the returned client can always post orders.

    Args:
        host: Base URL for the Polymarket CLOB API.
        private_key: Polygon wallet private key (hex string with ``0x`` prefix).
        chain_id: Blockchain chain ID (default 137 for Polygon mainnet).
        creds: Optional tuple of ``(api_key, api_secret, api_passphrase)``.
        funder: Proxy wallet address that holds the trading funds.  If
            ``None``, falls back to the EOA address derived from the key.

    Returns:
        Configured ``ClobClient`` ready for authenticated API calls.

    Raises:
        PolymarketAPIError: When credential derivation fails.

    """
    resolved_funder = funder or derive_funder_address(private_key)
    if creds is not None:
        api_key, api_secret, api_passphrase = creds
        return ClobClient(  # type: ignore[no-any-return]
            host,
            chain_id=chain_id,
            key=private_key,
            creds=ApiCreds(
                api_key=api_key,
                api_secret=api_secret,
                api_passphrase=api_passphrase,
            ),
            signature_type=_POLYGON_PROXY_WALLET,
            funder=resolved_funder,
        )
    client = ClobClient(
        host,
        chain_id=chain_id,
        key=private_key,
        signature_type=_POLYGON_PROXY_WALLET,
        funder=resolved_funder,
    )
    derived = _safe_clob_call("derive API credentials", client.create_or_derive_api_creds)
    client.set_api_creds(derived)
    return client  # type: ignore[no-any-return]


def place_limit_order(
    client: Any,
    token_id: str,
    side: str,
    price: float,
    size: float,
) -> dict[str, Any]:
    """Build, sign, and post a GTC limit order on the CLOB.

    Every call produces a freshly signed order, so a retry after a
    transient failure never reuses a stale signature.

    Args:
        client: A Level 2 ``ClobClient`` instance.
        token_id: CLOB token identifier for the outcome to trade.
        side: ``"BUY"`` or ``"SELL"``.
        price: Limit price between 0 and 1 on the 0.01 tick grid.
        size: Number of shares to trade.

    Returns:
        Raw API response dictionary with ``success``, ``orderID``,
        ``status``, and ``errorMsg`` keys.

    Raises:
        PolymarketAPIError: When building, signing, or posting fails.

    """

    def _create_and_post() -> dict[str, Any]:
        order = client.create_order(
            order_args=OrderArgs(
                token_id=token_id,
                price=price,
                size=size,
                side=side,
            ),
            options=PartialCreateOrderOptions(tick_size=_TICK_SIZE),
        )
        return client.post_order(order, orderType=OrderType.GTC)  # type: ignore[no-any-return]

    return _safe_clob_call("place limit order", _create_and_post)


def get_order(client: Any, order_id: str) -> dict[str, Any] | None:
    """Fetch a single order by its ID.

    Args:
        client: A Level 2 ``ClobClient`` instance.
        order_id: Identifier returned when the order was posted.

    Returns:
        Raw order dictionary with ``status``, ``original_size``,
        ``size_matched``, and ``price`` keys, or ``None`` if the venue
        does not know the order.

    Raises:
        PolymarketAPIError: When the query fails with a non-404 error.

    """
    raw = _safe_clob_call(f"fetch order {order_id}", client.get_order, order_id, allow_404=True)
    if isinstance(raw, dict):
        return cast("dict[str, Any]", raw)
    return None


def get_balance(client: Any, asset_type: str = "COLLATERAL") -> dict[str, Any]:
    """Fetch balance and allowance for an asset type.

    Args:
        client: A Level 2 ``ClobClient`` instance.
        asset_type: ``"COLLATERAL"`` for USDC or ``"CONDITIONAL"`` for tokens.

    Returns:
        Dictionary with ``balance`` and ``allowance`` string values.

    Raises:
        PolymarketAPIError: When the balance query fails.

    """
    resolved_type: str = (
        AssetType.COLLATERAL if asset_type == "COLLATERAL" else AssetType.CONDITIONAL
    )
    params = BalanceAllowanceParams(asset_type=resolved_type)  # type: ignore[reportArgumentType]

    def _fetch() -> dict[str, Any]:
        return client.get_balance_allowance(params=params)  # type: ignore[no-any-return]

    return _safe_clob_call("fetch balance", _fetch)


def update_balance(client: Any, asset_type: str = "COLLATERAL") -> None:
    """Tell the CLOB to re-sync its cached balance from on-chain state.

    Args:
        client: A Level 2 ``ClobClient`` instance.
        asset_type: ``"COLLATERAL"`` for USDC or ``"CONDITIONAL"`` for tokens.

    Raises:
        PolymarketAPIError: When the update call fails.

    """
    resolved_type: str = (
        AssetType.COLLATERAL if asset_type == "COLLATERAL" else AssetType.CONDITIONAL
    )
    params = BalanceAllowanceParams(asset_type=resolved_type)  # type: ignore[reportArgumentType]

    def _update() -> dict[str, Any]:
        return client.update_balance_allowance(params=params)  # type: ignore[no-any-return]

    _safe_clob_call("update balance", _update)


def cancel_orders(client: Any, order_ids: list[str]) -> dict[str, Any]:
    """Cancel several open orders in one request.

    Args:
        client: A Level 2 ``ClobClient`` instance.
        order_ids: Identifiers of the orders to cancel.

    Returns:
        Raw API response with ``canceled`` and ``not_canceled`` keys.

    Raises:
        PolymarketAPIError: When the cancellation fails.

    """
    return _safe_clob_call(f"cancel {len(order_ids)} orders", client.cancel_orders, order_ids)


def cancel_all_orders(client: Any) -> dict[str, Any]:
    """Cancel every open order for the authenticated user.

    Args:
        client: A Level 2 ``ClobClient`` instance.

    Returns:
        Raw API response with ``canceled`` and ``not_canceled`` keys.

    Raises:
        PolymarketAPIError: When the cancellation fails.

    """
    return _safe_clob_call("cancel all orders", client.cancel_all)
