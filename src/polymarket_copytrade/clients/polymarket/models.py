"""Typed data models for Polymarket positions, trades, and orders.

Provide frozen dataclasses that insulate the rest of the codebase from the
untyped dictionaries returned by ``py-clob-client``, the Data API, and the
Gamma API.  All monetary values use ``Decimal`` for precision.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class OrderStatus(Enum):
    """Closed set of order states reported by the CLOB.

    The venue reports these in mixed case (``"live"`` on submission,
    ``"LIVE"`` on query) and spells cancellation as ``"CANCELED"``;
    ``parse`` normalises all of them.
    """

    LIVE = "live"
    MATCHED = "matched"
    DELAYED = "delayed"
    UNMATCHED = "unmatched"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, raw: str) -> "OrderStatus":
        """Convert a venue status string into an ``OrderStatus``.

        Args:
            raw: Status string from the CLOB API.

        Returns:
            The matching ``OrderStatus`` member.

        Raises:
            ValueError: If the status is not one of the known venue states.

        """
        normalized = raw.strip().lower()
        if normalized == "canceled":
            normalized = "cancelled"
        try:
            return cls(normalized)
        except ValueError:
            msg = f"Unknown order status {raw!r}"
            raise ValueError(msg) from None


@dataclass(frozen=True)
class MarketPosition:
    """One market held by a wallet, as reported by the Data API.

    Represent an immutable snapshot of a position; the position source is
    re-queried every cycle and an asset missing from a later snapshot means
    the position was closed.

    Args:
        asset: CLOB token identifier of the outcome held.
        condition_id: Market condition identifier.
        title: Human-readable market title.
        outcome: Outcome label (e.g. ``"Yes"``).
        outcome_index: Index of the outcome within the market.
        size: Number of shares held.
        avg_price: Average entry price.
        cur_price: Current price between 0 and 1.
        current_value: Current market value in USD.
        initial_value: Cost basis in USD.
        cash_pnl: Unrealized P&L in USD.
        percent_pnl: Unrealized P&L as a percentage.
        realized_pnl: Realized P&L in USD.
        redeemable: Whether the market resolved and the shares can be redeemed.
        mergeable: Whether complementary shares can be merged.
        event_slug: Slug of the parent event.

    """

    asset: str
    condition_id: str
    title: str
    outcome: str
    outcome_index: int
    size: Decimal
    avg_price: Decimal
    cur_price: Decimal
    current_value: Decimal
    initial_value: Decimal
    cash_pnl: Decimal
    percent_pnl: Decimal
    realized_pnl: Decimal
    redeemable: bool
    mergeable: bool
    event_slug: str


@dataclass(frozen=True)
class TraderTrade:
    """A recent trade made by a wallet, used only to detect that something changed.

    Args:
        transaction_hash: Unique on-chain transaction hash of the trade.
        asset: CLOB token identifier traded.
        side: ``"BUY"`` or ``"SELL"``.
        size: Number of shares traded.
        price: Execution price.
        timestamp: Unix epoch seconds of the trade.
        title: Human-readable market title.
        outcome: Outcome label.

    """

    transaction_hash: str
    asset: str
    side: str
    size: Decimal
    price: Decimal
    timestamp: int
    title: str
    outcome: str


@dataclass(frozen=True)
class OrderRequest:
    """Typed input for placing a GTC limit order on Polymarket.

    Args:
        token_id: CLOB token identifier for the outcome to trade.
        side: Order side -- ``"BUY"`` or ``"SELL"``.
        price: Limit price between 0 and 1.
        size: Number of shares to trade.

    """

    token_id: str
    side: str
    price: Decimal
    size: Decimal


@dataclass(frozen=True)
class OrderResponse:
    """Typed result from submitting or querying an order on the CLOB.

    Args:
        order_id: Unique identifier assigned by the CLOB.
        status: Current venue status of the order.
        token_id: CLOB token identifier that was traded.
        side: Order side -- ``"BUY"`` or ``"SELL"``.
        price: Limit price.
        size: Requested size in shares.
        filled: Number of shares matched so far.
        success: Whether the venue accepted the submission.
        error_msg: Venue-provided reason when ``success`` is ``False``.

    """

    order_id: str
    status: OrderStatus
    token_id: str
    side: str
    price: Decimal
    size: Decimal
    filled: Decimal
    success: bool = True
    error_msg: str = ""


@dataclass(frozen=True)
class Balance:
    """Typed balance and allowance information for a Polymarket asset.

    Args:
        asset_type: ``"COLLATERAL"`` for USDC or ``"CONDITIONAL"`` for tokens.
        balance: Current balance in the asset's native units.
        allowance: Approved spending allowance for the exchange contract.

    """

    asset_type: str
    balance: Decimal
    allowance: Decimal
