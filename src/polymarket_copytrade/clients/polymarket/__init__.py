"""Polymarket client for trader positions, trades, prices, and CLOB orders."""

from polymarket_copytrade.clients.polymarket.client import PolymarketClient
from polymarket_copytrade.clients.polymarket.exceptions import (
    PolymarketAPIError,
    PolymarketError,
)
from polymarket_copytrade.clients.polymarket.models import (
    Balance,
    MarketPosition,
    OrderRequest,
    OrderResponse,
    OrderStatus,
    TraderTrade,
)

__all__ = [
    "Balance",
    "MarketPosition",
    "OrderRequest",
    "OrderResponse",
    "OrderStatus",
    "PolymarketAPIError",
    "PolymarketClient",
    "PolymarketError",
    "TraderTrade",
]
