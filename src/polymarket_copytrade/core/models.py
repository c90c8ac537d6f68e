"""Core value types shared across the copytrade application.

Define the ``Decimal`` constants and the ``Side`` enum used by the client
layer, the reconciliation engine, and the trading-state ledger.  All money
and share quantities in the application are ``Decimal`` so repeated
rebalancing cycles never accumulate floating-point drift.
"""

from decimal import Decimal
from enum import Enum

ZERO = Decimal(0)
ONE = Decimal(1)
HUNDRED = Decimal(100)


class Side(Enum):
    """Direction of an order: BUY (add shares) or SELL (reduce shares)."""

    BUY = "BUY"
    SELL = "SELL"
