"""Data models for the copytrade reconciliation pipeline.

Define the values that flow through one reconciliation cycle: target
allocations derived from the trader's snapshot, order intents emitted by the
diff engine, per-order execution results, and the event and summary records
written to stdout.  ``HeldPosition`` and ``RestingOrder`` are the only
mutable models; they belong to ``TradingState`` and change only through it.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from polymarket_copytrade.core.models import ZERO, Side


class OrderTag(Enum):
    """Distinguish ordinary rebalancing orders from position exits."""

    REBALANCE = "rebalance"
    EXIT = "exit"


class ExecutionStatus(Enum):
    """Outcome of executing a single order intent."""

    FILLED = "filled"
    PARTIALLY_FILLED = "partially_filled"
    RESTING = "resting"
    REJECTED = "rejected"
    FAILED = "failed"
    SKIPPED = "skipped"


class EventTrigger(Enum):
    """What caused a reconciliation cycle to rebalance."""

    INITIAL_REPLICATION = "initial_replication"
    TRADE_DETECTED = "trade_detected"


@dataclass(frozen=True)
class TargetAllocation:
    """Desired holding in one market for the current cycle.

    Args:
        asset: CLOB token identifier.
        title: Market title.
        outcome: Outcome label.
        weight: Trader's portfolio weight for the asset (0-1).
        target_usd: Desired USD value after the per-market cap.
        target_shares: Desired share count at the current price.
        cur_price: Current price used for sizing.

    """

    asset: str
    title: str
    outcome: str
    weight: Decimal
    target_usd: Decimal
    target_shares: Decimal
    cur_price: Decimal


@dataclass
class HeldPosition:
    """The bot's own holding in one market.

    Args:
        asset: CLOB token identifier.
        title: Market title.
        outcome: Outcome label.
        shares: Number of shares held.
        total_cost: Cost basis of the shares held, in USD.

    """

    asset: str
    title: str
    outcome: str
    shares: Decimal = ZERO
    total_cost: Decimal = ZERO

    @property
    def avg_cost(self) -> Decimal:
        """Return the average cost per share, or zero when nothing is held."""
        if self.shares <= ZERO:
            return ZERO
        return self.total_cost / self.shares


@dataclass
class RestingOrder:
    """An order accepted by the venue that has not fully filled yet.

    Args:
        order_id: Venue order identifier.
        asset: CLOB token identifier.
        title: Market title.
        outcome: Outcome label.
        side: Order direction.
        price: Limit price.
        size: Requested size in shares.
        filled: Shares matched so far.
        submitted_at: Unix epoch seconds of submission.
        reserved: USD still held back from the budget for the unfilled part
            of a buy.  Always zero for sells.

    """

    order_id: str
    asset: str
    title: str
    outcome: str
    side: Side
    price: Decimal
    size: Decimal
    filled: Decimal = ZERO
    submitted_at: float = 0.0
    reserved: Decimal = ZERO

    @property
    def remaining(self) -> Decimal:
        """Return the unfilled share count, never negative."""
        return max(self.size - self.filled, ZERO)


@dataclass(frozen=True)
class OrderIntent:
    """An instruction emitted by the diff engine.

    Args:
        asset: CLOB token identifier.
        title: Market title.
        outcome: Outcome label.
        side: Order direction.
        price: Limit price.
        shares: Number of shares to trade.
        cost_usd: Notional value (``price * shares``).
        tag: Whether the order rebalances or exits a position.
        reason: ``"rebalance"``, ``"resolved"``, or ``"trader exited"``.

    """

    asset: str
    title: str
    outcome: str
    side: Side
    price: Decimal
    shares: Decimal
    cost_usd: Decimal
    tag: OrderTag = OrderTag.REBALANCE
    reason: str = "rebalance"


@dataclass(frozen=True)
class SkippedOrder:
    """An order the diff engine decided not to place.

    Skips are deliberate no-ops (below minimum notional, budget exhausted,
    no exit price) and are reported separately from failed orders.

    Args:
        intent: The order that would have been placed.
        reason: Why it was skipped.

    """

    intent: OrderIntent
    reason: str


@dataclass(frozen=True)
class OrderPlan:
    """Result of diffing targets against holdings.

    Args:
        orders: Orders to execute, sells strictly before buys.
        skipped: Orders deliberately not placed.
        cancels: Resting buy order ids on assets no longer targeted.

    """

    orders: tuple[OrderIntent, ...] = ()
    skipped: tuple[SkippedOrder, ...] = ()
    cancels: tuple[str, ...] = ()

    @property
    def sells(self) -> tuple[OrderIntent, ...]:
        """Return the sell orders in execution order."""
        return tuple(o for o in self.orders if o.side is Side.SELL)

    @property
    def buys(self) -> tuple[OrderIntent, ...]:
        """Return the buy orders in execution order."""
        return tuple(o for o in self.orders if o.side is Side.BUY)


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of executing one order intent.

    Args:
        order_index: Position of the intent in the executed order list.
        status: Execution outcome.
        price: Price the order was submitted (or settled) at.
        order_id: Venue order identifier, empty when nothing was posted.
        filled_shares: Shares filled immediately.
        resting_shares: Unfilled shares left resting on the book.
        error: Venue or client error message for rejected and failed orders.

    """

    order_index: int
    status: ExecutionStatus
    price: Decimal = ZERO
    order_id: str = ""
    filled_shares: Decimal = ZERO
    resting_shares: Decimal = ZERO
    error: str = ""

    @property
    def filled_cost(self) -> Decimal:
        """Return the USD notional of the immediately filled shares."""
        return self.filled_shares * self.price


@dataclass(frozen=True)
class CopytradeEvent:
    """Structured record of one reconciliation cycle.

    Args:
        timestamp: ISO-8601 UTC time the cycle completed.
        mode: ``"dry-run"`` or ``"live"``.
        trigger: Why the cycle rebalanced.
        detected_trades: Transaction hashes of newly detected trader trades.
        targets: Allocation computed for the cycle.
        orders: Orders attempted.
        skipped: Orders deliberately not placed.
        results: Per-order execution results (live mode only).
        budget_remaining: Cash left after the cycle.
        total_spent: Cumulative USD spent on buys.
        realized_pnl: Cumulative realized P&L.
        resting_orders: Number of orders still resting after the cycle.
        cancelled_orders: Resting buys cancelled because the trader exited.

    """

    timestamp: str
    mode: str
    trigger: EventTrigger
    detected_trades: tuple[str, ...]
    targets: tuple[TargetAllocation, ...]
    orders: tuple[OrderIntent, ...]
    skipped: tuple[SkippedOrder, ...]
    results: tuple[ExecutionResult, ...]
    budget_remaining: Decimal
    total_spent: Decimal
    realized_pnl: Decimal
    resting_orders: int
    cancelled_orders: tuple[str, ...] = ()


@dataclass(frozen=True)
class HoldingSummary:
    """Final state of one holding in the exit summary.

    Args:
        asset: CLOB token identifier.
        title: Market title.
        outcome: Outcome label.
        shares: Shares held at shutdown.
        avg_cost: Average cost per share.
        cur_price: Final resolved price, or ``None`` when unpriced.
        current_value: Mark-to-market value (zero when unpriced).
        unrealized_pnl: Unrealized P&L (zero when unpriced).

    """

    asset: str
    title: str
    outcome: str
    shares: Decimal
    avg_cost: Decimal
    cur_price: Decimal | None
    current_value: Decimal
    unrealized_pnl: Decimal


@dataclass(frozen=True)
class ExitSummary:
    """Terminal report computed once at shutdown.

    Args:
        initial_budget: Budget the run started with.
        budget_remaining: Cash left at shutdown.
        total_spent: Cumulative USD spent on buys.
        total_sell_proceeds: Cumulative USD received from sells.
        realized_pnl: Realized P&L.
        unrealized_pnl: Unrealized P&L over priced holdings.
        total_pnl: Realized plus unrealized P&L.
        pnl_percent: Total P&L as a percentage of the initial budget.
        total_events: Number of rebalancing events.
        total_orders: Number of orders filled or accepted.
        total_buy_orders: Number of buy orders among them.
        total_sell_orders: Number of sell orders among them.
        holdings: Per-asset holding summaries.
        unpriced_assets: Held assets excluded from unrealized P&L because
            no price could be resolved.

    """

    initial_budget: Decimal
    budget_remaining: Decimal
    total_spent: Decimal
    total_sell_proceeds: Decimal
    realized_pnl: Decimal
    unrealized_pnl: Decimal
    total_pnl: Decimal
    pnl_percent: Decimal
    total_events: int
    total_orders: int
    total_buy_orders: int
    total_sell_orders: int
    holdings: tuple[HoldingSummary, ...] = field(default_factory=tuple)
    unpriced_assets: tuple[str, ...] = field(default_factory=tuple)
