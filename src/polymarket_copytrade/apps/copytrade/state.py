"""Trading state ledger for the copytrade bot.

``TradingState`` is the single mutable record of a run: holdings, cash,
cumulative spend, realized P&L, resting orders, and the set of trader
transactions already processed.  One instance exists per run, owned by the
reconciliation loop and passed explicitly to the components it drives.

Capital accounting rules:

- A buy debits ``budget_remaining`` when it fills.  A resting buy reserves
  its unfilled notional from ``budget_remaining`` at submission; matched
  shares convert the reservation into spend and a cancel releases the rest.
- A sell credits ``budget_remaining`` when it fills and realizes
  ``(price - avg_cost) * shares``.
- ``budget_remaining`` never drops below zero.
"""

import logging
import time
from collections import OrderedDict
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal

from polymarket_copytrade.apps.copytrade.models import (
    ExecutionResult,
    ExecutionStatus,
    ExitSummary,
    HeldPosition,
    HoldingSummary,
    OrderIntent,
    RestingOrder,
)
from polymarket_copytrade.clients.polymarket.models import MarketPosition
from polymarket_copytrade.core.models import HUNDRED, ZERO, Side

logger = logging.getLogger(__name__)

_DEFAULT_SEEN_CAPACITY = 10_000


class TradingState:
    """Ledger of holdings, cash, P&L, and resting orders for one run.

    Args:
        initial_budget: USD budget the run starts with.
        seen_capacity: Number of most recent trader transaction hashes
            remembered for deduplication.

    """

    def __init__(
        self,
        initial_budget: Decimal,
        *,
        seen_capacity: int = _DEFAULT_SEEN_CAPACITY,
    ) -> None:
        """Initialize an empty ledger with the full budget in cash.

        Args:
            initial_budget: USD budget the run starts with.
            seen_capacity: Maximum number of remembered transaction hashes.

        """
        self.initial_budget = initial_budget
        self.budget_remaining = initial_budget
        self.total_spent = ZERO
        self.total_sell_proceeds = ZERO
        self.realized_pnl = ZERO
        self.holdings: dict[str, HeldPosition] = {}
        self.resting_orders: dict[str, RestingOrder] = {}
        self.total_events = 0
        self.total_orders = 0
        self.total_buy_orders = 0
        self.total_sell_orders = 0
        self._seen_capacity = seen_capacity
        self._seen_trades: OrderedDict[str, None] = OrderedDict()

    def exit_shares(self, asset: str) -> Decimal:
        """Return the held shares of an asset not already on the book as sells.

        Unlike ``effective_held_shares`` this ignores resting buys, so an
        exit never sells shares the bot has not received yet.

        Args:
            asset: CLOB token identifier.

        Returns:
            Shares available to an exit sell, never negative.

        """
        held = self.holdings.get(asset)
        if held is None:
            return ZERO
        shares = held.shares
        for order in self.resting_orders.values():
            if order.asset == asset and order.side is Side.SELL:
                shares -= order.remaining
        return max(shares, ZERO)

    def effective_held_shares(self, asset: str) -> Decimal:
        """Return holdings adjusted for unfilled resting orders.

        Unfilled resting buys count as held and unfilled resting sells as
        already gone, so the diff engine never orders the same shares twice.

        Args:
            asset: CLOB token identifier.

        Returns:
            Effective share count, never negative.

        """
        held = self.holdings.get(asset)
        shares = held.shares if held is not None else ZERO
        for order in self.resting_orders.values():
            if order.asset != asset:
                continue
            if order.side is Side.BUY:
                shares += order.remaining
            else:
                shares -= order.remaining
        return max(shares, ZERO)

    def reserved_capital(self) -> Decimal:
        """Return the USD currently reserved for resting buys."""
        return sum((o.reserved for o in self.resting_orders.values()), ZERO)

    def effective_capital(self, prices: Mapping[str, Decimal]) -> Decimal:
        """Return cash plus the mark-to-market value of holdings and resting buys.

        This is the running budget every target is sized against.  Holdings
        without a price in ``prices`` are valued at cost, and resting buys
        at their limit price.

        Args:
            prices: Current prices keyed by asset.

        Returns:
            Effective capital in USD.

        """
        capital = self.budget_remaining
        for asset, held in self.holdings.items():
            capital += held.shares * prices.get(asset, held.avg_cost)
        for order in self.resting_orders.values():
            if order.side is Side.BUY:
                capital += order.remaining * prices.get(order.asset, order.price)
        return capital

    def record_trade_seen(self, tx_id: str) -> bool:
        """Record a trader transaction and report whether it is new.

        Only the ``seen_capacity`` most recent hashes are remembered; the
        oldest is evicted once the window is full.

        Args:
            tx_id: On-chain transaction hash.

        Returns:
            ``True`` the first time a hash is seen, ``False`` afterwards.

        """
        if tx_id in self._seen_trades:
            self._seen_trades.move_to_end(tx_id)
            return False
        self._seen_trades[tx_id] = None
        if len(self._seen_trades) > self._seen_capacity:
            self._seen_trades.popitem(last=False)
        return True

    @property
    def seen_trade_count(self) -> int:
        """Return the number of transaction hashes currently remembered."""
        return len(self._seen_trades)

    # ------------------------------------------------------------------
    # Fills
    # ------------------------------------------------------------------

    def apply_fill(  # noqa: PLR0913
        self,
        asset: str,
        title: str,
        outcome: str,
        side: Side,
        shares: Decimal,
        price: Decimal,
    ) -> None:
        """Apply a confirmed or simulated fill to holdings and cash.

        A sell that brings a holding to zero removes it, including exits
        at price zero that return no proceeds.

        Args:
            asset: CLOB token identifier.
            title: Market title.
            outcome: Outcome label.
            side: Fill direction.
            shares: Shares filled.
            price: Fill price.

        """
        if shares <= ZERO:
            return
        if side is Side.BUY:
            cost = shares * price
            self._debit(cost)
            self.total_spent += cost
            held = self.holdings.setdefault(asset, HeldPosition(asset, title, outcome))
            held.shares += shares
            held.total_cost += cost
            return
        self._apply_sell(asset, shares, price)

    def apply_orders(self, orders: Iterable[OrderIntent]) -> None:
        """Apply simulated orders, each filled in full at its price.

        Args:
            orders: Orders from the diff engine, sells first.

        """
        for order in orders:
            self.apply_fill(
                order.asset, order.title, order.outcome, order.side, order.shares, order.price
            )
            self._count_order(order.side)

    def apply_execution_results(
        self,
        orders: Sequence[OrderIntent],
        results: Sequence[ExecutionResult],
    ) -> None:
        """Apply live execution outcomes to the ledger.

        Filled shares are applied immediately and any remainder left on the
        book is tracked as a resting order with its capital reserved.
        Rejected, failed, and skipped orders leave the ledger untouched.

        Args:
            orders: Orders passed to the executor.
            results: One result per executed order.

        """
        for result in results:
            order = orders[result.order_index]
            match result.status:
                case ExecutionStatus.FILLED | ExecutionStatus.PARTIALLY_FILLED:
                    self.apply_fill(
                        order.asset,
                        order.title,
                        order.outcome,
                        order.side,
                        result.filled_shares,
                        result.price,
                    )
                    self._track_remainder(order, result)
                    self._count_order(order.side)
                case ExecutionStatus.RESTING:
                    self._track_remainder(order, result)
                    self._count_order(order.side)
                case ExecutionStatus.REJECTED | ExecutionStatus.FAILED | ExecutionStatus.SKIPPED:
                    logger.info(
                        "Order %d for %s not applied: %s %s",
                        result.order_index,
                        order.asset,
                        result.status.value,
                        result.error,
                    )

    # ------------------------------------------------------------------
    # Resting orders
    # ------------------------------------------------------------------

    def add_resting_order(self, order: RestingOrder) -> None:
        """Track a resting order, reserving the notional of an unfilled buy.

        Args:
            order: Order accepted by the venue and still on the book.

        """
        if order.side is Side.BUY:
            wanted = order.remaining * order.price
            order.reserved = min(wanted, self.budget_remaining)
            if order.reserved < wanted:
                logger.warning(
                    "Resting buy %s needs $%s but only $%s is available",
                    order.order_id,
                    wanted,
                    self.budget_remaining,
                )
            self.budget_remaining -= order.reserved
        else:
            order.reserved = ZERO
        self.resting_orders[order.order_id] = order

    def apply_resting_progress(
        self,
        order_id: str,
        size_matched: Decimal,
        price: Decimal | None = None,
    ) -> None:
        """Accrue newly matched shares of a resting order into holdings.

        Matched buy shares consume the order's reservation; matched sell
        shares credit proceeds.  Reports that do not exceed the shares
        already recorded are ignored.

        Args:
            order_id: Venue order identifier.
            size_matched: Total shares matched so far, as reported by the venue.
            price: Fill price; defaults to the order's limit price.

        """
        order = self.resting_orders.get(order_id)
        if order is None:
            return
        matched = min(size_matched, order.size)
        delta = matched - order.filled
        if delta <= ZERO:
            return
        fill_price = order.price if price is None else price
        order.filled = matched
        if order.side is Side.BUY:
            cost = delta * fill_price
            consumed = min(cost, order.reserved)
            order.reserved -= consumed
            self._debit(cost - consumed)
            self.total_spent += cost
            held = self.holdings.setdefault(
                order.asset, HeldPosition(order.asset, order.title, order.outcome)
            )
            held.shares += delta
            held.total_cost += cost
        else:
            self._apply_sell(order.asset, delta, fill_price)

    def apply_resting_fill(
        self,
        order_id: str,
        size_matched: Decimal | None = None,
        price: Decimal | None = None,
    ) -> None:
        """Complete a resting order and stop tracking it.

        Any reservation left over (for example when the venue reports fewer
        matched shares than requested) is released back to the budget.

        Args:
            order_id: Venue order identifier.
            size_matched: Final matched size; defaults to the full order size.
            price: Fill price; defaults to the order's limit price.

        """
        order = self.resting_orders.get(order_id)
        if order is None:
            return
        final_size = order.size if size_matched is None or size_matched <= ZERO else size_matched
        self.apply_resting_progress(order_id, final_size, price)
        self._release(order)

    def apply_cancel(self, order_id: str, size_matched: Decimal | None = None) -> None:
        """Stop tracking a cancelled order and release its reservation.

        Args:
            order_id: Venue order identifier.
            size_matched: Final matched size reported with the cancellation,
                if any; matched shares are applied before releasing.

        """
        order = self.resting_orders.get(order_id)
        if order is None:
            return
        if size_matched is not None:
            self.apply_resting_progress(order_id, size_matched)
        self._release(order)

    def reseed_holdings(self, positions: Iterable[MarketPosition]) -> Decimal:
        """Replace holdings with the venue's authoritative positions.

        Used on a live restart before any order is placed.  The cost basis of
        the seeded shares counts as already spent, so calling this twice with
        the same positions leaves the ledger unchanged.

        Args:
            positions: The bot wallet's own positions.

        Returns:
            Mark-to-market value of the seeded holdings.

        """
        self.holdings = {}
        seeded_cost = ZERO
        seeded_value = ZERO
        for position in positions:
            if position.size <= ZERO:
                continue
            cost = position.size * position.avg_price
            self.holdings[position.asset] = HeldPosition(
                asset=position.asset,
                title=position.title,
                outcome=position.outcome,
                shares=position.size,
                total_cost=cost,
            )
            seeded_cost += cost
            seeded_value += position.current_value
        self.total_spent = seeded_cost
        self.budget_remaining = max(self.initial_budget - seeded_cost, ZERO)
        logger.info(
            "Seeded %d holdings (cost $%s), budget remaining $%s",
            len(self.holdings),
            seeded_cost,
            self.budget_remaining,
        )
        return seeded_value

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def record_event(self) -> None:
        """Count one emitted rebalancing event."""
        self.total_events += 1

    def snapshot_for_exit_summary(self, prices: Mapping[str, Decimal]) -> ExitSummary:
        """Build the terminal summary from the final ledger and prices.

        Holdings without a price are listed in ``unpriced_assets`` and
        contribute nothing to unrealized P&L.

        Args:
            prices: Final resolved prices keyed by asset.

        Returns:
            Immutable exit summary.

        """
        holdings: list[HoldingSummary] = []
        unpriced: list[str] = []
        unrealized = ZERO
        for asset, held in self.holdings.items():
            price = prices.get(asset)
            if price is None:
                unpriced.append(asset)
                value = ZERO
                position_pnl = ZERO
            else:
                value = held.shares * price
                position_pnl = (price - held.avg_cost) * held.shares
            unrealized += position_pnl
            holdings.append(
                HoldingSummary(
                    asset=asset,
                    title=held.title,
                    outcome=held.outcome,
                    shares=held.shares,
                    avg_cost=held.avg_cost,
                    cur_price=price,
                    current_value=value,
                    unrealized_pnl=position_pnl,
                )
            )
        total_pnl = self.realized_pnl + unrealized
        pnl_percent = (
            total_pnl / self.initial_budget * HUNDRED if self.initial_budget > ZERO else ZERO
        )
        return ExitSummary(
            initial_budget=self.initial_budget,
            budget_remaining=self.budget_remaining,
            total_spent=self.total_spent,
            total_sell_proceeds=self.total_sell_proceeds,
            realized_pnl=self.realized_pnl,
            unrealized_pnl=unrealized,
            total_pnl=total_pnl,
            pnl_percent=pnl_percent,
            total_events=self.total_events,
            total_orders=self.total_orders,
            total_buy_orders=self.total_buy_orders,
            total_sell_orders=self.total_sell_orders,
            holdings=tuple(holdings),
            unpriced_assets=tuple(unpriced),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply_sell(self, asset: str, shares: Decimal, price: Decimal) -> None:
        """Reduce a holding, credit proceeds, and realize P&L."""
        held = self.holdings.get(asset)
        if held is None:
            logger.warning("Sell of %s shares of %s with no holding, ignoring", shares, asset)
            return
        sold = min(shares, held.shares)
        avg_cost = held.avg_cost
        proceeds = sold * price
        self.realized_pnl += (price - avg_cost) * sold
        self.budget_remaining += proceeds
        self.total_sell_proceeds += proceeds
        held.shares -= sold
        held.total_cost -= avg_cost * sold
        if held.shares <= ZERO:
            del self.holdings[asset]

    def _debit(self, amount: Decimal) -> None:
        """Remove cash from the budget, clamping at zero."""
        if amount > self.budget_remaining:
            logger.warning(
                "Debit of $%s exceeds budget remaining $%s, clamping to zero",
                amount,
                self.budget_remaining,
            )
            self.budget_remaining = ZERO
            return
        self.budget_remaining -= amount

    def _release(self, order: RestingOrder) -> None:
        """Return an order's leftover reservation to the budget and forget it."""
        self.budget_remaining += order.reserved
        order.reserved = ZERO
        self.resting_orders.pop(order.order_id, None)

    def _track_remainder(self, order: OrderIntent, result: ExecutionResult) -> None:
        """Start tracking the unfilled part of a live order."""
        if result.resting_shares <= ZERO or not result.order_id:
            return
        self.add_resting_order(
            RestingOrder(
                order_id=result.order_id,
                asset=order.asset,
                title=order.title,
                outcome=order.outcome,
                side=order.side,
                price=result.price,
                size=result.filled_shares + result.resting_shares,
                filled=result.filled_shares,
                submitted_at=time.time(),
            )
        )

    def _count_order(self, side: Side) -> None:
        """Increment the order counters for one placed order."""
        self.total_orders += 1
        if side is Side.BUY:
            self.total_buy_orders += 1
        else:
            self.total_sell_orders += 1
