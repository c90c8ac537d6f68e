"""Tests for the TradingState ledger."""

from decimal import Decimal

from polymarket_copytrade.apps.copytrade.models import (
    ExecutionResult,
    ExecutionStatus,
    OrderIntent,
    RestingOrder,
)
from polymarket_copytrade.apps.copytrade.state import TradingState
from polymarket_copytrade.clients.polymarket.models import MarketPosition
from polymarket_copytrade.core.models import ZERO, Side

_BUDGET = Decimal(1000)
_ASSET = "token_a"
_OTHER_ASSET = "token_b"
_ORDER_ID = "order_1"


def _resting(
    side: Side = Side.BUY,
    price: str = "0.5",
    size: str = "100",
    order_id: str = _ORDER_ID,
) -> RestingOrder:
    """Create an unfilled resting order for the test asset."""
    return RestingOrder(
        order_id=order_id,
        asset=_ASSET,
        title="Market A",
        outcome="Yes",
        side=side,
        price=Decimal(price),
        size=Decimal(size),
    )


def _intent(side: Side, shares: str, price: str = "0.5", asset: str = _ASSET) -> OrderIntent:
    """Create an order intent."""
    count = Decimal(shares)
    return OrderIntent(
        asset=asset,
        title="Market",
        outcome="Yes",
        side=side,
        price=Decimal(price),
        shares=count,
        cost_usd=count * Decimal(price),
    )


def _position(asset: str, size: str, avg_price: str, current_value: str) -> MarketPosition:
    """Create a wallet position for reseeding."""
    return MarketPosition(
        asset=asset,
        condition_id="cond",
        title="Market",
        outcome="Yes",
        outcome_index=0,
        size=Decimal(size),
        avg_price=Decimal(avg_price),
        cur_price=Decimal("0.5"),
        current_value=Decimal(current_value),
        initial_value=Decimal(size) * Decimal(avg_price),
        cash_pnl=ZERO,
        percent_pnl=ZERO,
        realized_pnl=ZERO,
        redeemable=False,
        mergeable=False,
        event_slug="event",
    )


def _buy(state: TradingState, shares: str, price: str, asset: str = _ASSET) -> None:
    """Apply a buy fill."""
    state.apply_fill(asset, "Market", "Yes", Side.BUY, Decimal(shares), Decimal(price))


class TestFills:
    """Test cash, holdings, and P&L updates from fills."""

    def test_buy_debits_budget(self) -> None:
        """Move cash into a holding at cost."""
        state = TradingState(_BUDGET)
        _buy(state, "10", "0.4")

        assert state.budget_remaining == Decimal(996)
        assert state.total_spent == Decimal(4)
        assert state.holdings[_ASSET].shares == Decimal(10)
        assert state.holdings[_ASSET].avg_cost == Decimal("0.4")

    def test_sell_realizes_pnl(self) -> None:
        """Credit proceeds and realize the gain over average cost."""
        state = TradingState(_BUDGET)
        _buy(state, "10", "0.4")
        state.apply_fill(_ASSET, "Market", "Yes", Side.SELL, Decimal(4), Decimal("0.6"))

        assert state.realized_pnl == Decimal("0.8")
        assert state.total_sell_proceeds == Decimal("2.4")
        assert state.budget_remaining == Decimal("998.4")
        assert state.holdings[_ASSET].shares == Decimal(6)

    def test_sell_at_zero_removes_holding(self) -> None:
        """Drop a holding exited at a resolved price of zero."""
        state = TradingState(_BUDGET)
        _buy(state, "10", "0.4")
        state.apply_fill(_ASSET, "Market", "Yes", Side.SELL, Decimal(10), ZERO)

        assert _ASSET not in state.holdings
        assert state.realized_pnl == Decimal(-4)
        assert state.budget_remaining == Decimal(996)

    def test_budget_never_negative(self) -> None:
        """Clamp the budget at zero when a fill costs more than remains."""
        state = TradingState(Decimal(10))
        _buy(state, "100", "0.5")

        assert state.budget_remaining == ZERO

    def test_apply_orders_counts_each_order(self) -> None:
        """Fill simulated orders in full and count them by side."""
        state = TradingState(_BUDGET)
        state.apply_orders([_intent(Side.BUY, "20"), _intent(Side.SELL, "5")])

        assert state.holdings[_ASSET].shares == Decimal(15)
        assert (state.total_orders, state.total_buy_orders, state.total_sell_orders) == (2, 1, 1)


class TestExecutionResults:
    """Test applying live execution outcomes."""

    def test_filled_and_rejected(self) -> None:
        """Apply fills and leave rejected orders untouched."""
        state = TradingState(_BUDGET)
        orders = [_intent(Side.BUY, "20"), _intent(Side.BUY, "10", asset=_OTHER_ASSET)]
        results = [
            ExecutionResult(
                order_index=0,
                status=ExecutionStatus.FILLED,
                price=Decimal("0.5"),
                order_id="o1",
                filled_shares=Decimal(20),
            ),
            ExecutionResult(
                order_index=1, status=ExecutionStatus.REJECTED, error="not enough balance"
            ),
        ]
        state.apply_execution_results(orders, results)

        assert state.holdings[_ASSET].shares == Decimal(20)
        assert _OTHER_ASSET not in state.holdings
        assert state.budget_remaining == Decimal(990)
        assert state.total_orders == 1

    def test_partial_fill_tracks_remainder(self) -> None:
        """Hold the unfilled part as a resting order with its capital reserved."""
        state = TradingState(_BUDGET)
        result = ExecutionResult(
            order_index=0,
            status=ExecutionStatus.PARTIALLY_FILLED,
            price=Decimal("0.5"),
            order_id="o1",
            filled_shares=Decimal(20),
            resting_shares=Decimal(80),
        )
        state.apply_execution_results([_intent(Side.BUY, "100")], [result])

        resting = state.resting_orders["o1"]
        assert resting.size == Decimal(100)
        assert resting.filled == Decimal(20)
        assert resting.reserved == Decimal(40)
        assert state.budget_remaining == Decimal(950)
        assert state.effective_held_shares(_ASSET) == Decimal(100)


class TestRestingOrders:
    """Test reservation accounting for resting orders."""

    def test_cancel_releases_reservation(self) -> None:
        """Return a cancelled buy's reserved $50 to the budget."""
        state = TradingState(_BUDGET)
        state.add_resting_order(_resting())
        assert state.budget_remaining == Decimal(950)
        assert state.reserved_capital() == Decimal(50)

        state.apply_cancel(_ORDER_ID)

        assert state.budget_remaining == _BUDGET
        assert _ORDER_ID not in state.resting_orders

    def test_progress_consumes_reservation(self) -> None:
        """Convert matched shares into holdings paid from the reservation."""
        state = TradingState(_BUDGET)
        state.add_resting_order(_resting())
        state.apply_resting_progress(_ORDER_ID, Decimal(40))

        assert state.holdings[_ASSET].shares == Decimal(40)
        assert state.resting_orders[_ORDER_ID].reserved == Decimal(30)
        assert state.budget_remaining == Decimal(950)
        assert state.total_spent == Decimal(20)

    def test_stale_progress_is_ignored(self) -> None:
        """Ignore a matched size that does not exceed what was recorded."""
        state = TradingState(_BUDGET)
        state.add_resting_order(_resting())
        state.apply_resting_progress(_ORDER_ID, Decimal(40))
        state.apply_resting_progress(_ORDER_ID, Decimal(30))

        assert state.holdings[_ASSET].shares == Decimal(40)

    def test_cancel_after_partial_fill(self) -> None:
        """Apply the final matched size and release only the unused reservation."""
        state = TradingState(_BUDGET)
        state.add_resting_order(_resting())
        state.apply_resting_progress(_ORDER_ID, Decimal(40))
        state.apply_cancel(_ORDER_ID, size_matched=Decimal(60))

        assert state.holdings[_ASSET].shares == Decimal(60)
        assert state.budget_remaining == Decimal(970)
        assert state.reserved_capital() == ZERO

    def test_full_fill(self) -> None:
        """Complete a resting buy at its full size."""
        state = TradingState(_BUDGET)
        state.add_resting_order(_resting())
        state.apply_resting_fill(_ORDER_ID)

        assert state.holdings[_ASSET].shares == Decimal(100)
        assert state.budget_remaining == Decimal(950)
        assert state.resting_orders == {}

    def test_resting_sell_fill(self) -> None:
        """Credit proceeds when a resting sell completes."""
        state = TradingState(_BUDGET)
        _buy(state, "100", "0.5")
        state.add_resting_order(_resting(side=Side.SELL, price="0.6"))
        assert state.effective_held_shares(_ASSET) == ZERO

        state.apply_resting_fill(_ORDER_ID)

        assert _ASSET not in state.holdings
        assert state.realized_pnl == Decimal(10)
        assert state.budget_remaining == Decimal(1010)

    def test_reservation_clamped_to_budget(self) -> None:
        """Reserve no more than the cash available."""
        state = TradingState(Decimal(10))
        state.add_resting_order(_resting())

        assert state.resting_orders[_ORDER_ID].reserved == Decimal(10)
        assert state.budget_remaining == ZERO

    def test_unknown_order_is_ignored(self) -> None:
        """Leave the ledger alone for an order it never tracked."""
        state = TradingState(_BUDGET)
        state.apply_cancel("missing")
        state.apply_resting_fill("missing")

        assert state.budget_remaining == _BUDGET

    def test_exit_shares_ignore_resting_buys(self) -> None:
        """Count only received shares, less those already resting as sells."""
        state = TradingState(_BUDGET)
        state.add_resting_order(_resting(size="20"))
        assert state.exit_shares(_ASSET) == ZERO
        assert state.effective_held_shares(_ASSET) == Decimal(20)

        _buy(state, "30", "0.5")
        state.add_resting_order(_resting(side=Side.SELL, size="10", order_id="sell_1"))
        assert state.exit_shares(_ASSET) == Decimal(20)

    def test_effective_capital(self) -> None:
        """Value cash, holdings at market, and resting buys together."""
        state = TradingState(_BUDGET)
        _buy(state, "100", "0.4", asset=_OTHER_ASSET)
        state.add_resting_order(_resting())

        capital = state.effective_capital({_OTHER_ASSET: Decimal("0.6")})

        assert capital == Decimal(910) + Decimal(60) + Decimal(50)


class TestSeenTrades:
    """Test transaction-hash deduplication."""

    def test_first_sighting_is_new(self) -> None:
        """Report a hash as new only once."""
        state = TradingState(_BUDGET)
        assert state.record_trade_seen("0xabc") is True
        assert state.record_trade_seen("0xabc") is False

    def test_oldest_hash_evicted(self) -> None:
        """Forget the oldest hash once the window is full."""
        state = TradingState(_BUDGET, seen_capacity=2)
        for tx in ("0x1", "0x2", "0x3"):
            state.record_trade_seen(tx)

        assert state.seen_trade_count == 2  # noqa: PLR2004
        assert state.record_trade_seen("0x3") is False
        assert state.record_trade_seen("0x1") is True

    def test_page_sized_window_never_reprocesses(self) -> None:
        """Re-polling the same page reports nothing new when the window fits it."""
        page = ["0x1", "0x2", "0x3"]
        state = TradingState(_BUDGET, seen_capacity=len(page))

        assert [state.record_trade_seen(tx) for tx in page] == [True, True, True]
        assert [state.record_trade_seen(tx) for tx in page] == [False, False, False]
        assert [state.record_trade_seen(tx) for tx in page] == [False, False, False]


class TestReseed:
    """Test reseeding holdings from the wallet's positions."""

    def test_reseed_sets_holdings_and_budget(self) -> None:
        """Count the seeded cost basis as already spent."""
        state = TradingState(_BUDGET)
        value = state.reseed_holdings([_position(_ASSET, "100", "0.4", "50")])

        assert value == Decimal(50)
        assert state.holdings[_ASSET].shares == Decimal(100)
        assert state.total_spent == Decimal(40)
        assert state.budget_remaining == Decimal(960)

    def test_reseed_is_idempotent(self) -> None:
        """Leave the ledger unchanged when reseeded twice."""
        state = TradingState(_BUDGET)
        positions = [
            _position(_ASSET, "100", "0.4", "50"),
            _position(_OTHER_ASSET, "0", "0.3", "0"),
        ]
        state.reseed_holdings(positions)
        state.reseed_holdings(positions)

        assert list(state.holdings) == [_ASSET]
        assert state.budget_remaining == Decimal(960)
        assert state.total_spent == Decimal(40)


class TestExitSummary:
    """Test the terminal summary snapshot."""

    def test_summary_with_unpriced_asset(self) -> None:
        """Exclude unpriced holdings from unrealized P&L."""
        state = TradingState(_BUDGET)
        _buy(state, "100", "0.4")
        _buy(state, "10", "0.5", asset=_OTHER_ASSET)
        state.record_event()

        summary = state.snapshot_for_exit_summary({_ASSET: Decimal("0.5")})

        assert summary.unpriced_assets == (_OTHER_ASSET,)
        assert summary.unrealized_pnl == Decimal(10)
        assert summary.total_pnl == Decimal(10)
        assert summary.pnl_percent == Decimal(1)
        assert summary.total_events == 1
        unpriced = next(h for h in summary.holdings if h.asset == _OTHER_ASSET)
        assert unpriced.cur_price is None
        assert unpriced.current_value == ZERO
