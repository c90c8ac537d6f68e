"""Tests for the CopytradeEngine reconciliation loop."""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from polymarket_copytrade.apps.copytrade.executor import LiveExecutor, PaperExecutor
from polymarket_copytrade.apps.copytrade.loop import CopytradeEngine
from polymarket_copytrade.clients.polymarket.exceptions import PolymarketAPIError
from polymarket_copytrade.clients.polymarket.models import (
    Balance,
    MarketPosition,
    OrderResponse,
    OrderStatus,
    TraderTrade,
)
from polymarket_copytrade.core.config import CopytradeConfig
from polymarket_copytrade.core.models import ONE, ZERO

_TRADER = "0xtrader"
_ASSET_A = "token_a"
_ASSET_B = "token_b"
_BUDGET = Decimal(1000)
_ORDER_ID = "order_1"


def _make_config(*, live: bool = False) -> CopytradeConfig:
    """Create a config that polls quickly with no order delays.

    Args:
        live: Build a live-mode config.

    Returns:
        CopytradeConfig for testing.

    """
    return CopytradeConfig(
        trader_address=_TRADER,
        budget=_BUDGET,
        copy_pct=Decimal("0.5"),
        max_trade_pct=Decimal("0.3"),
        live=live,
        poll_interval_seconds=0.01,
        request_timeout_seconds=1.0,
        fill_check_delay_seconds=0.0,
        inter_order_delay_seconds=0.0,
    )


def _position(asset: str, current_value: str, cur_price: str = "0.5") -> MarketPosition:
    """Create a trader position."""
    price = Decimal(cur_price)
    value = Decimal(current_value)
    return MarketPosition(
        asset=asset,
        condition_id=f"cond_{asset}",
        title=f"Market {asset}",
        outcome="Yes",
        outcome_index=0,
        size=value / price,
        avg_price=price,
        cur_price=price,
        current_value=value,
        initial_value=value,
        cash_pnl=ZERO,
        percent_pnl=ZERO,
        realized_pnl=ZERO,
        redeemable=False,
        mergeable=False,
        event_slug="event",
    )


def _trade(tx_hash: str) -> TraderTrade:
    """Create a trader trade with the given transaction hash."""
    return TraderTrade(
        transaction_hash=tx_hash,
        asset=_ASSET_A,
        side="BUY",
        size=Decimal(10),
        price=Decimal("0.5"),
        timestamp=1700000000,
        title="Market",
        outcome="Yes",
    )


def _mock_client(
    positions: list[MarketPosition] | None = None,
    trades: list[TraderTrade] | None = None,
) -> MagicMock:
    """Create a mock client serving fixed positions and trades.

    Args:
        positions: Trader positions returned by every fetch.
        trades: Trader trades returned by every poll.

    Returns:
        MagicMock standing in for PolymarketClient.

    """
    client = MagicMock()
    client.get_positions = AsyncMock(return_value=positions or [])
    client.get_trades = AsyncMock(return_value=trades or [])
    client.get_token_prices = AsyncMock(return_value={})
    return client


def _order(status: OrderStatus, filled: str = "0") -> OrderResponse:
    """Create the venue's view of the bot's 600-share buy at 0.50."""
    return OrderResponse(
        order_id=_ORDER_ID,
        status=status,
        token_id=_ASSET_A,
        side="BUY",
        price=Decimal("0.50"),
        size=Decimal(600),
        filled=Decimal(filled),
    )


def _live_client(
    positions: list[MarketPosition] | None = None,
    trades: list[TraderTrade] | None = None,
) -> MagicMock:
    """Create a mock client whose buy orders rest on the book.

    Args:
        positions: Trader positions returned by every fetch.
        trades: Trader trades returned by every poll.

    Returns:
        MagicMock with the venue methods the live executor uses.

    """
    client = _mock_client(positions, trades)
    client.funder_address = None
    client.cancel_all_orders = AsyncMock(return_value={"canceled": []})
    client.sync_balance = AsyncMock()
    client.get_balance = AsyncMock(
        return_value=Balance(asset_type="COLLATERAL", balance=_BUDGET, allowance=_BUDGET)
    )
    client.place_limit_order = AsyncMock(return_value=_order(OrderStatus.LIVE))
    client.get_order = AsyncMock(return_value=None)
    client.cancel_orders = AsyncMock(return_value={"canceled": [_ORDER_ID], "not_canceled": {}})
    return client


def _event_lines(output: str) -> list[dict[str, object]]:
    """Parse the single-line JSON events from captured stdout."""
    return [json.loads(line) for line in output.splitlines() if line.startswith('{"timestamp"')]


class TestInitialReplication:
    """Test the startup rebalance."""

    @pytest.mark.asyncio
    async def test_replicates_portfolio_in_dry_run(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Buy every target on startup and emit one event."""
        client = _mock_client([_position(_ASSET_A, "600"), _position(_ASSET_B, "400")])
        engine = CopytradeEngine(client, _make_config(), PaperExecutor())

        summary = await engine.run(max_cycles=0)

        state = engine.state
        assert state.holdings[_ASSET_A].shares == Decimal(600)
        assert state.holdings[_ASSET_B].shares == Decimal(400)
        assert state.budget_remaining == Decimal(500)
        assert summary.total_events == 1
        assert summary.total_buy_orders == 2  # noqa: PLR2004

        (event,) = _event_lines(capsys.readouterr().out)
        assert event["trigger"] == "initial_replication"
        assert event["mode"] == "dry-run"
        assert event["results"] == []

    @pytest.mark.asyncio
    async def test_failed_startup_rebalance_retried(self) -> None:
        """Keep the initial replication pending until it succeeds."""
        client = _mock_client()
        client.get_positions.side_effect = [
            PolymarketAPIError(msg="unavailable", status_code=503),
            [_position(_ASSET_A, "100")],
            [_position(_ASSET_A, "100")],
        ]
        engine = CopytradeEngine(client, _make_config(), PaperExecutor())

        summary = await engine.run(max_cycles=1)

        assert summary.total_events == 1
        assert _ASSET_A in engine.state.holdings


class TestTradeDetection:
    """Test the polling loop's deduplication gate."""

    @pytest.mark.asyncio
    async def test_seen_trades_do_not_rebalance(self) -> None:
        """Ignore trades that were already present at startup."""
        client = _mock_client([_position(_ASSET_A, "100")], [_trade("0x1"), _trade("0x2")])
        engine = CopytradeEngine(client, _make_config(), PaperExecutor())

        summary = await engine.run(max_cycles=3)

        assert summary.total_events == 1
        # startup rebalance plus the final pricing fetch
        assert client.get_positions.await_count == 2  # noqa: PLR2004

    @pytest.mark.asyncio
    async def test_new_trade_triggers_rebalance(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Rebalance once when an unseen trade appears."""
        client = _mock_client([_position(_ASSET_A, "100")])
        client.get_trades.side_effect = [
            [_trade("0x1")],
            [_trade("0x2"), _trade("0x1")],
            [_trade("0x2"), _trade("0x1")],
        ]
        engine = CopytradeEngine(client, _make_config(), PaperExecutor())

        summary = await engine.run(max_cycles=2)

        assert summary.total_events == 2  # noqa: PLR2004
        events = _event_lines(capsys.readouterr().out)
        assert events[1]["trigger"] == "trade_detected"
        assert events[1]["detected_trades"] == ["0x2"]

    @pytest.mark.asyncio
    async def test_trader_exit_sells_position(self) -> None:
        """Exit a holding at its resolved price once the trader drops it."""
        client = _mock_client()
        client.get_positions.side_effect = [[_position(_ASSET_A, "100")], []]
        client.get_trades.side_effect = [[], [_trade("0x9")]]
        client.get_token_prices.return_value = {_ASSET_A: ONE}
        engine = CopytradeEngine(client, _make_config(), PaperExecutor())

        summary = await engine.run(max_cycles=1)

        assert engine.state.holdings == {}
        client.get_token_prices.assert_awaited_once_with([_ASSET_A])
        assert summary.total_sell_orders == 1
        assert summary.realized_pnl == Decimal(300)

    @pytest.mark.asyncio
    async def test_poll_failure_is_tolerated(self) -> None:
        """Skip a cycle whose trade poll fails."""
        client = _mock_client([_position(_ASSET_A, "100")])
        client.get_trades.side_effect = [
            [],
            PolymarketAPIError(msg="HTTP connection failed: reset", status_code=0),
        ]
        engine = CopytradeEngine(client, _make_config(), PaperExecutor())

        summary = await engine.run(max_cycles=1)

        assert summary.total_events == 1


class TestShutdown:
    """Test the shutdown sequence."""

    @pytest.mark.asyncio
    async def test_stop_ends_run_with_one_summary(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Emit the exit summary exactly once after a stop request."""
        client = _mock_client([_position(_ASSET_A, "100")])
        engine = CopytradeEngine(client, _make_config(), PaperExecutor())
        engine.stop()

        summary = await engine.run()

        out = capsys.readouterr().out
        assert out.count('"initial_budget"') == 1
        assert summary.initial_budget == _BUDGET
        assert summary.unpriced_assets == ()

    @pytest.mark.asyncio
    async def test_final_fetch_failure_prices_from_gamma(self) -> None:
        """Price holdings from Gamma, not the old snapshot, when the final fetch fails."""
        client = _mock_client()
        client.get_positions.side_effect = [
            [_position(_ASSET_A, "100")],
            PolymarketAPIError(msg="unavailable", status_code=503),
        ]
        client.get_token_prices.return_value = {_ASSET_A: Decimal("0.62")}
        engine = CopytradeEngine(client, _make_config(), PaperExecutor())
        engine.stop()

        summary = await engine.run()

        client.get_token_prices.assert_awaited_once_with([_ASSET_A])
        assert summary.unpriced_assets == ()
        assert summary.holdings[0].cur_price == Decimal("0.62")

    @pytest.mark.asyncio
    async def test_final_fetch_failure_never_uses_stale_snapshot(self) -> None:
        """Report a holding as unpriced rather than reuse the startup price."""
        client = _mock_client()
        client.get_positions.side_effect = [
            [_position(_ASSET_A, "100")],
            PolymarketAPIError(msg="unavailable", status_code=503),
        ]
        engine = CopytradeEngine(client, _make_config(), PaperExecutor())
        engine.stop()

        summary = await engine.run()

        assert summary.unpriced_assets == (_ASSET_A,)
        assert summary.holdings[0].cur_price is None
        assert summary.unrealized_pnl == ZERO

    @pytest.mark.asyncio
    async def test_missing_price_excluded_from_pnl(self) -> None:
        """Exclude a holding neither price source knows."""
        client = _mock_client()
        client.get_positions.side_effect = [[_position(_ASSET_A, "100")], []]
        engine = CopytradeEngine(client, _make_config(), PaperExecutor())
        engine.stop()

        summary = await engine.run()

        assert summary.unpriced_assets == (_ASSET_A,)
        assert summary.unrealized_pnl == ZERO

    @pytest.mark.asyncio
    async def test_prepare_failure_propagates(self) -> None:
        """Abort before trading when the executor's startup checks fail."""
        executor = MagicMock()
        executor.prepare = AsyncMock(side_effect=PolymarketAPIError(msg="boom", status_code=500))
        engine = CopytradeEngine(_mock_client(), _make_config(), executor)

        with pytest.raises(PolymarketAPIError):
            await engine.run(max_cycles=0)


class TestLiveMode:
    """Test the loop driving the live executor against a mocked venue."""

    @pytest.mark.asyncio
    async def test_resting_buy_tracked_then_cancelled_on_shutdown(self) -> None:
        """Reserve a resting buy, accrue its partial fill, and release the rest on exit."""
        client = _live_client([_position(_ASSET_A, "100")])
        client.get_order.side_effect = [
            _order(OrderStatus.LIVE),
            _order(OrderStatus.LIVE, filled="100"),
            _order(OrderStatus.CANCELLED, filled="100"),
        ]
        config = _make_config(live=True)
        engine = CopytradeEngine(client, config, LiveExecutor(client, config))

        summary = await engine.run(max_cycles=1)

        client.place_limit_order.assert_awaited_once()
        client.cancel_orders.assert_awaited_once_with([_ORDER_ID])
        assert engine.state.resting_orders == {}
        # $300 reserved, $50 filled during the cycle, $250 released at shutdown
        assert summary.budget_remaining == Decimal(950)
        assert summary.total_spent == Decimal(50)
        assert summary.holdings[0].shares == Decimal(100)
        assert summary.total_buy_orders == 1

    @pytest.mark.asyncio
    async def test_reservation_held_while_order_rests(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Report the reservation and the resting order in the startup event."""
        client = _live_client([_position(_ASSET_A, "100")])
        client.get_order.side_effect = [
            _order(OrderStatus.LIVE),
            _order(OrderStatus.CANCELLED),
        ]
        config = _make_config(live=True)
        engine = CopytradeEngine(client, config, LiveExecutor(client, config))
        engine.stop()

        summary = await engine.run()

        (event,) = _event_lines(capsys.readouterr().out)
        assert event["mode"] == "live"
        assert Decimal(str(event["budget_remaining"])) == Decimal(700)
        assert event["resting_orders"] == 1
        assert event["results"][0]["status"] == "resting"  # type: ignore[index]
        assert summary.budget_remaining == _BUDGET
        assert summary.holdings == ()

    @pytest.mark.asyncio
    async def test_trader_exit_cancels_resting_buy(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Cancel an unfilled buy when the trader exits, without selling anything."""
        client = _live_client()
        client.get_positions.side_effect = [[_position(_ASSET_A, "100")], []]
        client.get_trades.side_effect = [[], [_trade("0x9")]]
        client.get_order.side_effect = [
            _order(OrderStatus.LIVE),
            _order(OrderStatus.LIVE),
            _order(OrderStatus.CANCELLED),
        ]
        config = _make_config(live=True)
        engine = CopytradeEngine(client, config, LiveExecutor(client, config))

        summary = await engine.run(max_cycles=1)

        client.place_limit_order.assert_awaited_once()
        client.cancel_orders.assert_awaited_once_with([_ORDER_ID])
        assert engine.state.resting_orders == {}
        assert summary.budget_remaining == _BUDGET
        assert summary.total_sell_orders == 0
        events = _event_lines(capsys.readouterr().out)
        assert events[1]["cancelled_orders"] == [_ORDER_ID]
        assert events[1]["orders"] == []
