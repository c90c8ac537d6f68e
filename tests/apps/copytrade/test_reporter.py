"""Tests for structured stdout reporting."""

import json
from decimal import Decimal

import pytest

from polymarket_copytrade.apps.copytrade.models import (
    CopytradeEvent,
    EventTrigger,
    ExecutionResult,
    ExecutionStatus,
    ExitSummary,
    OrderIntent,
    SkippedOrder,
)
from polymarket_copytrade.apps.copytrade.reporter import (
    event_to_dict,
    report_event,
    report_exit_summary,
    summary_to_dict,
)
from polymarket_copytrade.core.models import ZERO, Side


def _make_event() -> CopytradeEvent:
    """Create an event with one order, one skip, and one result."""
    order = OrderIntent(
        asset="token_a",
        title="Market A",
        outcome="Yes",
        side=Side.BUY,
        price=Decimal("0.55"),
        shares=Decimal(10),
        cost_usd=Decimal("5.50"),
    )
    return CopytradeEvent(
        timestamp="2026-01-01T00:00:00+00:00",
        mode="live",
        trigger=EventTrigger.TRADE_DETECTED,
        detected_trades=("0xabc",),
        targets=(),
        orders=(order,),
        skipped=(SkippedOrder(intent=order, reason="below minimum notional"),),
        results=(
            ExecutionResult(
                order_index=0,
                status=ExecutionStatus.FILLED,
                price=Decimal("0.55"),
                order_id="o1",
                filled_shares=Decimal(10),
            ),
        ),
        budget_remaining=Decimal("94.50"),
        total_spent=Decimal("5.50"),
        realized_pnl=ZERO,
        resting_orders=0,
    )


def _make_summary() -> ExitSummary:
    """Create an exit summary with no holdings."""
    return ExitSummary(
        initial_budget=Decimal(100),
        budget_remaining=Decimal(100),
        total_spent=ZERO,
        total_sell_proceeds=ZERO,
        realized_pnl=ZERO,
        unrealized_pnl=ZERO,
        total_pnl=ZERO,
        pnl_percent=ZERO,
        total_events=1,
        total_orders=0,
        total_buy_orders=0,
        total_sell_orders=0,
        unpriced_assets=("token_x",),
    )


class TestSerialisation:
    """Test conversion of records into JSON types."""

    def test_event_decimals_and_enums(self) -> None:
        """Serialise Decimals as strings and enums as their values."""
        data = event_to_dict(_make_event())

        assert data["trigger"] == "trade_detected"
        assert data["budget_remaining"] == "94.50"
        assert data["orders"][0]["side"] == "BUY"
        assert data["orders"][0]["tag"] == "rebalance"
        assert data["skipped"][0]["intent"]["asset"] == "token_a"
        assert data["results"][0]["status"] == "filled"
        assert data["detected_trades"] == ["0xabc"]

    def test_summary_fields(self) -> None:
        """Serialise the summary including unpriced assets."""
        data = summary_to_dict(_make_summary())

        assert data["initial_budget"] == "100"
        assert data["holdings"] == []
        assert data["unpriced_assets"] == ["token_x"]


class TestReporting:
    """Test writing records to stdout."""

    def test_event_is_one_json_line(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Write each event as a single parseable line."""
        report_event(_make_event())

        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["mode"] == "live"

    def test_summary_is_indented_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Write the summary as one indented JSON document."""
        report_exit_summary(_make_summary())

        out = capsys.readouterr().out
        assert out.startswith("{\n")
        assert json.loads(out)["total_events"] == 1
