"""Reconciliation loop driving the copytrade bot.

``CopytradeEngine`` owns the run's ``TradingState`` and drives every cycle
sequentially: it replicates the trader's portfolio once at startup, then
polls the trader's recent trades and rebalances whenever an unseen trade
appears.  A SIGINT or SIGTERM sets a single stop event; the loop finishes
the current cycle, cancels resting orders, resolves final prices, and
emits the exit summary exactly once.
"""

import asyncio
import logging
import signal
from collections.abc import Sequence
from datetime import UTC, datetime
from decimal import Decimal

import httpx

from polymarket_copytrade.apps.copytrade.engine import (
    compute_orders,
    compute_target_state,
    compute_weights,
)
from polymarket_copytrade.apps.copytrade.executor import OrderExecutor
from polymarket_copytrade.apps.copytrade.models import (
    CopytradeEvent,
    EventTrigger,
    ExitSummary,
)
from polymarket_copytrade.apps.copytrade.price_resolver import PriceResolver, build_price_map
from polymarket_copytrade.apps.copytrade.reporter import report_event, report_exit_summary
from polymarket_copytrade.apps.copytrade.state import TradingState
from polymarket_copytrade.clients.polymarket.client import PolymarketClient
from polymarket_copytrade.clients.polymarket.exceptions import PolymarketAPIError
from polymarket_copytrade.clients.polymarket.models import MarketPosition
from polymarket_copytrade.core.config import CopytradeConfig

logger = logging.getLogger(__name__)

_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CopytradeEngine:
    """Poll a trader's activity and keep the bot's portfolio in step with it.

    Args:
        client: Polymarket client for positions, trades, and prices.
        config: Run configuration.
        executor: Paper or live order executor.
        state: Trading state to use; a fresh one is created by default.
        resolver: Price resolver to use; built from ``client`` by default.

    """

    def __init__(
        self,
        client: PolymarketClient,
        config: CopytradeConfig,
        executor: OrderExecutor,
        *,
        state: TradingState | None = None,
        resolver: PriceResolver | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            client: Polymarket client for positions, trades, and prices.
            config: Run configuration.
            executor: Paper or live order executor.
            state: Trading state to use.
            resolver: Price resolver to use.

        """
        self._client = client
        self._config = config
        self._executor = executor
        self._state = state or TradingState(
            config.budget, seen_capacity=config.seen_trades_capacity
        )
        self._resolver = resolver or PriceResolver(client)
        self._mode = "live" if config.live else "dry-run"
        self._stop_event = asyncio.Event()
        self._pending: tuple[EventTrigger, tuple[str, ...]] | None = None
        self._signals_installed: list[signal.Signals] = []

    @property
    def state(self) -> TradingState:
        """Return the run's trading state."""
        return self._state

    def stop(self) -> None:
        """Request a graceful shutdown after the current cycle."""
        self._stop_event.set()

    async def run(self, *, max_cycles: int | None = None) -> ExitSummary:
        """Run the startup sequence, the polling loop, and the shutdown sequence.

        Args:
            max_cycles: Stop after this many polling cycles (``None`` runs
                until a stop signal).

        Returns:
            The exit summary, which has also been written to stdout.

        Raises:
            InsufficientCapitalError: If the live startup capital guard fails.
            PolymarketAPIError: If live startup cannot read the venue state.

        """
        await self._executor.prepare(self._state)
        self._install_signal_handlers()
        try:
            self._pending = (EventTrigger.INITIAL_REPLICATION, ())
            await self._run_pending_rebalance()
            await self._seed_seen_trades()
            cycles = 0
            while not self._stop_event.is_set():
                if max_cycles is not None and cycles >= max_cycles:
                    break
                if await self._wait_for_next_tick():
                    break
                await self._run_cycle()
                cycles += 1
        finally:
            self._remove_signal_handlers()
            summary = await self._shutdown()
        return summary

    async def _run_cycle(self) -> None:
        """Reconcile resting orders, detect new trades, and rebalance if needed."""
        try:
            await self._executor.check_resting_orders(self._state)
            trades = await self._client.get_trades(
                self._config.trader_address, limit=self._config.trades_page_size
            )
        except (PolymarketAPIError, httpx.HTTPError):
            logger.warning("Polling cycle failed", exc_info=True)
            return

        new_hashes = tuple(
            t.transaction_hash
            for t in trades
            if t.transaction_hash and self._state.record_trade_seen(t.transaction_hash)
        )
        if new_hashes:
            logger.info("Detected %d new trader trades", len(new_hashes))
            earlier = self._pending[1] if self._pending is not None else ()
            self._pending = (EventTrigger.TRADE_DETECTED, earlier + new_hashes)
        await self._run_pending_rebalance()

    async def _run_pending_rebalance(self) -> None:
        """Rebalance for the pending trigger; keep it pending if the cycle fails."""
        if self._pending is None:
            return
        trigger, hashes = self._pending
        try:
            await self._rebalance(trigger, hashes)
        except (PolymarketAPIError, httpx.HTTPError):
            logger.warning("Rebalance failed, retrying next cycle", exc_info=True)
            return
        self._pending = None

    async def _rebalance(self, trigger: EventTrigger, hashes: tuple[str, ...]) -> None:
        """Run one full reconciliation and emit its event.

        Args:
            trigger: Why the cycle rebalances.
            hashes: Newly detected trader transaction hashes.

        """
        positions = await self._client.get_positions(
            self._config.trader_address, page_size=self._config.positions_page_size
        )
        running_budget = self._state.effective_capital(build_price_map(positions))
        weights = compute_weights(positions)
        targets = compute_target_state(
            weights, running_budget, self._config.copy_pct, self._config.max_trade_pct
        )
        logger.info(
            "Rebalancing (%s): %d active positions, running budget $%s",
            trigger.value,
            len(weights),
            running_budget,
        )

        target_assets = {t.asset for t in targets}
        exit_assets = [
            asset
            for asset in self._state.holdings
            if asset not in target_assets and self._state.exit_shares(asset) > 0
        ]
        exit_prices = await self._resolve_exit_prices(exit_assets, positions)

        plan = compute_orders(targets, self._state, exit_prices, self._config.min_buy_usd)
        cancelled: tuple[str, ...] = ()
        if plan.cancels:
            await self._executor.cancel_orders(self._state, plan.cancels)
            cancelled = tuple(i for i in plan.cancels if i not in self._state.resting_orders)
        results = await self._executor.execute(plan.orders)
        if self._config.live:
            self._state.apply_execution_results(plan.orders, results)
        else:
            self._state.apply_orders(plan.orders)
        self._state.record_event()

        report_event(
            CopytradeEvent(
                timestamp=datetime.now(tz=UTC).isoformat(),
                mode=self._mode,
                trigger=trigger,
                detected_trades=hashes,
                targets=tuple(targets),
                orders=plan.orders,
                skipped=plan.skipped,
                results=tuple(results) if self._config.live else (),
                budget_remaining=self._state.budget_remaining,
                total_spent=self._state.total_spent,
                realized_pnl=self._state.realized_pnl,
                resting_orders=len(self._state.resting_orders),
                cancelled_orders=cancelled,
            )
        )

    async def _resolve_exit_prices(
        self,
        assets: Sequence[str],
        snapshot: Sequence[MarketPosition],
    ) -> dict[str, Decimal]:
        """Price the assets being exited; a lookup failure defers those exits.

        Args:
            assets: Assets held but no longer targeted.
            snapshot: The trader's current position snapshot.

        Returns:
            Prices for the assets that could be resolved.

        """
        if not assets:
            return {}
        try:
            resolution = await self._resolver.resolve(assets, snapshot)
        except (PolymarketAPIError, httpx.HTTPError):
            logger.warning("Exit price lookup failed for %s", list(assets), exc_info=True)
            return {}
        return resolution.prices

    async def _seed_seen_trades(self) -> None:
        """Mark the trader's recent trades as seen so they do not trigger a rebalance."""
        try:
            trades = await self._client.get_trades(
                self._config.trader_address, limit=self._config.trades_page_size
            )
        except (PolymarketAPIError, httpx.HTTPError):
            logger.warning("Failed to seed recent trades", exc_info=True)
            return
        for trade in trades:
            if trade.transaction_hash:
                self._state.record_trade_seen(trade.transaction_hash)
        logger.info("Seeded %d recent trades", self._state.seen_trade_count)

    async def _wait_for_next_tick(self) -> bool:
        """Sleep one poll interval or until a stop is requested.

        Returns:
            ``True`` if a stop was requested.

        """
        try:
            await asyncio.wait_for(
                self._stop_event.wait(), timeout=self._config.poll_interval_seconds
            )
        except TimeoutError:
            return False
        return True

    async def _shutdown(self) -> ExitSummary:
        """Cancel resting orders, resolve final prices, and emit the summary."""
        logger.info("Shutting down copytrade engine")
        try:
            await self._executor.cancel_resting_orders(self._state)
        except (PolymarketAPIError, httpx.HTTPError):
            logger.warning("Failed to cancel resting orders on shutdown", exc_info=True)
        prices = await self._final_prices()
        summary = self._state.snapshot_for_exit_summary(prices)
        report_exit_summary(summary)
        return summary

    async def _final_prices(self) -> dict[str, Decimal]:
        """Resolve prices for every holding with a bounded timeout per call.

        When the trader's positions cannot be fetched, every holding is
        priced from Gamma rather than from an earlier snapshot; holdings
        neither source prices are reported as unpriced.
        """
        assets = list(self._state.holdings)
        if not assets:
            return {}
        timeout = self._config.request_timeout_seconds
        snapshot: list[MarketPosition] = []
        try:
            async with asyncio.timeout(timeout):
                snapshot = await self._client.get_positions(
                    self._config.trader_address, page_size=self._config.positions_page_size
                )
        except (PolymarketAPIError, httpx.HTTPError, TimeoutError):
            logger.warning(
                "Final position fetch failed, pricing holdings from Gamma", exc_info=True
            )
        try:
            async with asyncio.timeout(timeout):
                resolution = await self._resolver.resolve(assets, snapshot)
        except (PolymarketAPIError, httpx.HTTPError, TimeoutError):
            logger.warning("Final price lookup failed", exc_info=True)
            fresh_prices = build_price_map(snapshot)
            return {a: fresh_prices[a] for a in assets if a in fresh_prices}
        return resolution.prices

    def _install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to the stop event."""
        loop = asyncio.get_running_loop()
        for sig in _STOP_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.debug("Cannot install handler for %s", sig.name)
                continue
            self._signals_installed.append(sig)

    def _remove_signal_handlers(self) -> None:
        """Restore default signal handling."""
        loop = asyncio.get_running_loop()
        for sig in self._signals_installed:
            loop.remove_signal_handler(sig)
        self._signals_installed = []
