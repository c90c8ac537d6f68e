"""Order executors for paper and live copytrading.

``PaperExecutor`` fills every order immediately at its limit price.
``LiveExecutor`` places real GTC limit orders on the Polymarket CLOB and
manages their lifecycle: startup reseed and capital guard, balance guard
before buys, submission with exponential backoff on transient errors,
post-submission fill checks, resting-order polling, and cancellation of
buys on exited markets and at shutdown.  Each order's outcome is
independent; one failure never affects the rest of the batch.
"""

import asyncio
import logging
from collections.abc import Sequence
from decimal import ROUND_DOWN, Decimal
from typing import Protocol, runtime_checkable

import httpx

from polymarket_copytrade.apps.copytrade.exceptions import InsufficientCapitalError
from polymarket_copytrade.apps.copytrade.models import (
    ExecutionResult,
    ExecutionStatus,
    OrderIntent,
    OrderTag,
)
from polymarket_copytrade.apps.copytrade.state import TradingState
from polymarket_copytrade.clients.polymarket.client import PolymarketClient
from polymarket_copytrade.clients.polymarket.exceptions import PolymarketAPIError
from polymarket_copytrade.clients.polymarket.models import (
    OrderRequest,
    OrderResponse,
    OrderStatus,
)
from polymarket_copytrade.core.config import CopytradeConfig
from polymarket_copytrade.core.models import ONE, ZERO, Side

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def truncate_to_cents(value: Decimal) -> Decimal:
    """Truncate a price or share count to two decimal places.

    Args:
        value: Quantity to truncate.

    Returns:
        The value rounded toward zero on the 0.01 grid.

    """
    return value.quantize(_CENT, rounding=ROUND_DOWN)


@runtime_checkable
class OrderExecutor(Protocol):
    """Interface shared by the paper and live executors."""

    async def prepare(self, state: TradingState) -> None:
        """Run startup checks before the first cycle."""
        ...

    async def execute(self, orders: Sequence[OrderIntent]) -> list[ExecutionResult]:
        """Execute orders in sequence and report one result per order."""
        ...

    async def check_resting_orders(self, state: TradingState) -> None:
        """Reconcile tracked resting orders with the venue."""
        ...

    async def cancel_orders(self, state: TradingState, order_ids: Sequence[str]) -> None:
        """Cancel specific resting orders and release their capital."""
        ...

    async def cancel_resting_orders(self, state: TradingState) -> None:
        """Cancel every tracked resting order and release its capital."""
        ...


class PaperExecutor:
    """Simulate execution by filling every order in full at its price."""

    async def prepare(self, state: TradingState) -> None:
        """Nothing to prepare in paper mode."""

    async def execute(self, orders: Sequence[OrderIntent]) -> list[ExecutionResult]:
        """Report every order as filled at its limit price.

        Args:
            orders: Orders from the diff engine.

        Returns:
            One ``FILLED`` result per order.

        """
        return [
            ExecutionResult(
                order_index=index,
                status=ExecutionStatus.FILLED,
                price=order.price,
                filled_shares=order.shares,
            )
            for index, order in enumerate(orders)
        ]

    async def check_resting_orders(self, state: TradingState) -> None:
        """Paper orders never rest."""

    async def cancel_orders(self, state: TradingState, order_ids: Sequence[str]) -> None:
        """Release any tracked reservation for the given orders."""
        for order_id in order_ids:
            state.apply_cancel(order_id)

    async def cancel_resting_orders(self, state: TradingState) -> None:
        """Paper orders never rest."""


class LiveExecutor:
    """Place and manage real GTC limit orders on the Polymarket CLOB.

    Args:
        client: Authenticated Polymarket client.
        config: Run configuration (budget, retry and delay tunables).

    """

    def __init__(self, client: PolymarketClient, config: CopytradeConfig) -> None:
        """Initialize the live executor.

        Args:
            client: Authenticated Polymarket client.
            config: Run configuration.

        """
        self._client = client
        self._config = config

    async def prepare(self, state: TradingState) -> None:
        """Cancel stale orders, reseed holdings, and check starting capital.

        Holdings are reseeded from the funder wallet's positions on the
        venue, which keeps a restarted bot from buying the same shares
        again.

        Args:
            state: The run's trading state.

        Raises:
            InsufficientCapitalError: If USDC balance plus the value of the
                seeded holdings is below the requested budget.
            PolymarketAPIError: If the positions or balance cannot be read.

        """
        try:
            cancelled = await self._client.cancel_all_orders()
            logger.info("Cancelled stale orders: %s", cancelled.get("canceled", []))
        except PolymarketAPIError:
            logger.warning("Failed to cancel stale orders", exc_info=True)

        holdings_value = ZERO
        funder = self._client.funder_address
        if funder:
            positions = await self._client.get_positions(
                funder, page_size=self._config.positions_page_size
            )
            holdings_value = state.reseed_holdings(positions)
        else:
            logger.warning("No funder address configured, starting without reseeded holdings")

        try:
            await self._client.sync_balance()
        except PolymarketAPIError:
            logger.warning("Balance sync failed, using cached balance", exc_info=True)
        balance = await self._client.get_balance("COLLATERAL")
        available = balance.balance + holdings_value
        logger.info(
            "Live capital: $%s USDC + $%s holdings (budget $%s)",
            balance.balance,
            holdings_value,
            self._config.budget,
        )
        if available < self._config.budget:
            msg = (
                f"USDC balance ${balance.balance} plus holdings ${holdings_value} "
                f"is below the requested budget ${self._config.budget}"
            )
            raise InsufficientCapitalError(msg)

    async def execute(self, orders: Sequence[OrderIntent]) -> list[ExecutionResult]:
        """Execute orders in sequence, sells first, with a balance guard for buys.

        Args:
            orders: Orders from the diff engine.

        Returns:
            One result per order, in order.

        """
        results: list[ExecutionResult] = []
        buys_allowed: bool | None = None
        posted_any = False
        for index, order in enumerate(orders):
            if order.side is Side.BUY:
                if buys_allowed is None:
                    buys_allowed = await self._buys_allowed()
                if not buys_allowed:
                    results.append(
                        ExecutionResult(
                            order_index=index,
                            status=ExecutionStatus.SKIPPED,
                            price=order.price,
                            error="insufficient USDC balance",
                        )
                    )
                    continue
            if posted_any and self._config.inter_order_delay_seconds > 0:
                await asyncio.sleep(self._config.inter_order_delay_seconds)
            result = await self._execute_one(index, order)
            posted_any = posted_any or bool(result.order_id)
            results.append(result)
        return results

    async def check_resting_orders(self, state: TradingState) -> None:
        """Poll every tracked resting order and apply what the venue reports.

        A query failure keeps the order tracked for the next cycle.

        Args:
            state: The run's trading state.

        """
        for order_id in list(state.resting_orders):
            try:
                current = await self._client.get_order(order_id)
            except (PolymarketAPIError, httpx.HTTPError):
                logger.warning("Failed to query resting order %s", order_id, exc_info=True)
                continue
            if current is None:
                logger.warning("Resting order %s unknown to the venue, releasing it", order_id)
                state.apply_cancel(order_id)
                continue
            match current.status:
                case OrderStatus.MATCHED:
                    logger.info("Resting order %s filled", order_id)
                    state.apply_resting_fill(order_id, current.filled)
                case OrderStatus.LIVE:
                    state.apply_resting_progress(order_id, current.filled)
                case OrderStatus.DELAYED:
                    logger.debug("Resting order %s delayed", order_id)
                case OrderStatus.CANCELLED | OrderStatus.UNMATCHED:
                    logger.info("Resting order %s %s", order_id, current.status.value)
                    state.apply_cancel(order_id, current.filled)

    async def cancel_orders(self, state: TradingState, order_ids: Sequence[str]) -> None:
        """Cancel specific resting orders during a run.

        When the venue does not confirm the cancel request the orders stay
        tracked with their reservations, and the next cycle asks again.

        Args:
            state: The run's trading state.
            order_ids: Tracked orders to cancel.

        """
        tracked = [order_id for order_id in order_ids if order_id in state.resting_orders]
        if not tracked:
            return
        try:
            async with asyncio.timeout(self._config.request_timeout_seconds):
                await self._client.cancel_orders(tracked)
        except (PolymarketAPIError, httpx.HTTPError, TimeoutError):
            logger.warning(
                "Failed to cancel orders %s, retrying next cycle", tracked, exc_info=True
            )
            return
        logger.info("Cancelled %d resting buys on exited markets", len(tracked))
        await self._settle_cancelled(state, tracked)

    async def cancel_resting_orders(self, state: TradingState) -> None:
        """Cancel every tracked resting order and release its reservation.

        Each network call is bounded by ``request_timeout_seconds`` so
        shutdown completes even when the venue is unresponsive.  Shares
        matched before the cancel are applied when the venue reports them.

        Args:
            state: The run's trading state.

        """
        order_ids = list(state.resting_orders)
        if not order_ids:
            return
        try:
            async with asyncio.timeout(self._config.request_timeout_seconds):
                await self._client.cancel_orders(order_ids)
            logger.info("Cancelled %d resting orders", len(order_ids))
        except (PolymarketAPIError, httpx.HTTPError, TimeoutError):
            logger.warning("Failed to cancel resting orders %s", order_ids, exc_info=True)
        await self._settle_cancelled(state, order_ids)

    async def _settle_cancelled(self, state: TradingState, order_ids: Sequence[str]) -> None:
        """Apply each cancelled order's final match and release its reservation.

        Args:
            state: The run's trading state.
            order_ids: Orders the venue was asked to cancel.

        """
        timeout = self._config.request_timeout_seconds
        for order_id in order_ids:
            size_matched: Decimal | None = None
            try:
                async with asyncio.timeout(timeout):
                    current = await self._client.get_order(order_id)
                if current is not None:
                    size_matched = current.filled
            except (PolymarketAPIError, httpx.HTTPError, TimeoutError):
                logger.warning("Final status of %s unknown", order_id, exc_info=True)
            state.apply_cancel(order_id, size_matched)

    async def _buys_allowed(self) -> bool:
        """Check the USDC balance once before the first buy of a batch.

        Returns:
            ``False`` when the balance is below the minimum buy notional or
            cannot be read.

        """
        try:
            await self._client.sync_balance()
            balance = await self._client.get_balance("COLLATERAL")
        except (PolymarketAPIError, httpx.HTTPError):
            logger.warning("Balance check failed, skipping buys this cycle", exc_info=True)
            return False
        if balance.balance < self._config.min_buy_usd:
            logger.warning(
                "USDC balance $%s below minimum $%s, skipping buys this cycle",
                balance.balance,
                self._config.min_buy_usd,
            )
            return False
        return True

    async def _execute_one(self, index: int, order: OrderIntent) -> ExecutionResult:
        """Execute a single order and classify its outcome.

        Args:
            index: Position of the order in the batch.
            order: Order to execute.

        Returns:
            The order's execution result.

        """
        if order.tag is OrderTag.EXIT and order.price in (ZERO, ONE):
            logger.info(
                "Settling resolved exit of %s shares of %s at %s",
                order.shares,
                order.asset,
                order.price,
            )
            return ExecutionResult(
                order_index=index,
                status=ExecutionStatus.FILLED,
                price=order.price,
                filled_shares=order.shares,
            )

        price = truncate_to_cents(order.price)
        shares = truncate_to_cents(order.shares)
        if shares <= ZERO:
            return ExecutionResult(
                order_index=index,
                status=ExecutionStatus.FAILED,
                price=price,
                error=f"order size {order.shares} rounds to zero shares",
            )
        if not (ZERO < price < ONE):
            return ExecutionResult(
                order_index=index,
                status=ExecutionStatus.FAILED,
                price=price,
                error=f"price {order.price} outside the tradable range",
            )

        request = OrderRequest(
            token_id=order.asset,
            side=order.side.value,
            price=price,
            size=shares,
        )
        try:
            response = await self._submit_with_retry(request)
        except PolymarketAPIError as exc:
            logger.exception("Order %d for %s failed", index, order.asset)
            return ExecutionResult(
                order_index=index,
                status=ExecutionStatus.FAILED,
                price=price,
                error=exc.msg,
            )

        if not response.success:
            logger.warning(
                "Order %d for %s rejected: %s", index, order.asset, response.error_msg
            )
            return ExecutionResult(
                order_index=index,
                status=ExecutionStatus.REJECTED,
                price=price,
                order_id=response.order_id,
                error=response.error_msg,
            )
        if response.status is OrderStatus.MATCHED:
            return ExecutionResult(
                order_index=index,
                status=ExecutionStatus.FILLED,
                price=price,
                order_id=response.order_id,
                filled_shares=shares,
            )

        if self._config.fill_check_delay_seconds > 0:
            await asyncio.sleep(self._config.fill_check_delay_seconds)
        try:
            current = await self._client.get_order(response.order_id)
        except (PolymarketAPIError, httpx.HTTPError):
            logger.warning(
                "Status check for %s failed, tracking it as resting",
                response.order_id,
                exc_info=True,
            )
            current = None
        if current is None:
            return ExecutionResult(
                order_index=index,
                status=ExecutionStatus.RESTING,
                price=price,
                order_id=response.order_id,
                resting_shares=shares,
            )
        return _classify(index, price, shares, response.order_id, current)

    async def _submit_with_retry(self, request: OrderRequest) -> OrderResponse:
        """Submit an order, retrying transient failures with exponential backoff.

        The order is rebuilt and re-signed on every attempt.

        Args:
            request: Order to submit.

        Returns:
            The venue's response to the successful submission.

        Raises:
            PolymarketAPIError: When the error is not transient or every
                attempt failed.

        """
        attempts = self._config.max_retries
        for attempt in range(attempts):
            try:
                return await self._client.place_limit_order(request)
            except PolymarketAPIError as exc:
                if not exc.is_transient or attempt + 1 >= attempts:
                    raise
                delay = self._config.base_backoff_seconds * 2**attempt
                logger.warning(
                    "Transient error posting order (attempt %d/%d): %s, retrying in %.1fs",
                    attempt + 1,
                    attempts,
                    exc.msg,
                    delay,
                )
                await asyncio.sleep(delay)
        msg = "Order submission attempted zero times"
        raise PolymarketAPIError(msg=msg, status_code=0)


def _classify(
    index: int,
    price: Decimal,
    shares: Decimal,
    order_id: str,
    current: OrderResponse,
) -> ExecutionResult:
    """Turn a post-submission status query into an execution result.

    Args:
        index: Position of the order in the batch.
        price: Submitted price.
        shares: Submitted size.
        order_id: Venue order identifier.
        current: Order state reported by the venue.

    Returns:
        The order's execution result.

    """
    filled = min(current.filled, shares)
    match current.status:
        case OrderStatus.MATCHED:
            return ExecutionResult(
                order_index=index,
                status=ExecutionStatus.FILLED,
                price=price,
                order_id=order_id,
                filled_shares=shares,
            )
        case OrderStatus.LIVE | OrderStatus.DELAYED:
            if current.status is OrderStatus.LIVE and filled > ZERO:
                return ExecutionResult(
                    order_index=index,
                    status=ExecutionStatus.PARTIALLY_FILLED,
                    price=price,
                    order_id=order_id,
                    filled_shares=filled,
                    resting_shares=shares - filled,
                )
            return ExecutionResult(
                order_index=index,
                status=ExecutionStatus.RESTING,
                price=price,
                order_id=order_id,
                resting_shares=shares,
            )
        case OrderStatus.CANCELLED | OrderStatus.UNMATCHED:
            if filled > ZERO:
                return ExecutionResult(
                    order_index=index,
                    status=ExecutionStatus.PARTIALLY_FILLED,
                    price=price,
                    order_id=order_id,
                    filled_shares=filled,
                )
            return ExecutionResult(
                order_index=index,
                status=ExecutionStatus.FAILED,
                price=price,
                order_id=order_id,
                error=f"order {current.status.value} without a fill",
            )
