"""Pure reconciliation functions: weights, targets, and the order diff.

Each cycle flows through three steps.  ``compute_weights`` normalises the
trader's active positions into portfolio weights, ``compute_target_state``
turns the weights into per-market USD and share targets scaled by the
running budget, and ``compute_orders`` diffs the targets against the bot's
effective holdings to produce an ordered plan of sells then buys.

None of these functions mutate ``TradingState`` or perform I/O.
"""

import logging
from collections.abc import Mapping, Sequence
from decimal import Decimal

from polymarket_copytrade.apps.copytrade.models import (
    OrderIntent,
    OrderPlan,
    OrderTag,
    SkippedOrder,
    TargetAllocation,
)
from polymarket_copytrade.apps.copytrade.state import TradingState
from polymarket_copytrade.clients.polymarket.models import MarketPosition
from polymarket_copytrade.core.models import ONE, ZERO, Side

logger = logging.getLogger(__name__)

DEFAULT_MIN_BUY_USD = Decimal("1.00")

REASON_REBALANCE = "rebalance"
REASON_RESOLVED = "resolved"
REASON_TRADER_EXITED = "trader exited"

SKIP_BELOW_MINIMUM = "below minimum notional"
SKIP_BUDGET_EXHAUSTED = "budget exhausted"
SKIP_NO_EXIT_PRICE = "no exit price"


def is_active(position: MarketPosition) -> bool:
    """Return whether a position should carry portfolio weight.

    Resolved-but-unredeemed shares (price 0 or 1) and exited positions with
    no value would otherwise pull weight toward dead capital.

    Args:
        position: Trader position from the Data API.

    Returns:
        ``True`` when the position has value and an open-market price.

    """
    return position.current_value > ZERO and ZERO < position.cur_price < ONE


def compute_weights(
    positions: Sequence[MarketPosition],
) -> list[tuple[MarketPosition, Decimal]]:
    """Normalise active positions into portfolio weights.

    Args:
        positions: The trader's full position snapshot.

    Returns:
        ``(position, weight)`` pairs for active positions, in snapshot
        order.  Weights sum to one; the list is empty when nothing is active.

    """
    active = [p for p in positions if is_active(p)]
    total_value = sum((p.current_value for p in active), ZERO)
    if total_value <= ZERO:
        return []
    return [(p, p.current_value / total_value) for p in active]


def compute_target_state(
    weights: Sequence[tuple[MarketPosition, Decimal]],
    running_budget: Decimal,
    copy_pct: Decimal,
    max_trade_pct: Decimal,
) -> list[TargetAllocation]:
    """Convert weights into per-market targets.

    The proportional target is ``weight * running_budget * copy_pct`` and is
    capped at ``max_trade_pct * running_budget``, so both scale together
    with the bot's P&L.

    Args:
        weights: Output of ``compute_weights``.
        running_budget: Cash plus mark-to-market holdings.
        copy_pct: Fraction of the running budget used for mirroring (0-1).
        max_trade_pct: Per-market ceiling as a fraction of the running budget.

    Returns:
        One ``TargetAllocation`` per weighted position.

    """
    cap = max_trade_pct * running_budget
    targets: list[TargetAllocation] = []
    for position, weight in weights:
        raw_target = weight * running_budget * copy_pct
        target_usd = min(raw_target, cap)
        price = position.cur_price
        target_shares = target_usd / price if price > ZERO else ZERO
        targets.append(
            TargetAllocation(
                asset=position.asset,
                title=position.title,
                outcome=position.outcome,
                weight=weight,
                target_usd=target_usd,
                target_shares=target_shares,
                cur_price=price,
            )
        )
    return targets


def compute_orders(
    targets: Sequence[TargetAllocation],
    state: TradingState,
    exit_prices: Mapping[str, Decimal],
    min_buy_usd: Decimal = DEFAULT_MIN_BUY_USD,
) -> OrderPlan:
    """Diff targets against effective holdings and plan the cycle's orders.

    Assets held but no longer targeted are exited in full, and resting buys
    on untargeted assets are marked for cancellation.  Targeted assets are
    sold down or bought up to their target share count.  Sell proceeds
    extend the budget available to the same cycle's buys, and a buy larger
    than the available budget is shrunk to fit.  Non-exit buys below
    ``min_buy_usd`` are skipped; sells have no minimum.

    Args:
        targets: Allocation for the cycle.
        state: The bot's trading state (read only).
        exit_prices: Resolved prices for assets that may need an exit.
        min_buy_usd: Minimum notional for a buy order.

    Returns:
        Plan with sells listed before buys, the skipped orders, and the
        resting buys to cancel.

    """
    targeted = {t.asset: t for t in targets}
    exits: list[OrderIntent] = []
    sells: list[OrderIntent] = []
    wanted_buys: list[OrderIntent] = []
    skipped: list[SkippedOrder] = []

    cancels = tuple(
        order.order_id
        for order in state.resting_orders.values()
        if order.side is Side.BUY and order.asset not in targeted
    )

    for asset, held in state.holdings.items():
        if asset in targeted:
            continue
        shares = state.exit_shares(asset)
        if shares <= ZERO:
            continue
        title = held.title
        outcome = held.outcome
        price = exit_prices.get(asset)
        if price is None:
            logger.warning("No exit price for %s (%s), retrying next cycle", asset, title)
            intent = OrderIntent(
                asset=asset,
                title=title,
                outcome=outcome,
                side=Side.SELL,
                price=ZERO,
                shares=shares,
                cost_usd=ZERO,
                tag=OrderTag.EXIT,
                reason=REASON_TRADER_EXITED,
            )
            skipped.append(SkippedOrder(intent=intent, reason=SKIP_NO_EXIT_PRICE))
            continue
        reason = REASON_RESOLVED if price in (ZERO, ONE) else REASON_TRADER_EXITED
        exits.append(
            OrderIntent(
                asset=asset,
                title=title,
                outcome=outcome,
                side=Side.SELL,
                price=price,
                shares=shares,
                cost_usd=price * shares,
                tag=OrderTag.EXIT,
                reason=reason,
            )
        )

    for target in targets:
        delta = target.target_shares - state.effective_held_shares(target.asset)
        if delta == ZERO:
            continue
        side = Side.SELL if delta < ZERO else Side.BUY
        shares = abs(delta)
        intent = OrderIntent(
            asset=target.asset,
            title=target.title,
            outcome=target.outcome,
            side=side,
            price=target.cur_price,
            shares=shares,
            cost_usd=target.cur_price * shares,
        )
        if side is Side.SELL:
            sells.append(intent)
        else:
            wanted_buys.append(intent)

    available = state.budget_remaining + sum((o.cost_usd for o in exits + sells), ZERO)
    buys: list[OrderIntent] = []
    for intent in wanted_buys:
        sized = _fit_to_budget(intent, available)
        if sized is None:
            skipped.append(SkippedOrder(intent=intent, reason=SKIP_BUDGET_EXHAUSTED))
            continue
        if sized.cost_usd < min_buy_usd:
            skipped.append(SkippedOrder(intent=sized, reason=SKIP_BELOW_MINIMUM))
            continue
        buys.append(sized)
        available -= sized.cost_usd

    return OrderPlan(
        orders=tuple(exits + sells + buys), skipped=tuple(skipped), cancels=cancels
    )


def _fit_to_budget(intent: OrderIntent, available: Decimal) -> OrderIntent | None:
    """Shrink a buy so its notional does not exceed the available budget.

    Args:
        intent: Buy order at its desired size.
        available: USD available for buys at this point in the plan.

    Returns:
        The original intent when it fits, a smaller copy when it does not,
        or ``None`` when nothing is available.

    """
    if intent.cost_usd <= available:
        return intent
    if available <= ZERO or intent.price <= ZERO:
        return None
    shares = available / intent.price
    return OrderIntent(
        asset=intent.asset,
        title=intent.title,
        outcome=intent.outcome,
        side=intent.side,
        price=intent.price,
        shares=shares,
        cost_usd=available,
        tag=intent.tag,
        reason=intent.reason,
    )
