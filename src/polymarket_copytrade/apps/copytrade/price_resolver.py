"""Two-layer price lookup for exits and the exit summary.

Layer 1 is the trader's latest position snapshot, which prices every asset
the trader still holds with nonzero value.  Layer 2 is Gamma market
metadata, which also covers markets that resolved (settled at 0 or 1) and
assets the trader has fully exited.  An asset neither layer knows is
reported as a ``PriceResolutionError``; no stale or assumed price is ever
substituted.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from polymarket_copytrade.apps.copytrade.exceptions import PriceResolutionError
from polymarket_copytrade.clients.polymarket.client import PolymarketClient
from polymarket_copytrade.clients.polymarket.models import MarketPosition
from polymarket_copytrade.core.models import ZERO

logger = logging.getLogger(__name__)


def build_price_map(positions: Iterable[MarketPosition]) -> dict[str, Decimal]:
    """Map each asset with nonzero value in a snapshot to its current price.

    Args:
        positions: Position snapshot from the Data API.

    Returns:
        Current price keyed by asset.

    """
    return {p.asset: p.cur_price for p in positions if p.current_value > ZERO}


@dataclass(frozen=True)
class PriceResolution:
    """Prices found for a set of assets plus the assets that could not be priced.

    Args:
        prices: Resolved price keyed by asset.
        errors: Resolution error keyed by asset for every asset left unpriced.

    """

    prices: dict[str, Decimal] = field(default_factory=dict)
    errors: dict[str, PriceResolutionError] = field(default_factory=dict)


class PriceResolver:
    """Resolve current prices from the trader snapshot with a Gamma fallback.

    Args:
        client: Polymarket client used for the Gamma lookup.

    """

    def __init__(self, client: PolymarketClient) -> None:
        """Initialize the resolver.

        Args:
            client: Polymarket client used for the Gamma lookup.

        """
        self._client = client

    async def resolve(
        self,
        assets: Sequence[str],
        snapshot: Sequence[MarketPosition],
    ) -> PriceResolution:
        """Price every requested asset.

        Assets found in the snapshot are priced from it; the rest are looked
        up in one batched Gamma request.

        Args:
            assets: CLOB token identifiers to price.
            snapshot: The trader's latest full position snapshot.

        Returns:
            Prices for the assets found and an error for each asset missing
            from both layers.

        Raises:
            PolymarketAPIError: When the Gamma lookup itself fails.

        """
        snapshot_prices = build_price_map(snapshot)
        prices: dict[str, Decimal] = {}
        missing: list[str] = []
        for asset in dict.fromkeys(assets):
            if asset in snapshot_prices:
                prices[asset] = snapshot_prices[asset]
            else:
                missing.append(asset)

        errors: dict[str, PriceResolutionError] = {}
        if missing:
            fallback = await self._client.get_token_prices(missing)
            for asset in missing:
                if asset in fallback:
                    prices[asset] = fallback[asset]
                else:
                    logger.warning("No price found for %s in snapshot or market metadata", asset)
                    errors[asset] = PriceResolutionError(asset)
        return PriceResolution(prices=prices, errors=errors)
