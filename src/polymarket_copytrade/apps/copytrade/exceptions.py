"""Exception hierarchy for the copytrade application."""


class CopytradeError(Exception):
    """Base exception for copytrade failures."""


class InsufficientCapitalError(CopytradeError):
    """Raise when live cash plus holdings cannot cover the requested budget."""


class PriceResolutionError(CopytradeError):
    """Raise when no price source knows the current price of an asset.

    Args:
        asset: CLOB token identifier that could not be priced.

    """

    def __init__(self, asset: str) -> None:
        """Initialize the price resolution error.

        Args:
            asset: CLOB token identifier that could not be priced.

        """
        super().__init__(f"No price available for asset {asset}")
        self.asset = asset
