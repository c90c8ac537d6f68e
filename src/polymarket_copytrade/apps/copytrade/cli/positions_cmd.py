"""CLI command for inspecting a trader's positions and copy weights."""

import asyncio
from typing import Annotated

import typer

from polymarket_copytrade.apps.copytrade.cli._helpers import configure_logging
from polymarket_copytrade.apps.copytrade.engine import compute_weights
from polymarket_copytrade.clients.polymarket.client import PolymarketClient
from polymarket_copytrade.clients.polymarket.exceptions import PolymarketAPIError


def positions(
    trader_address: Annotated[str, typer.Option(help="Proxy wallet address of the trader")],
    page_size: Annotated[int, typer.Option(help="Positions requested per page")] = 100,
    verbose: Annotated[  # noqa: FBT002
        bool, typer.Option("--verbose", "-v", help="Enable INFO-level logging")
    ] = False,
) -> None:
    """Show a trader's active positions with the weights the bot would copy."""
    configure_logging(verbose=verbose)
    try:
        asyncio.run(_positions(trader_address, page_size))
    except PolymarketAPIError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


async def _positions(trader_address: str, page_size: int) -> None:
    """Fetch and display positions asynchronously.

    Args:
        trader_address: Proxy wallet address of the trader.
        page_size: Positions requested per page.

    """
    async with PolymarketClient() as client:
        all_positions = await client.get_positions(trader_address, page_size=page_size)

    weights = compute_weights(all_positions)
    typer.echo(
        f"{len(all_positions)} positions, {len(weights)} active for trader {trader_address}"
    )
    if not weights:
        typer.echo("No active positions.")
        return

    typer.echo(f"{'Weight':>8}  {'Value':>12}  {'Price':>6}  Market")
    typer.echo("-" * 72)
    for position, weight in sorted(weights, key=lambda pw: pw[1], reverse=True):
        typer.echo(
            f"{float(weight):>8.2%}  ${float(position.current_value):>11.2f}  "
            f"{float(position.cur_price):>6.3f}  {position.title} [{position.outcome}]"
        )
