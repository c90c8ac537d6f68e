"""CLI command for running the copytrade bot.

Validate the run parameters, build the paper or live executor, and drive
the reconciliation loop until interrupted.  Events and the exit summary go
to stdout as JSON; diagnostics go to stderr.
"""

import asyncio
from decimal import Decimal
from typing import Annotated

import typer

from polymarket_copytrade.apps.copytrade.cli._helpers import build_client, configure_logging
from polymarket_copytrade.apps.copytrade.exceptions import InsufficientCapitalError
from polymarket_copytrade.apps.copytrade.executor import (
    LiveExecutor,
    OrderExecutor,
    PaperExecutor,
)
from polymarket_copytrade.apps.copytrade.loop import CopytradeEngine
from polymarket_copytrade.apps.copytrade.models import ExitSummary
from polymarket_copytrade.clients.polymarket.client import PolymarketClient
from polymarket_copytrade.clients.polymarket.exceptions import PolymarketAPIError
from polymarket_copytrade.core.config import ConfigError, CopytradeConfig, get_config
from polymarket_copytrade.core.models import HUNDRED


def run(  # noqa: PLR0913
    trader_address: Annotated[str, typer.Option(help="Proxy wallet address of the trader to copy")],
    budget: Annotated[float, typer.Option(help="Total budget in USD")],
    copy_percentage: Annotated[
        float, typer.Option(help="Percentage of the running budget to allocate (0-100)")
    ],
    max_trade_size: Annotated[
        float, typer.Option(help="Maximum percentage of the running budget per market (0-100)")
    ],
    dry_run: Annotated[  # noqa: FBT002
        bool, typer.Option("--dry-run", help="Simulate fills without placing orders")
    ] = False,
    live: Annotated[  # noqa: FBT002
        bool, typer.Option("--live", help="Place real CLOB orders with real money")
    ] = False,
    poll_interval: Annotated[
        float | None, typer.Option(help="Seconds between trade polls (overrides settings)")
    ] = None,
    min_buy_usd: Annotated[
        float | None, typer.Option(help="Minimum buy notional in USD (overrides settings)")
    ] = None,
    max_cycles: Annotated[
        int | None, typer.Option(help="Stop after N polling cycles (None = unlimited)")
    ] = None,
    verbose: Annotated[  # noqa: FBT002
        bool, typer.Option("--verbose", "-v", help="Enable INFO-level logging")
    ] = False,
) -> None:
    """Mirror a Polymarket trader's portfolio within a bounded budget.

    Exactly one of ``--dry-run`` or ``--live`` is required.  Percentages are
    given on a 0-100 scale.
    """
    if dry_run == live:
        typer.echo("Error: specify exactly one of --dry-run or --live.", err=True)
        raise typer.Exit(code=1)

    configure_logging(verbose=verbose)

    try:
        loader = get_config()
        settings = dict(loader.get_copytrade_settings())
        if poll_interval is not None:
            settings["poll_interval_seconds"] = poll_interval
        if min_buy_usd is not None:
            settings["min_buy_usd"] = str(min_buy_usd)
        config = CopytradeConfig.from_settings(
            settings,
            trader_address=trader_address,
            budget=Decimal(str(budget)),
            copy_pct=Decimal(str(copy_percentage)) / HUNDRED,
            max_trade_pct=Decimal(str(max_trade_size)) / HUNDRED,
            live=live,
        )
    except (ConfigError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    client = build_client(loader, live=live)
    if live:
        typer.echo("LIVE TRADING MODE -- real money at risk", err=True)

    try:
        asyncio.run(_run(client, config, max_cycles=max_cycles))
    except (InsufficientCapitalError, PolymarketAPIError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


async def _run(
    client: PolymarketClient,
    config: CopytradeConfig,
    *,
    max_cycles: int | None,
) -> ExitSummary:
    """Run the engine with the executor matching the configured mode.

    Args:
        client: Polymarket client.
        config: Validated run configuration.
        max_cycles: Optional polling cycle limit.

    Returns:
        The run's exit summary.

    """
    executor: OrderExecutor = LiveExecutor(client, config) if config.live else PaperExecutor()
    async with client:
        engine = CopytradeEngine(client, config, executor)
        return await engine.run(max_cycles=max_cycles)
