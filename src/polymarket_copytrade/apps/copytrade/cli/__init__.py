"""CLI subpackage for the copytrade bot.

Create the Typer application and register all command modules.
"""

import typer

from polymarket_copytrade.apps.copytrade.cli.positions_cmd import positions
from polymarket_copytrade.apps.copytrade.cli.run_cmd import run

app = typer.Typer(help="Polymarket portfolio copytrade bot")

app.command()(run)
app.command()(positions)

__all__ = ["app"]
