"""Shared helpers for copytrade CLI commands.

Centralise logging setup and Polymarket client construction from the
layered configuration.
"""

import logging
import sys

import typer

from polymarket_copytrade.clients.polymarket.client import PolymarketClient
from polymarket_copytrade.clients.polymarket.exceptions import PolymarketAPIError
from polymarket_copytrade.core.config import ConfigLoader

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(*, verbose: bool = False) -> None:
    """Send diagnostics to stderr so stdout carries only structured output.

    Args:
        verbose: Log at INFO level when ``True``, WARNING otherwise.

    """
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format=_LOG_FORMAT,
        datefmt="%H:%M:%S",
        stream=sys.stderr,
        force=True,
    )


def build_client(loader: ConfigLoader, *, live: bool) -> PolymarketClient:
    """Build a PolymarketClient from the configured credentials.

    Live mode needs a private key to sign orders and aborts without one.
    Dry runs only read public data and never authenticate.

    Args:
        loader: Configuration loader holding the ``polymarket`` section.
        live: Whether the client must be able to trade.

    Returns:
        A read-only client for dry runs, an authenticated one for live mode.

    """
    if not live:
        return PolymarketClient()

    creds = loader.get_polymarket_credentials()
    private_key = creds["private_key"]
    if not private_key:
        typer.echo("Error: POLYMARKET_PRIVATE_KEY environment variable is required.", err=True)
        raise typer.Exit(code=1)
    if not creds["funder_address"]:
        typer.echo(
            "Warning: POLYMARKET_FUNDER_ADDRESS is not set; holdings will not be reseeded.",
            err=True,
        )
    try:
        return PolymarketClient(
            private_key=private_key,
            api_key=creds["api_key"],
            api_secret=creds["api_secret"],
            api_passphrase=creds["api_passphrase"],
            funder_address=creds["funder_address"],
        )
    except PolymarketAPIError as exc:
        typer.echo(f"Error: failed to authenticate with Polymarket: {exc}", err=True)
        raise typer.Exit(code=1) from exc
