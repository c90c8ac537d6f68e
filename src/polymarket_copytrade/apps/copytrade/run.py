"""CLI entry point for the copytrade bot.

Provide access to the Typer app and main entry point.  All command logic
lives in the cli subpackage.
"""

from polymarket_copytrade.apps.copytrade.cli import app

__all__ = ["app", "main"]


def main() -> None:
    """Run the copytrade CLI application."""
    app()


if __name__ == "__main__":
    main()
