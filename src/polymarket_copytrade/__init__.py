"""Polymarket portfolio copytrade bot."""

__version__ = "0.1.0"
