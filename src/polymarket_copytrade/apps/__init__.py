"""Runnable applications built on the Polymarket client."""
