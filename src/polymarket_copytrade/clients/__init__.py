"""API clients for external trading venues."""
