"""Shared test configuration and fixtures."""

import os
from collections.abc import Iterator
from unittest.mock import patch

import pytest

import polymarket_copytrade.core.config as config_module

_CREDENTIAL_ENV_VARS = (
    "POLYMARKET_PRIVATE_KEY",
    "POLYMARKET_API_KEY",
    "POLYMARKET_API_SECRET",
    "POLYMARKET_API_PASSPHRASE",
    "POLYMARKET_FUNDER_ADDRESS",
)


@pytest.fixture(autouse=True)
def _isolate_credentials() -> Iterator[None]:  # pyright: ignore[reportUnusedFunction]
    """Hide real Polymarket credentials and reset the config singleton.

    The default ``settings.yaml`` reads wallet credentials from the
    environment.  A developer machine may export real keys, so every test
    runs with those variables removed and with a fresh ``get_config()``
    singleton; tests that need credentials set them explicitly.
    """
    with patch.dict(os.environ, {}):
        for name in _CREDENTIAL_ENV_VARS:
            os.environ.pop(name, None)
        config_module._config = None
        try:
            yield
        finally:
            config_module._config = None
