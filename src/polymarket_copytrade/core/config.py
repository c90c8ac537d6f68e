"""Configuration management for the copytrade bot.

Load layered YAML settings with environment variable substitution and expose
the immutable ``CopytradeConfig`` that parameterises a single run.
"""

import os
import re
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, cast

import yaml
from dotenv import load_dotenv

from polymarket_copytrade.core.models import ONE, ZERO

_DEFAULT_POLL_INTERVAL = 10.0
_DEFAULT_TRADES_PAGE_SIZE = 50
_DEFAULT_POSITIONS_PAGE_SIZE = 100
_DEFAULT_MIN_BUY_USD = Decimal("1.00")
_DEFAULT_FILL_CHECK_DELAY = 2.0
_DEFAULT_INTER_ORDER_DELAY = 0.2
_DEFAULT_MAX_RETRIES = 3
_DEFAULT_BASE_BACKOFF = 0.5
_DEFAULT_REQUEST_TIMEOUT = 10.0
_DEFAULT_SEEN_TRADES_CAPACITY = 10_000


class ConfigError(Exception):
    """Raise when configuration loading or validation fails."""


class ConfigLoader:
    """Load and manage configuration from YAML files with environment variable substitution."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize the config loader.

        Load environment variables from a ``.env`` file (if present) and
        then read YAML configuration from the given directory.

        Args:
            config_dir: Directory containing config files. Defaults to
                ``src/polymarket_copytrade/config``.

        """
        load_dotenv()
        if config_dir is None:
            config_dir = Path(__file__).parent.parent / "config"
        self.config_dir = Path(config_dir)
        self._config: dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML files."""
        settings_file = self.config_dir / "settings.yaml"
        if settings_file.exists():
            with settings_file.open() as f:
                self._config = yaml.safe_load(f) or {}

        local_settings = self.config_dir / "settings.local.yaml"
        if local_settings.exists():
            with local_settings.open() as f:
                local_config = cast("dict[str, Any]", yaml.safe_load(f) or {})
                self._deep_merge(self._config, local_config)

        self._config = self._substitute_env_vars(self._config)

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> None:
        """Deep merge override dict into base dict.

        Args:
            base: Base dictionary to merge into (modified in place).
            override: Dictionary with values to override.

        """
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], cast("dict[str, Any]", value))
            else:
                base[key] = value

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute environment variables in config.

        Supports format: ${VAR_NAME:default_value} or ${VAR_NAME}

        Args:
            config: Configuration value (dict, list, or str).

        Returns:
            Configuration with environment variables substituted.

        Raises:
            ConfigError: If a referenced variable is unset and has no default.

        """
        if isinstance(config, dict):
            return {
                k: self._substitute_env_vars(v)
                for k, v in config.items()  # pyright: ignore[reportUnknownVariableType]
            }
        if isinstance(config, list):
            return [
                self._substitute_env_vars(item)
                for item in config  # pyright: ignore[reportUnknownVariableType]
            ]
        if isinstance(config, str) and config.startswith("${") and config.endswith("}"):
            var_expr = config[2:-1]
            if ":" in var_expr:
                var_name, default = var_expr.split(":", 1)
            else:
                var_name, default = var_expr, None

            value = os.getenv(var_name, default)
            if value is None:
                msg = f"Required environment variable ${{{var_name}}} is not set and has no default"
                raise ConfigError(msg)
            return value

        if isinstance(config, str) and re.search(r"\$\{[^}]+\}", config):
            msg = f"Unresolved environment variable reference in: {config}"
            raise ConfigError(msg)

        return config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key.

        Args:
            key: Configuration key in dot notation (e.g. ``copytrade.max_retries``).
            default: Default value if key not found.

        Returns:
            Configuration value.

        """
        keys = key.split(".")
        current: Any = self._config
        for k in keys:
            if isinstance(current, dict):
                current = cast("dict[str, Any]", current).get(k)
                if current is None:
                    return default
            else:
                return default
        return current  # pyright: ignore[reportReturnType]

    def get_copytrade_settings(self) -> dict[str, Any]:
        """Get the ``copytrade`` tunables section.

        Returns:
            Dictionary with polling, retry, and sizing settings.

        Raises:
            ConfigError: If the copytrade config value is not a dictionary.

        """
        result: Any = self.get("copytrade", {})
        if isinstance(result, dict):
            return cast("dict[str, Any]", result)
        msg = f"copytrade config must be a dict, got {type(result).__name__}"
        raise ConfigError(msg)

    def get_polymarket_credentials(self) -> dict[str, str | None]:
        """Return the Polymarket credential settings with blanks mapped to ``None``.

        Returns:
            Dictionary with ``private_key``, ``api_key``, ``api_secret``,
            ``api_passphrase``, and ``funder_address`` entries.

        """
        keys = ("private_key", "api_key", "api_secret", "api_passphrase", "funder_address")
        return {k: (str(self.get(f"polymarket.{k}", "")) or None) for k in keys}


_config: ConfigLoader | None = None


def get_config() -> ConfigLoader:
    """Return the global ``ConfigLoader`` singleton, creating it on first use.

    Lazy initialisation avoids side effects (file I/O, ``load_dotenv``)
    at import time and makes testing easier.

    Returns:
        The shared ``ConfigLoader`` instance.

    """
    global _config  # noqa: PLW0603
    if _config is None:
        _config = ConfigLoader()
    return _config


@dataclass(frozen=True)
class CopytradeConfig:
    """Parameters for a single copytrade run.

    Fractions are expressed between 0 and 1; the CLI converts its 0-100
    percentage flags before building this object.  All monetary values use
    ``Decimal`` for precision.

    Args:
        trader_address: Proxy wallet address of the trader being mirrored.
        budget: Total USD budget the bot may deploy.
        copy_pct: Fraction of the running budget allocated to mirroring.
        max_trade_pct: Per-market ceiling as a fraction of the running budget.
        live: Place real CLOB orders when ``True``, simulate otherwise.
        poll_interval_seconds: Seconds between trade-detection polls.
        trades_page_size: Number of recent trades fetched per poll.
        positions_page_size: Page size for paginated position fetches.
        min_buy_usd: Minimum notional for non-exit buy orders.
        fill_check_delay_seconds: Wait before querying a new order's status.
        inter_order_delay_seconds: Pause between consecutive submissions.
        max_retries: Submission attempts for transient venue errors.
        base_backoff_seconds: First retry delay, doubled per attempt.
        request_timeout_seconds: Upper bound on each shutdown network call.
        seen_trades_capacity: Most recent transaction hashes kept for dedup.

    Raises:
        ValueError: If the budget or fractions are out of range.

    """

    trader_address: str
    budget: Decimal
    copy_pct: Decimal
    max_trade_pct: Decimal
    live: bool = False
    poll_interval_seconds: float = _DEFAULT_POLL_INTERVAL
    trades_page_size: int = _DEFAULT_TRADES_PAGE_SIZE
    positions_page_size: int = _DEFAULT_POSITIONS_PAGE_SIZE
    min_buy_usd: Decimal = _DEFAULT_MIN_BUY_USD
    fill_check_delay_seconds: float = _DEFAULT_FILL_CHECK_DELAY
    inter_order_delay_seconds: float = _DEFAULT_INTER_ORDER_DELAY
    max_retries: int = _DEFAULT_MAX_RETRIES
    base_backoff_seconds: float = _DEFAULT_BASE_BACKOFF
    request_timeout_seconds: float = _DEFAULT_REQUEST_TIMEOUT
    seen_trades_capacity: int = _DEFAULT_SEEN_TRADES_CAPACITY

    def __post_init__(self) -> None:
        """Validate budget, fractions, loop timing, and page sizes."""
        if self.budget <= ZERO:
            msg = f"budget must be positive, got {self.budget}"
            raise ValueError(msg)
        if not (ZERO <= self.copy_pct <= ONE):
            msg = f"copy_pct must be between 0 and 1, got {self.copy_pct}"
            raise ValueError(msg)
        if not (ZERO <= self.max_trade_pct <= ONE):
            msg = f"max_trade_pct must be between 0 and 1, got {self.max_trade_pct}"
            raise ValueError(msg)
        if self.poll_interval_seconds <= 0:
            msg = f"poll_interval_seconds must be positive, got {self.poll_interval_seconds}"
            raise ValueError(msg)
        if self.min_buy_usd < ZERO:
            msg = f"min_buy_usd must not be negative, got {self.min_buy_usd}"
            raise ValueError(msg)
        if self.max_retries < 1:
            msg = f"max_retries must be at least 1, got {self.max_retries}"
            raise ValueError(msg)
        if self.trades_page_size < 1:
            msg = f"trades_page_size must be positive, got {self.trades_page_size}"
            raise ValueError(msg)
        if self.positions_page_size < 1:
            msg = f"positions_page_size must be positive, got {self.positions_page_size}"
            raise ValueError(msg)
        # a smaller window would forget hashes still present in every poll
        if self.seen_trades_capacity < self.trades_page_size:
            msg = (
                f"seen_trades_capacity ({self.seen_trades_capacity}) must be at least "
                f"trades_page_size ({self.trades_page_size})"
            )
            raise ValueError(msg)

    @classmethod
    def from_settings(
        cls,
        settings: dict[str, Any],
        *,
        trader_address: str,
        budget: Decimal,
        copy_pct: Decimal,
        max_trade_pct: Decimal,
        live: bool,
    ) -> "CopytradeConfig":
        """Build a config from the YAML ``copytrade`` section and run parameters.

        Args:
            settings: The ``copytrade`` settings dictionary.
            trader_address: Trader wallet to mirror.
            budget: Total USD budget.
            copy_pct: Copy fraction (0-1).
            max_trade_pct: Per-market cap fraction (0-1).
            live: Whether to place real orders.

        Returns:
            Validated ``CopytradeConfig``.

        Raises:
            ConfigError: If a setting cannot be parsed.

        """
        try:
            tunables: dict[str, Any] = {
                "poll_interval_seconds": float(
                    settings.get("poll_interval_seconds", _DEFAULT_POLL_INTERVAL)
                ),
                "trades_page_size": int(
                    settings.get("trades_page_size", _DEFAULT_TRADES_PAGE_SIZE)
                ),
                "positions_page_size": int(
                    settings.get("positions_page_size", _DEFAULT_POSITIONS_PAGE_SIZE)
                ),
                "min_buy_usd": Decimal(str(settings.get("min_buy_usd", _DEFAULT_MIN_BUY_USD))),
                "fill_check_delay_seconds": float(
                    settings.get("fill_check_delay_seconds", _DEFAULT_FILL_CHECK_DELAY)
                ),
                "inter_order_delay_seconds": float(
                    settings.get("inter_order_delay_seconds", _DEFAULT_INTER_ORDER_DELAY)
                ),
                "max_retries": int(settings.get("max_retries", _DEFAULT_MAX_RETRIES)),
                "base_backoff_seconds": float(
                    settings.get("base_backoff_seconds", _DEFAULT_BASE_BACKOFF)
                ),
                "request_timeout_seconds": float(
                    settings.get("request_timeout_seconds", _DEFAULT_REQUEST_TIMEOUT)
                ),
                "seen_trades_capacity": int(
                    settings.get("seen_trades_capacity", _DEFAULT_SEEN_TRADES_CAPACITY)
                ),
            }
        except (ArithmeticError, TypeError, ValueError) as exc:
            msg = f"Invalid copytrade setting: {exc}"
            raise ConfigError(msg) from exc
        return cls(
            trader_address=trader_address,
            budget=budget,
            copy_pct=copy_pct,
            max_trade_pct=max_trade_pct,
            live=live,
            **tunables,
        )
