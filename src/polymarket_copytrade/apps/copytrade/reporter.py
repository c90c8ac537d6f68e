"""Structured stdout output for copytrade events and the exit summary.

Each reconciliation cycle is written as one JSON line; the terminal summary
is written once as indented JSON.  Decimals are serialised as strings so no
precision is lost, and enums as their values.  Diagnostics never go to
stdout; they are logged to stderr.
"""

import json
from dataclasses import fields, is_dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

import typer

from polymarket_copytrade.apps.copytrade.models import CopytradeEvent, ExitSummary


def _to_jsonable(value: Any) -> Any:
    """Convert dataclasses, Decimals, enums, and containers into JSON types.

    Args:
        value: Value to convert.

    Returns:
        A structure of dicts, lists, strings, numbers, booleans, and ``None``.

    """
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return _to_jsonable(value.value)
    if isinstance(value, dict):
        return {str(k): _to_jsonable(v) for k, v in value.items()}  # pyright: ignore[reportUnknownVariableType]
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]  # pyright: ignore[reportUnknownVariableType]
    return value


def event_to_dict(event: CopytradeEvent) -> dict[str, Any]:
    """Serialise a cycle event into a JSON-compatible dictionary.

    Args:
        event: Event to serialise.

    Returns:
        JSON-compatible dictionary.

    """
    result: dict[str, Any] = _to_jsonable(event)
    return result


def summary_to_dict(summary: ExitSummary) -> dict[str, Any]:
    """Serialise the exit summary into a JSON-compatible dictionary.

    Args:
        summary: Summary to serialise.

    Returns:
        JSON-compatible dictionary.

    """
    result: dict[str, Any] = _to_jsonable(summary)
    return result


def report_event(event: CopytradeEvent) -> None:
    """Write one cycle event to stdout as a single JSON line."""
    typer.echo(json.dumps(event_to_dict(event)))


def report_exit_summary(summary: ExitSummary) -> None:
    """Write the exit summary to stdout as indented JSON."""
    typer.echo(json.dumps(summary_to_dict(summary), indent=2))
