"""Shared Rich console for CLI output."""

import json
import os
from collections.abc import Iterable, Sequence
from functools import wraps
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

_console = Console()
_error_console = Console(stderr=True)


def _should_print() -> bool:
    """Check if console output is enabled."""
    return os.environ.get("TRITON_CONSOLE_ENABLED", "true").lower() == "true"


def _console_output(func):
    """Decorator to check if console output is enabled."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        if _should_print():
            return func(*args, **kwargs)

    return wrapper


def get_console() -> Console:
    """Get the shared console instance."""
    return _console


@_console_output
def print_success(message: str):
    """Print success message."""
    _console.print(f"[green]{message}[/green]", highlight=False)


def print_error(message: str):
    """Print error message to stderr (always outputs)."""
    _error_console.print(f"[red]{message}[/red]", highlight=False, markup=True)


@_console_output
def print_info(message: str):
    """Print info message."""
    _console.print(message, highlight=False, markup=False)


@_console_output
def print_warning(message: str):
    """Print warning message to stderr."""
    _error_console.print(f"[yellow]{message}[/yellow]", highlight=False)


def print_json(data: Any):
    """Print JSON data (always outputs, ignores TRITON_CONSOLE_ENABLED)."""
    print(json.dumps(data, indent=2))


def print_json_stream(items: Iterable[Any]):
    """Print one compact JSON document per line."""
    for item in items:
        print(json.dumps(item))


def _cell(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


def print_table(rows: Sequence[dict[str, Any]], columns: Sequence[str], headers: Optional[Sequence[str]] = None):
    """Print rows as a table with the given columns (always outputs)."""
    table = Table(box=None, pad_edge=False, show_edge=False, header_style="bold")
    for header in headers or [c.upper() for c in columns]:
        table.add_column(header, overflow="fold")
    for row in rows:
        table.add_row(*(_cell(row.get(col)) for col in columns))
    _console.print(table)
