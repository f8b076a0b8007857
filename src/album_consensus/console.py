"""Shared Rich console and table helpers for the album-consensus CLI.

The CLI callback installs one console for command output; every command
prints through it so tests can swap in a recording console.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from typing import Any

from rich.console import Console
from rich.table import Table

# Global console instance (initialized in CLI)
_console: Console | None = None


def get_console() -> Console:
    """Get the global Rich console instance.

    Raises:
        RuntimeError: If console not initialized (should only happen in tests)
    """
    if _console is None:
        raise RuntimeError("Console not initialized. Call set_console() first.")
    return _console


def set_console(console: Console) -> None:
    global _console
    _console = console


def print(*args: Any, **kwargs: Any) -> None:
    """Print to the global console."""
    get_console().print(*args, **kwargs)


def print_json(data: Any) -> None:
    """Print data as JSON, unwrapped and without Rich markup."""
    get_console().print(
        json.dumps(data, indent=2, default=str), soft_wrap=True, markup=False, highlight=False
    )


def print_error(message: str) -> None:
    get_console().print(f"[red]Error: {message}[/red]")


def print_warning(message: str) -> None:
    get_console().print(f"[yellow]Warning: {message}[/yellow]")


def print_success(message: str) -> None:
    get_console().print(f"[green]{message}[/green]")


def make_table(
    title: str | None,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    right_align: Iterable[str] = (),
) -> Table:
    """Build a Rich table; values are converted with str(), None shows as blank.

    Args:
        title: Table title, or None for no title
        columns: Column headers in order
        rows: Row values, one sequence per row
        right_align: Column headers to right-align (numbers)
    """
    numeric = set(right_align)
    table = Table(title=title)
    for column in columns:
        table.add_column(column, justify="right" if column in numeric else "left")
    for row in rows:
        table.add_row(*("" if value is None else str(value) for value in row))
    return table
