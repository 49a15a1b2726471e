"""
CLI utility helpers — output formatting and connection management.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from courier.core.settings import CourierSettings, get_settings

console = Console()
err_console = Console(stderr=True)


# ── Connection helper ────────────────────────────────────────────────────


def resolve_settings(database: str | None = None) -> CourierSettings:
    """Settings from the environment, with ``--database`` applied on top."""
    settings = get_settings()
    if database:
        settings = settings.model_copy(update={"database_path": Path(database)})
    return settings


def get_connection(database: str | None = None) -> sqlite3.Connection:
    """Open the courier database. Defaults to ``~/.courier/courier.db``."""
    from courier.execution.worker import open_database

    return open_database(resolve_settings(database).database_path)


def fail(message: str, code: str = "ERROR") -> None:
    """Print an error and exit with status 1."""
    err_console.print(f"[bold red]Error[/bold red] ({code}): {message}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def output_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def output_rows(rows: list[dict[str, Any]], *, as_json: bool = False, title: str = "") -> None:
    """Render a list of dicts as a Rich table (or JSON)."""
    if as_json:
        output_json(rows)
        return
    if not rows:
        console.print("[dim]No items.[/dim]")
        return

    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if v is None else str(v) for v in row.values()))
    console.print(table)


def output_dict(data: dict[str, Any], *, as_json: bool = False, title: str = "") -> None:
    """Render a single dict as key-value pairs (or JSON)."""
    if as_json:
        output_json(data)
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
