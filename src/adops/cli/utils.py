"""
CLI utility helpers - output formatting and runtime construction.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any, NoReturn

import httpx
import typer
from rich.console import Console
from rich.table import Table

from adops.core.errors import AdopsError
from adops.core.settings import AdopsSettings
from adops.runtime import Runtime, build_runtime

console = Console()
err_console = Console(stderr=True)


# ── Runtime helpers ──────────────────────────────────────────────────────


def make_settings(database: str | None = None, dispatch: str | None = None) -> AdopsSettings:
    """Settings from the environment with command-line overrides."""
    overrides: dict[str, Any] = {}
    if database:
        overrides["database_path"] = database
    if dispatch:
        overrides["dispatch_mode"] = dispatch
    return AdopsSettings(**overrides)


def make_runtime(database: str | None = None, dispatch: str | None = None) -> Runtime:
    return build_runtime(make_settings(database, dispatch))


def api_client(api_url: str) -> httpx.Client:
    """HTTP client for commands that act on a running server's pool."""
    return httpx.Client(base_url=api_url, timeout=10.0)


def default_api_url() -> str:
    settings = AdopsSettings()
    host = "127.0.0.1" if settings.host in ("0.0.0.0", "") else settings.host
    return f"http://{host}:{settings.port}"


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert domain object / pydantic model / dataclass / dict to plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_result(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a single object or a list to the terminal."""
    if as_json:
        payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
        console.print_json(json.dumps(payload, default=str))
        return

    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(data, title=title)
    else:
        _print_dict(_to_dict(data), title=title)


def fail(error: AdopsError | str) -> NoReturn:
    """Print an error and exit with status 1."""
    if isinstance(error, AdopsError):
        err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {error}")
    raise typer.Exit(code=1)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "", columns: list[str] | None = None) -> None:
    """Render a list of dicts/dataclasses as a Rich table."""
    rows = [_to_dict(item) for item in items]
    cols = columns or list(rows[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in cols:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(str(row.get(col, "")) for col in cols))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


def print_table(items: list, *, title: str = "", columns: list[str] | None = None) -> None:
    if not items:
        console.print("[dim]No items.[/dim]")
        return
    _print_table(items, title=title, columns=columns)
