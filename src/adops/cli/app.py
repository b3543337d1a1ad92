"""
Root Typer application for the adops CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from adops import __version__
from adops.observability.logging import configure_logging

app = Typer(
    name="adops",
    help="adops - automation jobs and the credential pool behind them.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"adops-core {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Overrides ADOPS_LOG_LEVEL"),
) -> None:
    """adops CLI - create and manage automation jobs, manage credentials."""
    configure_logging(level=log_level)


# ── Sub-command registration ─────────────────────────────────────────────

from adops.cli.credentials import app as credentials_app  # noqa: E402
from adops.cli.jobs import app as jobs_app  # noqa: E402
from adops.cli.serve import serve, worker  # noqa: E402

app.add_typer(jobs_app, name="jobs", help="Automation job management.")
app.add_typer(credentials_app, name="credentials", help="Credential pool management.")
app.command("serve")(serve)
app.command("worker")(worker)
