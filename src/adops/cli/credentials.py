"""
CLI: ``adops credentials`` - credential pool commands.

``add`` writes to the credential table; ``reload`` makes a running API
server pick it up. ``list``, ``switch``, ``reactivate`` and ``disable`` act
on the pool of that server, since health state lives in its process.
"""

from __future__ import annotations

import httpx
import typer

from adops.cli.utils import api_client, console, default_api_url, fail, make_runtime, output_result, print_table

app = typer.Typer(no_args_is_help=True)

_COLUMNS = ["id", "label", "priority", "status", "failure_count", "last_used_at", "rate_limit_until"]


def _call(api_url: str | None, method: str, path: str):
    url = api_url or default_api_url()
    try:
        with api_client(url) as client:
            response = client.request(method, path)
    except httpx.HTTPError as e:
        fail(f"Cannot reach API at {url}: {e}")
    if response.status_code >= 400:
        detail = response.json().get("detail") if response.headers.get("content-type", "").startswith(
            "application/json"
        ) else response.text
        fail(f"{response.status_code}: {detail}")
    return response.json()


@app.command("add")
def add_credential(
    secret: str = typer.Argument(..., help="Access token"),
    label: str | None = typer.Option(None, "--label", "-l", help="Owner or optimizer name"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Store a credential for the pool."""
    runtime = make_runtime(database, "inline")
    credential = runtime.credential_store.add(secret, label=label)
    console.print(f"[bold green]Stored[/bold green] credential {credential.id}")
    console.print("Run [bold]adops credentials reload[/bold] to load it into a running server.")


@app.command("list")
def list_credentials(
    api_url: str | None = typer.Option(None, "--api-url", help="Running API server"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the pool of a running server (secrets are never shown)."""
    entries = _call(api_url, "GET", "/credentials")
    if json_out:
        output_result(entries, as_json=True)
        return
    print_table(entries, title="Credentials", columns=_COLUMNS)


@app.command("switch")
def switch_credential(
    credential_id: str = typer.Argument(..., help="Credential ID"),
    api_url: str | None = typer.Option(None, "--api-url", help="Running API server"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Make a credential the preferred one (priority 0)."""
    output_result(_call(api_url, "POST", f"/credentials/{credential_id}/switch"), as_json=json_out, title="Switch")


@app.command("reactivate")
def reactivate_credential(
    credential_id: str = typer.Argument(..., help="Credential ID"),
    api_url: str | None = typer.Option(None, "--api-url", help="Running API server"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Close the circuit of a failed credential."""
    output_result(
        _call(api_url, "POST", f"/credentials/{credential_id}/reactivate"),
        as_json=json_out,
        title="Reactivate",
    )


@app.command("disable")
def disable_credential(
    credential_id: str = typer.Argument(..., help="Credential ID"),
    api_url: str | None = typer.Option(None, "--api-url", help="Running API server"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Take a credential out of rotation (stored credentials stay disabled)."""
    output_result(
        _call(api_url, "POST", f"/credentials/{credential_id}/disable"),
        as_json=json_out,
        title="Disable",
    )


@app.command("reload")
def reload_credentials(
    api_url: str | None = typer.Option(None, "--api-url", help="Running API server"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Reload a running server's pool from storage (resets health state)."""
    body = _call(api_url, "POST", "/credentials/reload")
    if json_out:
        output_result(body, as_json=True)
        return
    console.print(f"[bold green]Loaded[/bold green] {body['loaded']} credential(s)")
    print_table(body["credentials"], title="Credentials", columns=_COLUMNS)
