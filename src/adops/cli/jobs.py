"""
CLI: ``adops jobs`` - automation job commands.
"""

from __future__ import annotations

import json

import typer

from adops.cli.utils import console, fail, make_runtime, output_result, print_table
from adops.core.errors import AdopsError
from adops.jobs.models import JobFilter, JobStatus

app = typer.Typer(no_args_is_help=True)

_LIST_COLUMNS = ["id", "type", "status", "attempts", "owner_ref", "queued_at", "last_error"]


@app.command("create")
def create_job(
    job_type: str = typer.Argument(..., help="Registered job type, e.g. SYNC_USER_ASSETS"),
    payload: str | None = typer.Option(None, "--payload", "-p", help="JSON payload string"),
    key: str | None = typer.Option(None, "--key", "-k", help="Idempotency key (derived if omitted)"),
    owner: str | None = typer.Option(None, "--owner", "-o"),
    priority: int = typer.Option(1, "--priority", min=0, max=9),
    database: str | None = typer.Option(None, "--database", "-d"),
    dispatch: str | None = typer.Option(None, "--dispatch", help="auto | queue | inline"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create a job (idempotent) and dispatch it."""
    parsed = None
    if payload:
        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError as e:
            console.print(f"[red]Error: Invalid JSON payload: {e}[/red]")
            raise typer.Exit(1) from e

    runtime = make_runtime(database, dispatch)
    try:
        submission = runtime.orchestrator.submit_job(
            job_type,
            parsed,
            idempotency_key=key,
            owner_ref=owner,
            priority=priority,
            created_by="cli",
        )
    except AdopsError as e:
        fail(e)

    if not json_out:
        verb = "Created" if submission.created else "Existing"
        console.print(f"[bold green]{verb}[/bold green] job {submission.job.id} ({submission.job.status.value})")
    output_result(submission.job, as_json=json_out, title="Job")


@app.command("show")
def show_job(
    job_id: str = typer.Argument(..., help="Job ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show a job."""
    runtime = make_runtime(database, "inline")
    try:
        job = runtime.orchestrator.get_job(job_id)
    except AdopsError as e:
        fail(e)
    output_result(job, as_json=json_out, title=f"Job: {job_id}")


@app.command("list")
def list_jobs(
    owner: str | None = typer.Option(None, "--owner", "-o"),
    scope: str | None = typer.Option(None, "--scope"),
    status: str | None = typer.Option(None, "--status", "-s"),
    job_type: str | None = typer.Option(None, "--type", "-t"),
    page: int = typer.Option(1, "--page"),
    page_size: int = typer.Option(20, "--page-size", "-n"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List jobs, newest first."""
    status_enum = None
    if status:
        try:
            status_enum = JobStatus(status)
        except ValueError:
            fail(f"Invalid status: {status}")

    runtime = make_runtime(database, "inline")
    result = runtime.orchestrator.list_jobs(
        JobFilter(owner_ref=owner, scope_ref=scope, status=status_enum, type=job_type),
        page=page,
        page_size=page_size,
    )
    if json_out:
        output_result(result, as_json=True)
        return
    print_table(result.items, title="Jobs", columns=_LIST_COLUMNS)
    console.print(f"\n[dim]Page {result.page}, showing {len(result.items)} of {result.total}[/dim]")


@app.command()
def cancel(
    job_id: str = typer.Argument(..., help="Job ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Cancel a job (no-op once completed)."""
    runtime = make_runtime(database, "inline")
    try:
        job = runtime.orchestrator.cancel_job(job_id)
    except AdopsError as e:
        fail(e)
    output_result(job, as_json=json_out, title="Cancel")


@app.command()
def retry(
    job_id: str = typer.Argument(..., help="Job ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    dispatch: str | None = typer.Option(None, "--dispatch", help="auto | queue | inline"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Re-queue a failed job (no-op from any other status)."""
    runtime = make_runtime(database, dispatch)
    try:
        job = runtime.orchestrator.retry_job(job_id)
    except AdopsError as e:
        fail(e)
    output_result(job, as_json=json_out, title="Retry")
