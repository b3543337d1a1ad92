"""
CLI: ``adops serve`` and ``adops worker`` - long-running processes.
"""

from __future__ import annotations

import typer

from adops.cli.utils import console


def serve(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on changes"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the REST API server."""
    import uvicorn

    console.print(f"[bold green]Starting adops API[/bold green] on {host}:{port}")
    uvicorn.run(
        "adops.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


def worker(
    concurrency: int | None = typer.Option(
        None, "--concurrency", "-c", help="Concurrent jobs (default: ADOPS_WORKER_CONCURRENCY)"
    ),
    queues: str = typer.Option("automation.jobs", "--queues", "-Q", help="Comma-separated queues"),
    loglevel: str = typer.Option("info", "--loglevel", "-l"),
) -> None:
    """Start a Celery worker consuming the job queue.

    Example::

        adops worker --concurrency 5
    """
    from adops.jobs.tasks import app as celery_app

    concurrency = concurrency or celery_app.conf.worker_concurrency
    console.print(f"[bold green]Starting adops worker[/bold green] (concurrency={concurrency}, queues={queues})")
    celery_app.worker_main(
        argv=["worker", f"--concurrency={concurrency}", f"--queues={queues}", f"--loglevel={loglevel}"]
    )
