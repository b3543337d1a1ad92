"""
adops-core - automation job orchestration for an advertising-operations dashboard.

Packages:
    adops.jobs          Idempotent job creation, state machine, dispatch, worker
    adops.credentials   Credential pool with rate-limit cool-down and circuit breaker
    adops.client        Resilient HTTP client (rotation, backoff)
    adops.api           FastAPI app factory
    adops.cli           Typer CLI (``adops``)
"""

__version__ = "0.1.0"
