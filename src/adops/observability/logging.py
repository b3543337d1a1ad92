"""
Structured logging configuration.

Single entry point for configuring structlog, routed through stdlib logging
so Celery, uvicorn and our own modules share one output stream.

Configuration is read from arguments, falling back to environment variables:
- ADOPS_LOG_LEVEL: DEBUG | INFO | WARNING | ERROR (default: INFO)
- ADOPS_LOG_FORMAT: json | console (default: console)

Job execution context (``job_id``, ``job_type``, ``attempt``) is bound with
``job_context()`` and merged into every event logged inside the block.

Usage:
    from adops.observability.logging import configure_logging, get_logger, job_context

    configure_logging(level="DEBUG", format="json")
    logger = get_logger(__name__)

    with job_context(job_id=job.id, job_type=job.type, attempt=job.attempts):
        logger.info("job_started")
"""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Literal

import structlog
from structlog.types import Processor

# Track if logging has been configured
_configured = False


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | str | None = None,
    format: Literal["json", "console"] | None = None,
    force: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Should be called once at process startup (CLI entry, API factory, Celery
    worker). Subsequent calls are no-ops unless force=True.

    Args:
        level: Log level (overrides ADOPS_LOG_LEVEL env var)
        format: Output format (overrides ADOPS_LOG_FORMAT env var)
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    log_level = (level or os.environ.get("ADOPS_LOG_LEVEL", "INFO")).upper()
    log_format = (format or os.environ.get("ADOPS_LOG_FORMAT", "console")).lower()

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        # Job context bound via job_context()
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level, logging.INFO),
        force=True,
    )
    logging.getLogger("adops").setLevel(getattr(logging, log_level, logging.INFO))

    _configured = True


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (typically ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


@contextmanager
def job_context(**values: Any) -> Iterator[None]:
    """
    Bind values to every log event emitted inside the block.

    None values are dropped. Previously bound values for the same keys are
    restored on exit.
    """
    bound = {k: v for k, v in values.items() if v is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured


__all__ = ["configure_logging", "get_logger", "job_context", "is_configured"]
