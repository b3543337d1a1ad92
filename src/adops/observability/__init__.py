"""Structured logging (structlog routed through stdlib logging)."""

from adops.observability.logging import configure_logging, get_logger, job_context

__all__ = ["configure_logging", "get_logger", "job_context"]
