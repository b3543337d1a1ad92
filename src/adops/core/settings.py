"""Runtime settings for the automation core.

All configuration is environment-driven with the ``ADOPS_`` prefix and
optional ``.env`` support, validated once at startup by pydantic-settings.

Manifesto:
    - **Pydantic validation:** Type-checked at startup, not at first use
    - **Environment-driven:** ``ADOPS_BROKER_URL=redis://...`` just works
    - **Sensible defaults:** A bare checkout runs inline against ``adops.db``

Examples:
    >>> settings = AdopsSettings(dispatch_mode="inline", database_path=":memory:")
    >>> settings.api_root
    'https://graph.facebook.com/v19.0'

Tags:
    settings, configuration, pydantic, environment, adops-core

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class AdopsSettings(BaseSettings):
    """Settings for the job orchestrator, credential pool and API client.

    Fields
    ──────
    database_path   : SQLite file holding jobs and credentials
    broker_url      : Celery broker (Redis) for queue dispatch
    dispatch_mode   : auto (probe broker), queue, or inline
    api_tokens      : Static credentials, comma separated in the environment
    """

    model_config = SettingsConfigDict(
        env_prefix="ADOPS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    database_path: str = Field(default="adops.db", description="SQLite database path or ':memory:'")

    # ── Dispatch ─────────────────────────────────────────────────
    broker_url: str = Field(default="redis://localhost:6379/0", description="Celery broker URL")
    result_backend: str | None = Field(default=None, description="Celery result backend (defaults to broker)")
    dispatch_mode: Literal["auto", "queue", "inline"] = Field(
        default="auto",
        description="auto probes the broker at startup and falls back to inline",
    )
    probe_timeout: float = Field(default=3.0, description="Broker PING timeout in seconds")
    job_max_attempts: int = Field(default=5, ge=1, description="Default max attempts per job")
    worker_concurrency: int = Field(default=5, ge=1, description="Concurrent jobs per Celery worker")
    worker_rate_limit: str | None = Field(
        default="50/m",
        description="Celery rate limit for the execute task, e.g. 50/m; empty disables",
    )

    # ── External API ─────────────────────────────────────────────
    api_base_url: str = Field(default="https://graph.facebook.com", description="External API host")
    api_version: str = Field(default="v19.0", description="External API version path segment")
    api_tokens: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Static access tokens loaded into the pool when no credential table exists",
    )
    client_max_attempts: int = Field(default=3, ge=1)
    client_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")
    backoff_base_delay: float = Field(default=2.0, description="Backoff base delay in seconds")
    backoff_max_delay: float = Field(default=60.0)
    backoff_jitter: float = Field(default=0.5, description="Upper bound of the random jitter in seconds")

    # ── Credential pool ──────────────────────────────────────────
    pool_cool_down_seconds: float = Field(default=300.0, description="Rate-limit cool-down window")
    pool_failure_threshold: int = Field(default=3, ge=1, description="Failures before a credential is failed")

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "console"

    # ── Network ──────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8000

    @field_validator("api_tokens", mode="before")
    @classmethod
    def _split_tokens(cls, value):
        if isinstance(value, str):
            return [token.strip() for token in value.split(",") if token.strip()]
        return value

    @property
    def api_root(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/{self.api_version.strip('/')}"

    @property
    def celery_backend(self) -> str:
        return self.result_backend or self.broker_url


@lru_cache(maxsize=1)
def get_settings() -> AdopsSettings:
    """Return the process-wide settings (cached)."""
    return AdopsSettings()


__all__ = ["AdopsSettings", "get_settings"]
