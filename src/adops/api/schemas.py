"""Pydantic request/response models for the HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from adops.jobs.models import DEFAULT_PRIORITY, Job, JobPage


class JobCreateRequest(BaseModel):
    """Request body for submitting a job."""

    type: str = Field(..., min_length=1, description="Registered job type, e.g. SYNC_USER_ASSETS")
    payload: Any = Field(default_factory=dict)
    idempotency_key: str | None = Field(default=None, description="Derived from type/owner/payload if omitted")
    owner_ref: str | None = None
    scope_ref: str | None = None
    created_by: str | None = None
    priority: int = Field(default=DEFAULT_PRIORITY, ge=0, le=9)
    max_attempts: int | None = Field(default=None, ge=1)


class JobResponse(BaseModel):
    """Response for a single job."""

    id: str
    type: str
    idempotency_key: str
    status: str
    payload: Any = None
    result: Any = None
    attempts: int
    max_attempts: int
    last_error: str | None = None
    priority: int
    owner_ref: str | None = None
    scope_ref: str | None = None
    created_by: str | None = None
    queued_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_job(cls, job: Job) -> JobResponse:
        return cls(
            id=job.id,
            type=job.type,
            idempotency_key=job.idempotency_key,
            status=job.status.value,
            payload=job.payload,
            result=job.result,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            last_error=job.last_error,
            priority=job.priority,
            owner_ref=job.owner_ref,
            scope_ref=job.scope_ref,
            created_by=job.created_by,
            queued_at=job.queued_at,
            started_at=job.started_at,
            finished_at=job.finished_at,
            updated_at=job.updated_at,
        )


class JobSubmitResponse(JobResponse):
    """A job plus whether this request created it."""

    created: bool


class JobListResponse(BaseModel):
    items: list[JobResponse]
    total: int
    page: int
    page_size: int

    @classmethod
    def from_page(cls, page: JobPage) -> JobListResponse:
        return cls(
            items=[JobResponse.from_job(job) for job in page.items],
            total=page.total,
            page=page.page,
            page_size=page.page_size,
        )


class CredentialResponse(BaseModel):
    """Credential snapshot; the secret is never returned."""

    id: str
    label: str | None = None
    priority: int
    status: str
    failure_count: int
    last_used_at: datetime | None = None
    rate_limit_until: datetime | None = None


class HealthResponse(BaseModel):
    status: str
    database: str
    dispatch_mode: str
    credentials: dict[str, int] = Field(default_factory=dict)
    operations: list[str] = Field(default_factory=list)


class CredentialReloadResponse(BaseModel):
    loaded: int
    credentials: list[CredentialResponse]


class OperationResponse(BaseModel):
    type: str
    description: str | None = None
