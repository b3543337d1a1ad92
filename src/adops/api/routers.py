"""FastAPI routers - ``/jobs``, ``/credentials`` and ``/health``.

ARCHITECTURE
────────────
::

    create_jobs_router(orchestrator) → APIRouter
      POST   /jobs                  ─ submit (idempotent)
      GET    /jobs                  ─ list (owner/scope/status/type, paged)
      GET    /jobs/{job_id}         ─ job details
      POST   /jobs/{job_id}/cancel  ─ cancel (no-op once completed)
      POST   /jobs/{job_id}/retry   ─ retry (no-op unless failed)

    create_credentials_router(runtime) → APIRouter
      GET    /credentials                       ─ pool snapshot, no secrets
      POST   /credentials/reload                ─ reload the pool from storage
      POST   /credentials/{id}/switch           ─ make priority 0
      POST   /credentials/{id}/reactivate       ─ close a failed circuit
      POST   /credentials/{id}/disable          ─ out of rotation, persisted

    create_health_router(runtime) → APIRouter
      GET    /health
      GET    /operations                        ─ registered job types

Error mapping: JobNotFoundError / CredentialNotFoundError → 404,
UnknownJobTypeError and invalid filters → 400.

Handlers are plain ``def``: the store and pool are synchronous and FastAPI
runs them in its threadpool.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException, Query, status

from adops.api.schemas import (
    CredentialReloadResponse,
    CredentialResponse,
    HealthResponse,
    JobCreateRequest,
    JobListResponse,
    JobResponse,
    JobSubmitResponse,
    OperationResponse,
)
from adops.core.errors import CredentialNotFoundError, JobNotFoundError, UnknownJobTypeError
from adops.jobs.models import MAX_PAGE_SIZE, JobFilter, JobStatus
from adops.jobs.orchestrator import JobOrchestrator

if TYPE_CHECKING:
    from adops.runtime import Runtime


def create_jobs_router(
    orchestrator: JobOrchestrator,
    prefix: str = "/jobs",
    tags: list[str] | None = None,
) -> APIRouter:
    """Create the jobs router."""
    router = APIRouter(prefix=prefix, tags=tags or ["jobs"])

    @router.post("", response_model=JobSubmitResponse)
    def submit_job(request: JobCreateRequest):
        """Submit a job. Repeating an identical request returns the same job.

        Body:
        ```json
        {"type": "SYNC_USER_ASSETS", "payload": {"external_user_id": "1234"}, "owner_ref": "org1"}
        ```
        """
        try:
            submission = orchestrator.submit_job(
                request.type,
                request.payload,
                idempotency_key=request.idempotency_key,
                owner_ref=request.owner_ref,
                priority=request.priority,
                scope_ref=request.scope_ref,
                created_by=request.created_by,
                max_attempts=request.max_attempts,
            )
        except UnknownJobTypeError as e:
            raise HTTPException(status.HTTP_400_BAD_REQUEST, e.message) from e
        job = JobResponse.from_job(submission.job)
        return JobSubmitResponse(**job.model_dump(), created=submission.created)

    @router.get("", response_model=JobListResponse)
    def list_jobs(
        owner_ref: str | None = None,
        scope_ref: str | None = None,
        job_status: str | None = Query(None, alias="status"),
        job_type: str | None = Query(None, alias="type"),
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    ):
        """List jobs, newest first."""
        status_enum = None
        if job_status:
            try:
                status_enum = JobStatus(job_status)
            except ValueError:
                raise HTTPException(status.HTTP_400_BAD_REQUEST, f"Invalid status: {job_status}") from None

        result = orchestrator.list_jobs(
            JobFilter(owner_ref=owner_ref, scope_ref=scope_ref, status=status_enum, type=job_type),
            page=page,
            page_size=page_size,
        )
        return JobListResponse.from_page(result)

    @router.get("/{job_id}", response_model=JobResponse)
    def get_job(job_id: str):
        try:
            return JobResponse.from_job(orchestrator.get_job(job_id))
        except JobNotFoundError as e:
            raise HTTPException(status.HTTP_404_NOT_FOUND, e.message) from e

    @router.post("/{job_id}/cancel", response_model=JobResponse)
    def cancel_job(job_id: str):
        """Cancel a job. Completed jobs are returned unchanged."""
        try:
            return JobResponse.from_job(orchestrator.cancel_job(job_id))
        except JobNotFoundError as e:
            raise HTTPException(status.HTTP_404_NOT_FOUND, e.message) from e

    @router.post("/{job_id}/retry", response_model=JobResponse)
    def retry_job(job_id: str):
        """Re-queue a failed job. Other statuses are returned unchanged."""
        try:
            return JobResponse.from_job(orchestrator.retry_job(job_id))
        except JobNotFoundError as e:
            raise HTTPException(status.HTTP_404_NOT_FOUND, e.message) from e

    return router


def create_credentials_router(
    runtime: Runtime,
    prefix: str = "/credentials",
    tags: list[str] | None = None,
) -> APIRouter:
    """Create the credential pool router.

    Disable and reactivate go through the runtime so the change is also
    written to the credential table.
    """
    router = APIRouter(prefix=prefix, tags=tags or ["credentials"])
    pool = runtime.pool

    @router.get("", response_model=list[CredentialResponse])
    def list_credentials():
        return [CredentialResponse(**entry) for entry in pool.status()]

    @router.post("/{credential_id}/switch", response_model=CredentialResponse)
    def switch_credential(credential_id: str):
        """Make this credential the preferred one (priority 0)."""
        try:
            credential = pool.switch_to(credential_id)
        except CredentialNotFoundError as e:
            raise HTTPException(status.HTTP_404_NOT_FOUND, e.message) from e
        return CredentialResponse(**credential.to_public_dict())

    @router.post("/{credential_id}/reactivate", response_model=CredentialResponse)
    def reactivate_credential(credential_id: str):
        try:
            credential = runtime.reactivate_credential(credential_id)
        except CredentialNotFoundError as e:
            raise HTTPException(status.HTTP_404_NOT_FOUND, e.message) from e
        return CredentialResponse(**credential.to_public_dict())

    @router.post("/{credential_id}/disable", response_model=CredentialResponse)
    def disable_credential(credential_id: str):
        """Take a credential out of rotation until it is reactivated."""
        try:
            credential = runtime.disable_credential(credential_id)
        except CredentialNotFoundError as e:
            raise HTTPException(status.HTTP_404_NOT_FOUND, e.message) from e
        return CredentialResponse(**credential.to_public_dict())

    @router.post("/reload", response_model=CredentialReloadResponse)
    def reload_credentials():
        """Reload the pool from storage, e.g. after ``adops credentials add``."""
        loaded = runtime.reload_credentials()
        return CredentialReloadResponse(
            loaded=loaded,
            credentials=[CredentialResponse(**entry) for entry in pool.status()],
        )

    return router


def create_health_router(runtime: Runtime) -> APIRouter:
    router = APIRouter(tags=["health"])

    @router.get("/health", response_model=HealthResponse)
    def health():
        try:
            with runtime.store.lock:
                runtime.store.connection.execute("SELECT 1").fetchone()
            database = "ok"
        except Exception as e:
            database = f"error: {e}"

        counts: dict[str, int] = {}
        for entry in runtime.pool.status():
            counts[entry["status"]] = counts.get(entry["status"], 0) + 1

        return HealthResponse(
            status="healthy" if database == "ok" else "degraded",
            database=database,
            dispatch_mode=runtime.dispatcher.mode,
            credentials=counts,
            operations=runtime.registry.list_types(),
        )

    @router.get("/operations", response_model=list[OperationResponse])
    def list_operations():
        """Job types this process can execute."""
        return [OperationResponse(**entry) for entry in runtime.registry.list_with_metadata()]

    return router
