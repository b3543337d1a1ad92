"""Job orchestrator - idempotent creation, dispatch, cancel, retry, list.

WHY
───
Dashboards double-submit: a user clicks twice, a webhook is redelivered, a
client retries after a timeout. The orchestrator turns every submission
into at most one job per idempotency key and dispatches only the
submission that actually created it. Re-running a job is a separate,
explicit ``retry_job``.

ARCHITECTURE
────────────
::

    submit_job(type, payload, ...)
      ├── registry.validate(type)          unknown → UnknownJobTypeError, nothing stored
      ├── key = given or compute_idempotency_key(type, owner, payload)
      ├── store.insert_if_absent(job)      (job, created)
      └── created? dispatcher.dispatch(job.id, priority)

    cancel_job(id)   queued|running|failed → cancelled   (completed/cancelled: no-op)
    retry_job(id)    failed → queued, clear last_error/finished_at, dispatch
    list_jobs(...)   newest first, page_size clamped to 1..200

Invalid operator transitions are no-ops that return the job unchanged.

Related modules:
    store.py     - atomic insert-if-absent and conditional transitions
    dispatch.py  - queue or inline dispatch
    worker.py    - execution and the running → completed/failed edges

Tags:
    adops-core, jobs, orchestrator, idempotency

Doc-Types:
    api-reference
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from adops.core.errors import JobNotFoundError
from adops.core.hashing import compute_idempotency_key
from adops.jobs.dispatch import Dispatcher, DispatchReceipt
from adops.jobs.models import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_PRIORITY,
    Job,
    JobFilter,
    JobPage,
    JobStatus,
    JobSubmission,
    PageRequest,
    new_job_id,
)
from adops.jobs.registry import OperationRegistry
from adops.jobs.store import JobStore
from adops.observability.logging import get_logger

logger = get_logger(__name__)

_CANCELLABLE = (JobStatus.QUEUED, JobStatus.RUNNING, JobStatus.FAILED)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class JobOrchestrator:
    """Entry point for creating and managing automation jobs.

    Example:
        >>> orchestrator = JobOrchestrator(store, registry, InlineDispatcher(worker))
        >>> job = orchestrator.create_job("ECHO", {"x": 1}, owner_ref="org1")
        >>> job.status
        <JobStatus.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        store: JobStore,
        registry: OperationRegistry,
        dispatcher: Dispatcher,
        default_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self._store = store
        self._registry = registry
        self._dispatcher = dispatcher
        self._default_max_attempts = default_max_attempts

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    # ------------------------------------------------------------------ #
    # Creation
    # ------------------------------------------------------------------ #

    def submit_job(
        self,
        job_type: str,
        payload: Any = None,
        idempotency_key: str | None = None,
        owner_ref: str | None = None,
        priority: int = DEFAULT_PRIORITY,
        *,
        scope_ref: str | None = None,
        created_by: str | None = None,
        max_attempts: int | None = None,
    ) -> JobSubmission:
        """Create a job unless one with the same idempotency key exists.

        Returns:
            ``JobSubmission(job, created)``. Only a created job is dispatched.

        Raises:
            UnknownJobTypeError: If *job_type* has no registered operation
        """
        self._registry.validate(job_type)

        key = idempotency_key or compute_idempotency_key(job_type, owner_ref, payload)
        candidate = Job(
            id=new_job_id(),
            type=job_type,
            idempotency_key=key,
            status=JobStatus.QUEUED,
            payload=payload,
            max_attempts=max_attempts or self._default_max_attempts,
            priority=priority,
            owner_ref=owner_ref,
            scope_ref=scope_ref,
            created_by=created_by,
            queued_at=utcnow(),
        )
        job, created = self._store.insert_if_absent(candidate)

        if not created:
            logger.info("job_deduplicated", job_id=job.id, job_type=job.type, status=job.status.value)
            return JobSubmission(job=job, created=False)

        logger.info("job_created", job_id=job.id, job_type=job.type, owner_ref=owner_ref, priority=priority)
        receipt = self._dispatch(job)
        if receipt.mode == "inline":
            job = self._store.find_by_id(job.id) or job
        return JobSubmission(job=job, created=True)

    def create_job(
        self,
        job_type: str,
        payload: Any = None,
        idempotency_key: str | None = None,
        owner_ref: str | None = None,
        priority: int = DEFAULT_PRIORITY,
        **kwargs: Any,
    ) -> Job:
        """Same as :meth:`submit_job` but returns only the job."""
        return self.submit_job(job_type, payload, idempotency_key, owner_ref, priority, **kwargs).job

    # ------------------------------------------------------------------ #
    # Operator actions
    # ------------------------------------------------------------------ #

    def cancel_job(self, job_id: str) -> Job:
        """Cancel a job that has not completed.

        A running operation is not interrupted; the worker will not
        overwrite the cancellation when it finishes.
        """
        job = self.get_job(job_id)
        if job.status in (JobStatus.COMPLETED, JobStatus.CANCELLED):
            logger.info("job_cancel_ignored", job_id=job_id, status=job.status.value)
            return job

        cancelled = self._store.atomic_transition(
            job_id,
            _CANCELLABLE,
            JobStatus.CANCELLED,
            {"finished_at": utcnow()},
        )
        if cancelled is None:
            # Completed between the read and the update
            return self.get_job(job_id)
        logger.info("job_cancelled", job_id=job_id, previous=job.status.value)
        return cancelled

    def retry_job(self, job_id: str) -> Job:
        """Re-queue a failed job and dispatch it again. Other statuses: no-op."""
        job = self.get_job(job_id)
        if job.status != JobStatus.FAILED:
            logger.info("job_retry_ignored", job_id=job_id, status=job.status.value)
            return job

        requeued = self._store.atomic_transition(
            job_id,
            JobStatus.FAILED,
            JobStatus.QUEUED,
            {"last_error": None, "finished_at": None},
        )
        if requeued is None:
            return self.get_job(job_id)

        logger.info("job_retried", job_id=job_id, attempts=requeued.attempts)
        receipt = self._dispatch(requeued)
        if receipt.mode == "inline":
            return self.get_job(job_id)
        return requeued

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get_job(self, job_id: str) -> Job:
        job = self._store.find_by_id(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(
        self,
        job_filter: JobFilter | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> JobPage:
        return self._store.list(job_filter or JobFilter(), PageRequest(page=page, page_size=page_size))

    def _dispatch(self, job: Job) -> DispatchReceipt:
        receipt = self._dispatcher.dispatch(job.id, job.priority)
        logger.debug(
            "job_dispatched",
            job_id=job.id,
            mode=receipt.mode,
            external_ref=receipt.external_ref,
            error=receipt.error,
        )
        return receipt
