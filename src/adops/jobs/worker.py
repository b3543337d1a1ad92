"""Job worker - claims a job and runs its domain operation.

The same ``JobWorker.execute`` runs behind both dispatch paths: the Celery
task calls it in a worker process, the inline dispatcher calls it in the
request that created the job. Both therefore follow one state machine.

Execution steps:
    1. Load the job. Missing → ``JobNotFoundError`` (integrity violation).
    2. COMPLETED → skipped with the stored result (redelivery is safe).
       CANCELLED → skipped, nothing runs.
    3. Claim ``queued → running`` in one conditional UPDATE that also
       stamps ``started_at`` (first claim only) and increments ``attempts``.
       A lost claim abstains (``not_claimable``).
    4. Resolve the operation. Unknown type → FAILED, non-retryable error.
    5. Run it. Success → COMPLETED with result. Failure → FAILED with
       ``last_error``, then re-raise so the dispatch channel can apply its
       own redelivery policy. Both writes require the job to still be
       RUNNING, so an operator cancel is never overwritten.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from adops.core.errors import JobNotFoundError, UnknownJobTypeError, categorize_error, is_retryable
from adops.jobs.models import Job, JobStatus
from adops.jobs.registry import OperationRegistry
from adops.jobs.store import JobStore
from adops.observability.logging import get_logger, job_context

logger = get_logger(__name__)

SKIP_ALREADY_COMPLETED = "already_completed"
SKIP_CANCELLED = "cancelled"
SKIP_NOT_CLAIMABLE = "not_claimable"


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


@dataclass
class WorkerOutcome:
    """What one ``execute`` call did."""

    job_id: str
    status: JobStatus
    result: Any = None
    skipped: bool = False
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "result": self.result,
            "skipped": self.skipped,
            "reason": self.reason,
        }


def describe_error(error: BaseException) -> str:
    message = str(error)
    return message or type(error).__name__


class JobWorker:
    """Executes jobs against an operation registry."""

    def __init__(self, store: JobStore, registry: OperationRegistry):
        self._store = store
        self._registry = registry

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def registry(self) -> OperationRegistry:
        return self._registry

    def execute(self, job_id: str) -> WorkerOutcome:
        """Run one job to completion or failure.

        Raises:
            JobNotFoundError: No job with this id
            UnknownJobTypeError: No operation registered for the job type
            Exception: Whatever the operation raised, after it is recorded
        """
        job = self._store.find_by_id(job_id)
        if job is None:
            logger.error("job_missing", job_id=job_id)
            raise JobNotFoundError(job_id)

        if job.status == JobStatus.COMPLETED:
            logger.info("job_skipped", job_id=job_id, reason=SKIP_ALREADY_COMPLETED)
            return WorkerOutcome(job_id, job.status, result=job.result, skipped=True, reason=SKIP_ALREADY_COMPLETED)
        if job.status == JobStatus.CANCELLED:
            logger.info("job_skipped", job_id=job_id, reason=SKIP_CANCELLED)
            return WorkerOutcome(job_id, job.status, skipped=True, reason=SKIP_CANCELLED)

        claimed = self._store.atomic_transition(
            job_id,
            JobStatus.QUEUED,
            JobStatus.RUNNING,
            {"started_at": utcnow()},
            increment_attempts=True,
        )
        if claimed is None:
            current = self._store.find_by_id(job_id) or job
            logger.info("job_skipped", job_id=job_id, reason=SKIP_NOT_CLAIMABLE, status=current.status.value)
            return WorkerOutcome(job_id, current.status, skipped=True, reason=SKIP_NOT_CLAIMABLE)

        with job_context(job_id=claimed.id, job_type=claimed.type, attempt=claimed.attempts):
            return self._run(claimed)

    def _run(self, job: Job) -> WorkerOutcome:
        try:
            operation = self._registry.get(job.type)
        except UnknownJobTypeError as exc:
            self._record_failure(job, exc)
            logger.error("job_type_unknown", error=exc.message)
            raise

        logger.info("job_started")
        try:
            result = operation(job.payload)
        except Exception as exc:
            self._record_failure(job, exc)
            logger.warning(
                "job_failed",
                error=describe_error(exc),
                error_type=type(exc).__name__,
                category=categorize_error(exc).value,
                retryable=is_retryable(exc),
            )
            raise

        done = self._store.atomic_transition(
            job.id,
            JobStatus.RUNNING,
            JobStatus.COMPLETED,
            {"result": result, "finished_at": utcnow(), "last_error": None},
        )
        if done is None:
            current = self._store.find_by_id(job.id) or job
            logger.info("job_result_discarded", status=current.status.value)
            return WorkerOutcome(job.id, current.status, skipped=True, reason=SKIP_CANCELLED)

        logger.info("job_completed")
        return WorkerOutcome(job.id, JobStatus.COMPLETED, result=result)

    def _record_failure(self, job: Job, error: BaseException) -> None:
        failed = self._store.atomic_transition(
            job.id,
            JobStatus.RUNNING,
            JobStatus.FAILED,
            {"last_error": describe_error(error), "finished_at": utcnow()},
        )
        if failed is None:
            logger.info("job_failure_not_recorded", reason="no_longer_running")
