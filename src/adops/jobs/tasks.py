"""Celery task definitions for the automation job queue.

``QueueDispatcher`` sends ``(job_id,)`` to the ``adops.jobs.execute`` task;
a worker process started with ``adops worker`` (or directly with
``celery -A adops.jobs.tasks worker``) picks it up and runs it through the
same ``JobWorker`` the inline path uses.

Redelivery policy:
    The worker itself never loops. When an operation fails with a retryable
    error and the job has attempts left, the task moves the job
    ``failed → queued`` and schedules ``self.retry`` with an exponential
    countdown. Non-retryable errors (unknown type, API errors) stay failed.

Setup::

    celery -A adops.jobs.tasks worker --loglevel=info -Q automation.jobs -c 5

Configuration::

    ADOPS_BROKER_URL     (default: redis://localhost:6379/0)
    ADOPS_RESULT_BACKEND (default: the broker URL)
    ADOPS_WORKER_RATE_LIMIT (default: 50/m per worker)
    ADOPS_WORKER_CONCURRENCY (default: 5)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from celery import Celery, signals

from adops.core.errors import is_retryable
from adops.core.settings import AdopsSettings, get_settings
from adops.jobs.dispatch import EXECUTE_TASK_NAME
from adops.jobs.models import DEFAULT_MAX_ATTEMPTS, JobStatus
from adops.observability.logging import configure_logging, get_logger

if TYPE_CHECKING:
    from adops.runtime import Runtime

logger = get_logger(__name__)

QUEUE_NAME = "automation.jobs"


# --------------------------------------------------------------------------- #
# Celery app factory
# --------------------------------------------------------------------------- #


def create_celery_app(settings: AdopsSettings | None = None) -> Celery:
    """Build a configured Celery app with the execute task registered."""
    settings = settings or get_settings()
    celery_app = Celery(
        "adops",
        broker=settings.broker_url,
        backend=settings.celery_backend,
    )
    celery_app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        task_track_started=True,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        worker_concurrency=settings.worker_concurrency,
        task_default_queue=QUEUE_NAME,
        task_default_priority=1,
        broker_transport_options={"queue_order_strategy": "priority"},
        broker_connection_retry_on_startup=True,
    )
    register_tasks(celery_app, rate_limit=settings.worker_rate_limit or None)
    return celery_app


def register_tasks(celery_app: Celery, rate_limit: str | None = None):
    """Attach the execute task to *celery_app*. Returns the task.

    ``rate_limit`` throttles each worker instance, e.g. ``"50/m"``.
    """

    @celery_app.task(
        name=EXECUTE_TASK_NAME,
        bind=True,
        max_retries=DEFAULT_MAX_ATTEMPTS,
        rate_limit=rate_limit,
    )
    def execute(self, job_id: str) -> dict[str, Any]:
        from adops.runtime import get_runtime

        return execute_job(self, job_id, get_runtime())

    return execute


# --------------------------------------------------------------------------- #
# Task body
# --------------------------------------------------------------------------- #


def execute_job(task: Any, job_id: str, runtime: Runtime) -> dict[str, Any]:
    """Run *job_id* and apply the redelivery policy on failure.

    Args:
        task: The bound Celery task (provides ``retry`` and ``request``)
        job_id: Job to execute
        runtime: Process runtime (store, worker, backoff)

    Returns:
        ``WorkerOutcome.to_dict()``
    """
    logger.info("task_received", job_id=job_id, delivery=getattr(task.request, "retries", 0))
    try:
        outcome = runtime.worker.execute(job_id)
    except Exception as exc:
        if not is_retryable(exc):
            raise
        job = runtime.store.find_by_id(job_id)
        if job is None or job.attempts >= job.max_attempts:
            logger.warning("job_attempts_exhausted", job_id=job_id, attempts=job.attempts if job else None)
            raise
        requeued = runtime.store.atomic_transition(
            job_id,
            JobStatus.FAILED,
            JobStatus.QUEUED,
            {"finished_at": None},
        )
        if requeued is None:
            # Cancelled (or retried by an operator) in the meantime
            raise
        countdown = runtime.backoff.next_delay(job.attempts - 1)
        logger.info(
            "job_redelivery_scheduled",
            job_id=job_id,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            countdown=round(countdown, 3),
        )
        raise task.retry(exc=exc, countdown=countdown, max_retries=job.max_attempts) from exc
    return outcome.to_dict()


@signals.setup_logging.connect
def _configure_worker_logging(**kwargs: Any) -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, format=settings.log_format)


# Module-level app for ``celery -A adops.jobs.tasks``
app = create_celery_app()
