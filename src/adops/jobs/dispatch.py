"""Dispatchers - how a newly queued job reaches a worker.

WHY
───
The Celery broker is optional infrastructure. When it is reachable, jobs
are handed off fire-and-forget; when it is not, the job runs inline in the
request that created it, so nothing is ever stuck in ``queued`` because
Redis is down. Both paths call the same ``JobWorker.execute``.

ARCHITECTURE
────────────
::

    Dispatcher (Protocol)
      └── .dispatch(job_id, priority) -> DispatchReceipt

    Implementations:
      QueueDispatcher   ─ celery_app.send_task("adops.jobs.execute")
                          falls back to inline if the send itself fails
      InlineDispatcher  ─ JobWorker.execute() in the caller's thread

    build_dispatcher(settings, worker)
      ├── dispatch_mode="queue"   → QueueDispatcher
      ├── dispatch_mode="inline"  → InlineDispatcher
      └── dispatch_mode="auto"    → Redis PING once at startup, then either

Related modules:
    tasks.py   - Celery app and the task QueueDispatcher targets
    worker.py  - JobWorker used by both paths

Tags:
    adops-core, jobs, dispatch, celery, inline-fallback

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import redis
from kombu.exceptions import OperationalError

from adops.core.errors import DispatchError
from adops.jobs.worker import JobWorker, WorkerOutcome, describe_error
from adops.observability.logging import get_logger

if TYPE_CHECKING:
    from celery import Celery

    from adops.core.settings import AdopsSettings

logger = get_logger(__name__)

EXECUTE_TASK_NAME = "adops.jobs.execute"

# Redis transport supports priorities 0..9
MIN_PRIORITY = 0
MAX_PRIORITY = 9


@dataclass
class DispatchReceipt:
    """Result of handing a job to a dispatcher."""

    job_id: str
    mode: str
    """``queue`` or ``inline``"""

    external_ref: str | None = None
    """Celery task id for queued dispatch"""

    outcome: WorkerOutcome | None = None
    """Worker outcome for inline dispatch"""

    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@runtime_checkable
class Dispatcher(Protocol):
    """Hands a queued job to whatever will execute it."""

    @property
    def mode(self) -> str: ...

    def dispatch(self, job_id: str, priority: int = 1) -> DispatchReceipt: ...


class InlineDispatcher:
    """Runs the worker synchronously in the caller's thread.

    Operation failures are already recorded on the job by the worker; here
    they are logged and carried on the receipt instead of propagating into
    the request that created the job.
    """

    mode = "inline"

    def __init__(self, worker: JobWorker):
        self._worker = worker

    def dispatch(self, job_id: str, priority: int = 1) -> DispatchReceipt:
        try:
            outcome = self._worker.execute(job_id)
        except Exception as exc:
            logger.warning(
                "inline_dispatch_failed",
                job_id=job_id,
                error=describe_error(exc),
                error_type=type(exc).__name__,
            )
            return DispatchReceipt(job_id=job_id, mode=self.mode, error=describe_error(exc))
        return DispatchReceipt(job_id=job_id, mode=self.mode, external_ref="inline", outcome=outcome)


class QueueDispatcher:
    """Sends the job id to the Celery task; fire-and-forget.

    Example:
        >>> dispatcher = QueueDispatcher(celery_app, fallback=InlineDispatcher(worker))
        >>> dispatcher.dispatch(job.id, priority=1).external_ref
        'c0ffee...'
    """

    mode = "queue"

    def __init__(
        self,
        celery_app: Celery,
        fallback: Dispatcher | None = None,
        task_name: str = EXECUTE_TASK_NAME,
    ):
        self.celery_app = celery_app
        self._fallback = fallback
        self._task_name = task_name

    def dispatch(self, job_id: str, priority: int = 1) -> DispatchReceipt:
        try:
            task_id = self.send(job_id, priority)
        except DispatchError as exc:
            logger.warning("queue_dispatch_failed", job_id=job_id, error=exc.message, fallback=bool(self._fallback))
            if self._fallback is None:
                return DispatchReceipt(job_id=job_id, mode=self.mode, error=exc.message)
            return self._fallback.dispatch(job_id, priority)

        logger.debug("job_enqueued", job_id=job_id, task_id=task_id, priority=priority)
        return DispatchReceipt(job_id=job_id, mode=self.mode, external_ref=task_id)

    def send(self, job_id: str, priority: int = 1) -> str:
        """Publish the execute task. Returns the Celery task id.

        Raises:
            DispatchError: The broker refused or could not be reached
        """
        try:
            result = self.celery_app.send_task(
                self._task_name,
                args=[job_id],
                priority=clamp_priority(priority),
            )
        except (OperationalError, redis.exceptions.ConnectionError, OSError) as exc:
            raise DispatchError(describe_error(exc), cause=exc).with_context(job_id=job_id) from exc
        return result.id


def clamp_priority(priority: int) -> int:
    return max(MIN_PRIORITY, min(MAX_PRIORITY, int(priority)))


def probe_broker(url: str, timeout: float = 3.0) -> bool:
    """One Redis PING against the broker; False on any connection problem."""
    client = redis.Redis.from_url(url, socket_timeout=timeout, socket_connect_timeout=timeout)
    try:
        return bool(client.ping())
    except (redis.exceptions.RedisError, OSError) as exc:
        logger.info("broker_unreachable", url=_redact(url), error=str(exc))
        return False
    finally:
        client.close()


def _redact(url: str) -> str:
    # redis://:password@host -> redis://***@host
    if "@" in url and "://" in url:
        scheme, rest = url.split("://", 1)
        return f"{scheme}://***@{rest.split('@', 1)[1]}"
    return url


def build_dispatcher(
    settings: AdopsSettings,
    worker: JobWorker,
    celery_app: Any | None = None,
    probe: Callable[[str, float], bool] = probe_broker,
) -> Dispatcher:
    """Choose the dispatch strategy once, at startup."""
    inline = InlineDispatcher(worker)
    mode = settings.dispatch_mode

    if mode == "inline":
        use_queue = False
    elif mode == "queue":
        use_queue = True
    else:
        use_queue = probe(settings.broker_url, settings.probe_timeout)

    if not use_queue:
        logger.info("dispatcher_selected", mode=inline.mode, configured=mode)
        return inline

    if celery_app is None:
        from adops.jobs.tasks import create_celery_app

        celery_app = create_celery_app(settings)
    logger.info("dispatcher_selected", mode=QueueDispatcher.mode, configured=mode)
    return QueueDispatcher(celery_app, fallback=inline)
