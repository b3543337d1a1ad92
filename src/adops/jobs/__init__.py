"""Automation jobs - idempotent submission, tracking, and execution.

WHY
───
Every long-running dashboard action (asset sync, publishing) becomes a job
with one lifecycle: created once per idempotency key, dispatched to a
Celery worker or run inline, retried or cancelled explicitly by an
operator.

ARCHITECTURE
────────────
::

    JobOrchestrator (submit / cancel / retry / list)
      ├── OperationRegistry ─ type → operation, validated at creation
      ├── JobStore          ─ SQLite, atomic insert-if-absent + transitions
      └── Dispatcher
            ├─ QueueDispatcher  (Celery send_task, inline fallback)
            └─ InlineDispatcher (synchronous)
      │
      ▼
    JobWorker ─ claim, run operation, record completed / failed

    ``adops.jobs.tasks`` holds the Celery app and is imported only by
    worker processes and queue dispatch.
"""

from adops.jobs.dispatch import (
    DispatchReceipt,
    Dispatcher,
    InlineDispatcher,
    QueueDispatcher,
    build_dispatcher,
    probe_broker,
)
from adops.jobs.models import (
    JOB_VALID_TRANSITIONS,
    Job,
    JobFilter,
    JobPage,
    JobStatus,
    JobSubmission,
    PageRequest,
    validate_job_transition,
)
from adops.jobs.orchestrator import JobOrchestrator
from adops.jobs.registry import OperationRegistry
from adops.jobs.store import JobStore, SqliteJobStore
from adops.jobs.worker import JobWorker, WorkerOutcome

__all__ = [
    "DispatchReceipt",
    "Dispatcher",
    "InlineDispatcher",
    "QueueDispatcher",
    "build_dispatcher",
    "probe_broker",
    "JOB_VALID_TRANSITIONS",
    "Job",
    "JobFilter",
    "JobPage",
    "JobStatus",
    "JobSubmission",
    "PageRequest",
    "validate_job_transition",
    "JobOrchestrator",
    "OperationRegistry",
    "JobStore",
    "SqliteJobStore",
    "JobWorker",
    "WorkerOutcome",
]
