"""Job records - automation job state and status.

Defines ``Job`` and ``JobStatus``, the canonical record of an automation
job, plus the filter/page types used to list jobs. Every execution path
(queue worker, inline fallback, operator actions) moves jobs through the
same state machine.

Manifesto:
    A job is created once per idempotency key and then only ever moves
    along ``JOB_VALID_TRANSITIONS``. Payload and result are opaque JSON
    values; nothing in the orchestration layer looks inside them.

Tags:
    adops-core, jobs, state-machine, job-record

Doc-Types:
    api-reference
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from adops.core.errors import InvalidTransitionError

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_PRIORITY = 1
MAX_PAGE_SIZE = 200


class JobStatus(str, Enum):
    """Job status - the canonical state machine.

    Valid transition graph::

        QUEUED    → RUNNING | CANCELLED
        RUNNING   → COMPLETED | FAILED | CANCELLED
        FAILED    → QUEUED (retry) | CANCELLED
        COMPLETED → (terminal)
        CANCELLED → (terminal)
    """

    QUEUED = "queued"  # Waiting for a worker
    RUNNING = "running"  # Claimed by a worker
    COMPLETED = "completed"  # Finished successfully, result set
    FAILED = "failed"  # Finished with error, last_error set
    CANCELLED = "cancelled"  # Cancelled by an operator

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.CANCELLED)


JOB_VALID_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({
        JobStatus.RUNNING,
        JobStatus.CANCELLED,
    }),
    JobStatus.RUNNING: frozenset({
        JobStatus.COMPLETED,
        JobStatus.FAILED,
        JobStatus.CANCELLED,
    }),
    JobStatus.FAILED: frozenset({
        JobStatus.QUEUED,  # retry
        JobStatus.CANCELLED,
    }),
    JobStatus.COMPLETED: frozenset(),  # terminal
    JobStatus.CANCELLED: frozenset(),  # terminal
}


def validate_job_transition(current: JobStatus, target: JobStatus) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal.

    Example:
        >>> validate_job_transition(JobStatus.RUNNING, JobStatus.COMPLETED)
        >>> validate_job_transition(JobStatus.COMPLETED, JobStatus.RUNNING)
        Traceback (most recent call last):
        ...
        adops.core.errors.InvalidTransitionError: Invalid job status transition: completed -> running
    """
    allowed = JOB_VALID_TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise InvalidTransitionError(current.value, target.value)


def sources_for(target: JobStatus) -> frozenset[JobStatus]:
    """All statuses from which *target* is reachable in one step."""
    return frozenset(status for status, allowed in JOB_VALID_TRANSITIONS.items() if target in allowed)


def new_job_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Job:
    """Automation job - the durable tracking record.

    Example:
        >>> job = Job(
        ...     id=new_job_id(),
        ...     type="SYNC_USER_ASSETS",
        ...     idempotency_key="4f0c...",
        ...     payload={"external_user_id": "1234"},
        ... )
    """

    id: str
    """Opaque unique identifier, immutable"""

    type: str
    """Discriminator selecting the domain operation"""

    idempotency_key: str
    """Globally unique; at most one job per key ever exists"""

    status: JobStatus = JobStatus.QUEUED

    payload: Any = None
    """Operation input, opaque to the orchestration layer"""

    result: Any = None
    """Operation output, set only on completion"""

    # === RETRY TRACKING ===
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    last_error: str | None = None

    # === ROUTING / FILTERING ===
    priority: int = DEFAULT_PRIORITY
    owner_ref: str | None = None
    """Owning organization or account; a filter hint, never interpreted"""

    scope_ref: str | None = None
    created_by: str | None = None

    # === TIMESTAMPS ===
    queued_at: datetime | None = None
    started_at: datetime | None = None
    """First claim only; never overwritten by later attempts"""

    finished_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "id": self.id,
            "type": self.type,
            "idempotency_key": self.idempotency_key,
            "status": self.status.value,
            "payload": self.payload,
            "result": self.result,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "last_error": self.last_error,
            "priority": self.priority,
            "owner_ref": self.owner_ref,
            "scope_ref": self.scope_ref,
            "created_by": self.created_by,
            "queued_at": _iso(self.queued_at),
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "updated_at": _iso(self.updated_at),
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class JobFilter:
    """Read-only projection over jobs. None fields do not filter."""

    owner_ref: str | None = None
    scope_ref: str | None = None
    status: JobStatus | None = None
    type: str | None = None


@dataclass
class PageRequest:
    """1-based pagination; ``page_size`` is clamped to 1..200."""

    page: int = 1
    page_size: int = 20

    def __post_init__(self) -> None:
        self.page = max(1, int(self.page))
        self.page_size = min(MAX_PAGE_SIZE, max(1, int(self.page_size)))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass
class JobPage:
    """One page of jobs, newest first."""

    items: list[Job] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [job.to_dict() for job in self.items],
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
        }


@dataclass(frozen=True)
class JobSubmission:
    """Outcome of an idempotent create: the job and whether it is new."""

    job: Job
    created: bool
