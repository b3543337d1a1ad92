"""
Shared pytest fixtures for adops-core tests.

This module provides:
- An in-memory job store and an operation registry with test operations
- A worker / inline orchestrator wired the way the runtime wires them
- A credential pool loaded from static tokens
- Runtime reset so no test leaks a process-wide runtime

Usage:
    def test_something(orchestrator):
        job = orchestrator.create_job("ECHO", {"x": 1})
"""

from collections.abc import Generator
from pathlib import Path

import pytest

from adops.core.errors import NetworkError
from adops.credentials.pool import ResourcePool
from adops.credentials.store import StaticCredentialStore
from adops.jobs.dispatch import InlineDispatcher
from adops.jobs.orchestrator import JobOrchestrator
from adops.jobs.registry import OperationRegistry
from adops.jobs.store import SqliteJobStore
from adops.jobs.worker import JobWorker
from adops.runtime import set_runtime


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if "integration" in str(test_path) or "scenario" in item.name:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Runtime isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clear_runtime() -> Generator[None, None, None]:
    set_runtime(None)
    yield
    set_runtime(None)


# =============================================================================
# Jobs
# =============================================================================


class Calls:
    """Records operation invocations."""

    def __init__(self):
        self.payloads: list = []

    def __len__(self) -> int:
        return len(self.payloads)


@pytest.fixture
def store() -> Generator[SqliteJobStore, None, None]:
    job_store = SqliteJobStore(db_path=":memory:")
    yield job_store
    job_store.close()


@pytest.fixture
def calls() -> Calls:
    return Calls()


@pytest.fixture
def registry(calls: Calls) -> OperationRegistry:
    """ECHO returns its payload, BOOM raises ValueError, FLAKY raises NetworkError."""
    reg = OperationRegistry()

    @reg.operation("ECHO")
    def echo(payload):
        calls.payloads.append(payload)
        return payload

    @reg.operation("BOOM")
    def boom(payload):
        calls.payloads.append(payload)
        raise ValueError("boom")

    @reg.operation("FLAKY")
    def flaky(payload):
        calls.payloads.append(payload)
        raise NetworkError("connection reset")

    return reg


@pytest.fixture
def worker(store: SqliteJobStore, registry: OperationRegistry) -> JobWorker:
    return JobWorker(store, registry)


@pytest.fixture
def orchestrator(store: SqliteJobStore, registry: OperationRegistry, worker: JobWorker) -> JobOrchestrator:
    """Orchestrator with inline dispatch: jobs run during submission."""
    return JobOrchestrator(store, registry, InlineDispatcher(worker))


class RecordingDispatcher:
    """Dispatcher that only records what it was handed."""

    mode = "queue"

    def __init__(self):
        self.dispatched: list[tuple[str, int]] = []

    def dispatch(self, job_id: str, priority: int = 1):
        from adops.jobs.dispatch import DispatchReceipt

        self.dispatched.append((job_id, priority))
        return DispatchReceipt(job_id=job_id, mode=self.mode, external_ref=f"task-{len(self.dispatched)}")


@pytest.fixture
def recording_dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def queued_orchestrator(
    store: SqliteJobStore,
    registry: OperationRegistry,
    recording_dispatcher: RecordingDispatcher,
) -> JobOrchestrator:
    """Orchestrator whose jobs stay queued until a test runs the worker."""
    return JobOrchestrator(store, registry, recording_dispatcher)


# =============================================================================
# Credentials
# =============================================================================


@pytest.fixture
def pool() -> ResourcePool:
    """Three static credentials: static-0 (priority 0) .. static-2."""
    return ResourcePool.from_store(StaticCredentialStore(["tok-a", "tok-b", "tok-c"]))
