"""Process runtime - builds and owns the object graph.

Everything is constructed explicitly, in dependency order, and injected:

    settings
      └── connection ─┬── SqliteJobStore
                      └── SqliteCredentialStore (+ static ADOPS_API_TOKENS)
      └── ResourcePool(HealthTracker) ── loaded once from the credential stores
      └── ResilientClient(pool, httpx.Client)
      └── OperationRegistry + built-in operations
      └── JobWorker(store, registry)
      └── Dispatcher (chosen once: queue or inline)
      └── JobOrchestrator(store, registry, dispatcher)

``get_runtime()`` caches one instance per process for the API server and
the Celery worker; tests call ``build_runtime`` with their own settings.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

import httpx

from adops.client.backoff import ExponentialBackoff
from adops.client.resilient import ResilientClient
from adops.core.settings import AdopsSettings, get_settings
from adops.credentials.health import HealthTracker
from adops.credentials.models import Credential, CredentialStatus
from adops.credentials.pool import ResourcePool
from adops.credentials.store import SqliteCredentialStore, StaticCredentialStore
from adops.jobs.dispatch import Dispatcher, build_dispatcher
from adops.jobs.orchestrator import JobOrchestrator
from adops.jobs.registry import OperationRegistry
from adops.jobs.store import SqliteJobStore
from adops.jobs.worker import JobWorker
from adops.observability.logging import get_logger
from adops.operations import register_builtin_operations

logger = get_logger(__name__)


@dataclass
class Runtime:
    """The wired components of one process."""

    settings: AdopsSettings
    store: SqliteJobStore
    credential_store: SqliteCredentialStore
    pool: ResourcePool
    http: httpx.Client
    client: ResilientClient
    registry: OperationRegistry
    worker: JobWorker
    dispatcher: Dispatcher
    orchestrator: JobOrchestrator
    backoff: ExponentialBackoff

    def reload_credentials(self) -> int:
        """Reload the pool from the credential stores (resets health state)."""
        return load_pool(self.pool, self.credential_store, self.settings)

    def disable_credential(self, credential_id: str) -> Credential:
        """Take a credential out of rotation, persisted when it is stored."""
        credential = self.pool.disable(credential_id)
        persisted = self.credential_store.set_status(credential_id, CredentialStatus.DISABLED)
        logger.info("credential_disable_recorded", credential_id=credential_id, persisted=persisted)
        return credential

    def reactivate_credential(self, credential_id: str) -> Credential:
        credential = self.pool.reactivate(credential_id)
        self.credential_store.set_status(credential_id, CredentialStatus.ACTIVE)
        return credential

    def close(self) -> None:
        self.http.close()
        self.store.close()


def load_pool(pool: ResourcePool, credential_store: SqliteCredentialStore, settings: AdopsSettings) -> int:
    """Database credentials first, then static tokens not already present."""
    count = pool.initialize(credential_store)
    known = {c["id"] for c in pool.status()}
    for credential in StaticCredentialStore(settings.api_tokens).load_active_credentials():
        if credential.id in known or pool.find_by_secret(credential.secret):
            continue
        pool.add(Credential(id=credential.id, secret=credential.secret, label=credential.label))
        count += 1
    return count


def build_runtime(
    settings: AdopsSettings | None = None,
    http: httpx.Client | None = None,
    dispatcher: Dispatcher | None = None,
) -> Runtime:
    """Construct the full object graph from *settings*."""
    settings = settings or get_settings()

    store = SqliteJobStore(db_path=settings.database_path)
    credential_store = SqliteCredentialStore(store.connection, lock=store.lock)

    pool = ResourcePool(
        HealthTracker(
            cool_down_seconds=settings.pool_cool_down_seconds,
            failure_threshold=settings.pool_failure_threshold,
        )
    )
    load_pool(pool, credential_store, settings)

    backoff = ExponentialBackoff(
        base_delay=settings.backoff_base_delay,
        max_delay=settings.backoff_max_delay,
        jitter=settings.backoff_jitter,
    )
    http = http or httpx.Client(timeout=settings.client_timeout)
    client = ResilientClient(
        pool,
        http,
        base_url=settings.api_root,
        max_attempts=settings.client_max_attempts,
        backoff=backoff,
    )

    registry = register_builtin_operations(OperationRegistry(), client)
    worker = JobWorker(store, registry)
    dispatcher = dispatcher or build_dispatcher(settings, worker)
    orchestrator = JobOrchestrator(store, registry, dispatcher, default_max_attempts=settings.job_max_attempts)

    logger.info(
        "runtime_built",
        database=settings.database_path,
        dispatch_mode=dispatcher.mode,
        credentials=len(pool),
        operations=registry.list_types(),
    )
    return Runtime(
        settings=settings,
        store=store,
        credential_store=credential_store,
        pool=pool,
        http=http,
        client=client,
        registry=registry,
        worker=worker,
        dispatcher=dispatcher,
        orchestrator=orchestrator,
        backoff=backoff,
    )


_runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Process-wide runtime, built on first use."""
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            _runtime = build_runtime()
        return _runtime


def set_runtime(runtime: Runtime | None) -> None:
    """Install (or clear, with None) the process-wide runtime."""
    global _runtime
    with _runtime_lock:
        _runtime = runtime
