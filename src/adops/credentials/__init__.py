"""Credential pool - health-aware rotation of external-API tokens.

ARCHITECTURE
────────────
::

    CredentialStore ──load_active_credentials()──▶ ResourcePool
                                                    ├── HealthTracker (cool-down, circuit breaker)
                                                    └── select / report_success / report_failure
"""

from adops.credentials.health import FailureKind, HealthTracker, classify_failure, is_rate_limit_signal
from adops.credentials.models import Credential, CredentialStatus
from adops.credentials.pool import ResourcePool
from adops.credentials.store import CredentialStore, SqliteCredentialStore, StaticCredentialStore

__all__ = [
    "Credential",
    "CredentialStatus",
    "CredentialStore",
    "FailureKind",
    "HealthTracker",
    "ResourcePool",
    "SqliteCredentialStore",
    "StaticCredentialStore",
    "classify_failure",
    "is_rate_limit_signal",
]
