"""Resource pool: health-aware credential rotation.

The pool owns the process-wide list of credentials and hands one out per
outbound call. Every call reports back (success or failure) so the next
caller sees current health, not just the retry loop that observed it.

Selection:
    1. Keep credentials the health tracker considers selectable
       (ACTIVE, or RATE_LIMITED with an elapsed window).
    2. Sort by ``(priority, last_used_at)``; never-used sorts first.
    3. Stamp ``last_used_at`` on the winner.
    4. If nothing qualifies, degrade to the highest-priority credential that
       is not DISABLED. The remote side may already have reset its limit,
       so the caller still attempts rather than hard-failing.

Example:
    >>> pool = ResourcePool.from_store(StaticCredentialStore(["tok-a", "tok-b"]))
    >>> cred = pool.select()
    >>> cred.id
    'static-0'
    >>> pool.report_failure(cred, RateLimitError("(#4) Application request limit reached"))
    >>> pool.select().id
    'static-1'

Thread-safety:
    One ``threading.RLock`` guards every read and write. ``select`` returns
    a copy so callers never observe a credential mid-update.
"""

from __future__ import annotations

import dataclasses
import threading
from datetime import UTC, datetime
from typing import Any

from adops.core.errors import CredentialNotFoundError
from adops.credentials.health import FailureKind, HealthTracker
from adops.credentials.models import Credential, CredentialStatus
from adops.credentials.store import CredentialStore
from adops.observability.logging import get_logger

logger = get_logger(__name__)

_NEVER = datetime.min.replace(tzinfo=UTC)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class ResourcePool:
    """Owns the credential list and the health policy applied to it."""

    def __init__(self, tracker: HealthTracker | None = None):
        self._tracker = tracker or HealthTracker()
        self._credentials: list[Credential] = []
        self._lock = threading.RLock()

    @classmethod
    def from_store(cls, store: CredentialStore, tracker: HealthTracker | None = None) -> ResourcePool:
        pool = cls(tracker)
        pool.initialize(store)
        return pool

    @property
    def tracker(self) -> HealthTracker:
        return self._tracker

    def initialize(self, store: CredentialStore) -> int:
        """(Re)load credentials; priority follows load order. Returns count."""
        loaded = store.load_active_credentials()
        with self._lock:
            self._credentials = [
                dataclasses.replace(credential, priority=index)
                for index, credential in enumerate(loaded)
            ]
        logger.info("credential_pool_initialized", count=len(loaded))
        return len(loaded)

    def add(self, credential: Credential) -> Credential:
        """Append a credential at the lowest priority."""
        with self._lock:
            existing = self._find(credential.id)
            if existing is not None:
                return dataclasses.replace(existing)
            lowest = max((c.priority for c in self._credentials), default=-1)
            added = dataclasses.replace(credential, priority=lowest + 1)
            self._credentials.append(added)
            return dataclasses.replace(added)

    def __len__(self) -> int:
        with self._lock:
            return len(self._credentials)

    # ------------------------------------------------------------------ #
    # Selection
    # ------------------------------------------------------------------ #

    def select(self) -> Credential | None:
        """Pick the credential for the next outbound call."""
        with self._lock:
            if not self._credentials:
                return None

            now = utcnow()
            eligible = [c for c in self._credentials if self._tracker.is_selectable(c, now)]
            if eligible:
                chosen = min(eligible, key=lambda c: (c.priority, c.last_used_at or _NEVER))
                chosen.last_used_at = now
                return dataclasses.replace(chosen)

            fallback = [c for c in self._credentials if c.status != CredentialStatus.DISABLED]
            if not fallback:
                return None
            chosen = min(fallback, key=lambda c: c.priority)
            logger.warning(
                "credential_pool_degraded",
                credential_id=chosen.id,
                status=chosen.status.value,
            )
            return dataclasses.replace(chosen)

    # ------------------------------------------------------------------ #
    # Health reporting
    # ------------------------------------------------------------------ #

    def report_success(self, credential: Credential | str) -> None:
        with self._lock:
            target = self._require(credential)
            self._tracker.record_success(target, utcnow())

    def report_failure(self, credential: Credential | str, error: BaseException | str | None = None) -> FailureKind:
        """Record a failed use; rate-limit signals start the cool-down."""
        with self._lock:
            target = self._require(credential)
            previous = target.status
            kind = self._tracker.record_failure(target, error, utcnow())
            if target.status != previous:
                logger.warning(
                    "credential_status_changed",
                    credential_id=target.id,
                    previous=previous.value,
                    status=target.status.value,
                    failure_count=target.failure_count,
                    reason=kind.value,
                )
            return kind

    # ------------------------------------------------------------------ #
    # Operator actions
    # ------------------------------------------------------------------ #

    def switch_to(self, credential_id: str) -> Credential:
        """Make ``credential_id`` priority 0, shifting the ones above it down."""
        with self._lock:
            target = self._find(credential_id)
            if target is None:
                raise CredentialNotFoundError(credential_id)
            current = target.priority
            for credential in self._credentials:
                if credential is not target and credential.priority < current:
                    credential.priority += 1
            target.priority = 0
            logger.info("credential_switched", credential_id=credential_id)
            return dataclasses.replace(target)

    def reactivate(self, credential_id: str) -> Credential:
        """Close the circuit of a FAILED (or DISABLED) credential."""
        with self._lock:
            target = self._find(credential_id)
            if target is None:
                raise CredentialNotFoundError(credential_id)
            self._tracker.reset(target)
            logger.info("credential_reactivated", credential_id=credential_id)
            return dataclasses.replace(target)

    def disable(self, credential_id: str) -> Credential:
        with self._lock:
            target = self._find(credential_id)
            if target is None:
                raise CredentialNotFoundError(credential_id)
            target.status = CredentialStatus.DISABLED
            logger.info("credential_disabled", credential_id=credential_id)
            return dataclasses.replace(target)

    # ------------------------------------------------------------------ #
    # Lookup
    # ------------------------------------------------------------------ #

    def is_eligible(self, credential: Credential | str) -> bool:
        """True when the credential is selectable without degrading (not cooling down, not FAILED)."""
        with self._lock:
            found = self._find(credential if isinstance(credential, str) else credential.id)
            return found is not None and self._tracker.is_selectable(found, utcnow())

    def get(self, credential_id: str) -> Credential | None:
        with self._lock:
            found = self._find(credential_id)
            return dataclasses.replace(found) if found else None

    def find_by_secret(self, secret: str) -> Credential | None:
        with self._lock:
            for credential in self._credentials:
                if credential.secret == secret:
                    return dataclasses.replace(credential)
            return None

    def status(self) -> list[dict[str, Any]]:
        """Snapshot of every credential, ordered by priority, without secrets."""
        with self._lock:
            ordered = sorted(self._credentials, key=lambda c: c.priority)
            return [c.to_public_dict() for c in ordered]

    def _find(self, credential_id: str) -> Credential | None:
        for credential in self._credentials:
            if credential.id == credential_id:
                return credential
        return None

    def _require(self, credential: Credential | str) -> Credential:
        credential_id = credential if isinstance(credential, str) else credential.id
        found = self._find(credential_id)
        if found is None:
            raise CredentialNotFoundError(credential_id)
        return found
