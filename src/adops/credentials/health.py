"""Per-credential health tracking: rate-limit cool-down and circuit breaker.

Two independent policies act on a credential after each use:

    Rate limit (timed):
        A rate-limit signal moves the credential to RATE_LIMITED with
        ``rate_limit_until = now + cool_down``, regardless of failure count.
        Once the window elapses the credential is eligible again and the
        next success restores ACTIVE.

    Circuit breaker (manual):
        ``failure_threshold`` consecutive non-rate-limit failures with no
        intervening success move the credential to FAILED. Only an explicit
        ``reactivate`` brings it back.

States:
    ACTIVE ──rate limit──▶ RATE_LIMITED ──window elapsed + success──▶ ACTIVE
    ACTIVE ──N failures──▶ FAILED ──reactivate──▶ ACTIVE
    any ──disable──▶ DISABLED

The tracker is stateless apart from its policy; it mutates the credential
it is handed and the caller (the pool) provides locking and ``now``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from adops.core.errors import RateLimitError
from adops.credentials.models import Credential, CredentialStatus

# Error codes the Graph API uses for throttling:
# 4 app-level, 17 user-level, 32 page-level, 613 custom rate limit.
RATE_LIMIT_CODES = frozenset({4, 17, 32, 613})
RATE_LIMIT_HTTP_STATUSES = frozenset({429})
RATE_LIMIT_PATTERNS = ("rate limit", "request limit")
# "(#4)" or "#17:" but never "(#400)" or "#1705".
RATE_LIMIT_CODE_PATTERN = re.compile(r"#(?:4|17|32|613)(?!\d)")


class FailureKind(str, Enum):
    """Classification of a reported failure."""

    RATE_LIMIT = "rate_limit"
    ERROR = "error"


def is_rate_limit_signal(
    code: int | None = None,
    message: str | None = None,
    http_status: int | None = None,
) -> bool:
    """Match raw API error fields against the known rate-limit signals."""
    if code is not None and code in RATE_LIMIT_CODES:
        return True
    if http_status is not None and http_status in RATE_LIMIT_HTTP_STATUSES:
        return True
    if message:
        lowered = message.lower()
        if any(pattern in lowered for pattern in RATE_LIMIT_PATTERNS):
            return True
        return RATE_LIMIT_CODE_PATTERN.search(message) is not None
    return False


def classify_failure(error: BaseException | str | None) -> FailureKind:
    """Decide whether ``error`` is a rate-limit signal."""
    if isinstance(error, RateLimitError):
        return FailureKind.RATE_LIMIT
    if error is None:
        return FailureKind.ERROR
    code = getattr(error, "code", None)
    http_status = getattr(error, "http_status", None)
    if is_rate_limit_signal(code if isinstance(code, int) else None, str(error), http_status):
        return FailureKind.RATE_LIMIT
    return FailureKind.ERROR


@dataclass
class HealthTracker:
    """Applies the cool-down and circuit-breaker policies to credentials.

    Attributes:
        cool_down_seconds: Length of the rate-limit window
        failure_threshold: Consecutive failures before the circuit opens
    """

    cool_down_seconds: float = 300.0
    failure_threshold: int = 3

    def is_selectable(self, credential: Credential, now: datetime) -> bool:
        """Eligible for normal selection.

        ACTIVE credentials outside any window, and RATE_LIMITED ones whose
        window has elapsed. FAILED and DISABLED never are.
        """
        if credential.status in (CredentialStatus.FAILED, CredentialStatus.DISABLED):
            return False
        return not credential.cooling_down(now)

    def record_success(self, credential: Credential, now: datetime) -> None:
        credential.failure_count = 0
        if credential.rate_limit_until is not None and not credential.cooling_down(now):
            credential.rate_limit_until = None
            if credential.status == CredentialStatus.RATE_LIMITED:
                credential.status = CredentialStatus.ACTIVE

    def record_failure(
        self,
        credential: Credential,
        error: BaseException | str | None,
        now: datetime,
    ) -> FailureKind:
        """Count the failure and apply the matching policy."""
        credential.failure_count += 1
        kind = classify_failure(error)
        if kind is FailureKind.RATE_LIMIT:
            if credential.status in (CredentialStatus.ACTIVE, CredentialStatus.RATE_LIMITED):
                credential.status = CredentialStatus.RATE_LIMITED
            credential.rate_limit_until = now + timedelta(seconds=self.cool_down_seconds)
        elif credential.failure_count >= self.failure_threshold and credential.status in (
            CredentialStatus.ACTIVE,
            CredentialStatus.RATE_LIMITED,
        ):
            credential.status = CredentialStatus.FAILED
        return kind

    def reset(self, credential: Credential) -> None:
        """Manual reactivation: close the circuit and clear any window."""
        credential.status = CredentialStatus.ACTIVE
        credential.failure_count = 0
        credential.rate_limit_until = None
