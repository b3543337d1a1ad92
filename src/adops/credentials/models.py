"""Credential record shared by the pool, the health tracker and the stores."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class CredentialStatus(str, Enum):
    """Health status of a pooled credential."""

    ACTIVE = "active"
    RATE_LIMITED = "rate_limited"  # Cooling down until rate_limit_until
    FAILED = "failed"  # Circuit open, manual reactivation required
    DISABLED = "disabled"  # Operator removed it from rotation


@dataclass
class Credential:
    """A reusable external-API secret.

    Lower ``priority`` is preferred. Ties are broken by least-recently-used.
    """

    id: str
    secret: str
    priority: int = 0
    label: str | None = None
    status: CredentialStatus = CredentialStatus.ACTIVE
    failure_count: int = 0
    last_used_at: datetime | None = None
    rate_limit_until: datetime | None = None

    def cooling_down(self, now: datetime) -> bool:
        """True while the rate-limit window is still open."""
        return self.rate_limit_until is not None and now < self.rate_limit_until

    def to_public_dict(self) -> dict[str, Any]:
        """Snapshot without the secret."""
        return {
            "id": self.id,
            "label": self.label,
            "priority": self.priority,
            "status": self.status.value,
            "failure_count": self.failure_count,
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
            "rate_limit_until": self.rate_limit_until.isoformat() if self.rate_limit_until else None,
        }
