"""Core primitives: structured errors, idempotency hashing, settings."""

from adops.core.errors import AdopsError, ErrorCategory, is_retryable
from adops.core.hashing import compute_idempotency_key
from adops.core.settings import AdopsSettings, get_settings

__all__ = [
    "AdopsError",
    "ErrorCategory",
    "is_retryable",
    "compute_idempotency_key",
    "AdopsSettings",
    "get_settings",
]
