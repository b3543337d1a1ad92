"""
Deterministic hashing for job idempotency keys.

Two submissions of the same logical job must map to the same key, even when
the payload dict was built in a different key order. The key is a SHA-256
digest over canonical JSON (sorted keys, compact separators), truncated.

Manifesto:
    - **Deterministic:** Same (type, owner, payload) always produce same key
    - **Order-insensitive:** ``{"a": 1, "b": 2}`` hashes like ``{"b": 2, "a": 1}``
    - **Bounded length:** 40 hex chars (160 bits), fits an indexed TEXT column

Examples:
    >>> k1 = compute_idempotency_key("ECHO", "user-1", {"a": 1, "b": 2})
    >>> k2 = compute_idempotency_key("ECHO", "user-1", {"b": 2, "a": 1})
    >>> k1 == k2
    True
    >>> len(k1)
    40

Tags:
    hashing, idempotency, deduplication, adops-core

Doc-Types:
    - API Reference
"""

import hashlib
import json
from typing import Any

IDEMPOTENCY_KEY_LENGTH = 40


def canonical_json(value: Any) -> str:
    """Serialize ``value`` to a stable JSON string."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def compute_hash(value: Any, length: int = IDEMPOTENCY_KEY_LENGTH) -> str:
    """
    SHA-256 of the canonical JSON form of ``value``, truncated to ``length``.

    Args:
        value: Any JSON-serializable value (non-serializable leaves fall back to ``str``)
        length: Number of hex characters to keep (max 64)
    """
    digest = hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()
    return digest[:length]


def compute_idempotency_key(job_type: str, owner_ref: str | None, payload: Any) -> str:
    """Derive the idempotency key of a job submission."""
    return compute_hash({"type": job_type, "owner_ref": owner_ref, "payload": payload})


__all__ = ["IDEMPOTENCY_KEY_LENGTH", "canonical_json", "compute_hash", "compute_idempotency_key"]
