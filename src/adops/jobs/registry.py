"""Operation Registry - injectable job type → domain operation lookup.

Manifesto:
The worker must resolve ``"SYNC_USER_ASSETS"`` to a callable without
knowing anything about what the operation does. The registry decouples
registration (at startup, by domain modules) from resolution (at
execution time) and lets the orchestrator reject unknown types before a
job is ever stored.

ARCHITECTURE
────────────
::

    OperationRegistry
      ├── .register(job_type, handler)   ─ store operation
      ├── .operation(job_type)           ─ decorator form of register
      ├── .get(job_type)                 ─ lookup, UnknownJobTypeError if absent
      ├── .validate(job_type)            ─ fail-fast check used at create time
      └── .list_types()                  ─ registered types, sorted

    An operation is ``handler(payload) -> result``; both values are
    JSON-compatible and opaque to the registry.

Related modules:
    orchestrator.py - validates types at creation time
    worker.py       - resolves the operation for a claimed job
    ../operations.py - built-in operations

Tags:
    adops-core, jobs, registry, operation-registry, lookup

Doc-Types:
    api-reference
"""

from collections.abc import Callable
from typing import Any

from adops.core.errors import UnknownJobTypeError

Operation = Callable[[Any], Any]


class OperationRegistry:
    """Injectable operation registry.

    Example:
        >>> registry = OperationRegistry()
        >>>
        >>> @registry.operation("ECHO", description="Return the payload")
        ... def echo(payload):
        ...     return payload
        >>>
        >>> registry.get("ECHO")({"x": 1})
        {'x': 1}
    """

    def __init__(self):
        self._operations: dict[str, Operation] = {}
        self._metadata: dict[str, dict[str, Any]] = {}

    def register(self, job_type: str, handler: Operation, description: str | None = None) -> None:
        """Register *handler* for *job_type* (replaces an existing one)."""
        if not job_type:
            raise ValueError("job_type must be a non-empty string")
        self._operations[job_type] = handler
        self._metadata[job_type] = {"type": job_type, "description": description}

    def operation(self, job_type: str, description: str | None = None) -> Callable[[Operation], Operation]:
        """Decorator form of :meth:`register`."""

        def decorator(func: Operation) -> Operation:
            self.register(job_type, func, description=description or (func.__doc__ or "").strip() or None)
            return func

        return decorator

    def get(self, job_type: str) -> Operation:
        """Resolve the operation for *job_type*.

        Raises:
            UnknownJobTypeError: If nothing is registered for it
        """
        try:
            return self._operations[job_type]
        except KeyError:
            raise UnknownJobTypeError(job_type, self.list_types()) from None

    def has(self, job_type: str) -> bool:
        return job_type in self._operations

    def validate(self, job_type: str) -> None:
        if not self.has(job_type):
            raise UnknownJobTypeError(job_type, self.list_types())

    def list_types(self) -> list[str]:
        return sorted(self._operations)

    def list_with_metadata(self) -> list[dict[str, Any]]:
        return [self._metadata[t].copy() for t in self.list_types()]

    def __len__(self) -> int:
        return len(self._operations)
