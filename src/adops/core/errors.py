"""
Structured error types for the automation core.

Every failure the orchestrator, worker, pool or client raises is an
``AdopsError`` carrying a category and an explicit ``retryable`` flag.
The flag is what the dispatch channel looks at when it decides whether a
failed job is redelivered automatically.

Manifesto:
    - **Typed hierarchy:** one subclass per failure the caller can act on
    - **Explicit retry semantics:** retry decisions never parse messages
    - **Rich context:** job id, endpoint, credential id travel with the error
    - **Error chaining:** the original exception is preserved as ``cause``

Architecture:
    ::

        AdopsError (category, retryable, retry_after, context, cause)
          ├── JobError              (JOB)
          │     ├── JobNotFoundError
          │     └── InvalidTransitionError
          ├── ConfigError           (CONFIG, never retryable)
          │     └── UnknownJobTypeError
          ├── TransientError        (NETWORK, retryable)
          │     ├── NetworkError
          │     └── RateLimitError
          ├── ApiError              (SOURCE)
          │     └── ClientExhaustedError
          ├── CredentialError       (CREDENTIAL)
          │     ├── CredentialNotFoundError
          │     └── NoCredentialAvailableError
          └── DispatchError         (DISPATCH, retryable)

Tags:
    error-handling, exception-hierarchy, retry-logic, adops-core

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    NETWORK = "NETWORK"  # Connection, timeout, rate limit
    SOURCE = "SOURCE"  # External API returned an application error
    CREDENTIAL = "CREDENTIAL"  # Pool exhausted, unknown credential
    CONFIG = "CONFIG"  # Unknown job type, bad settings
    JOB = "JOB"  # Missing job, illegal transition
    DISPATCH = "DISPATCH"  # Broker rejected the handoff
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only non-None fields are emitted by ``to_dict()`` so the context can be
    passed straight into a structured log call.

    Examples:
        >>> ctx = ErrorContext(job_id="8f1c", endpoint="/me/adaccounts")
        >>> ctx.to_dict()
        {'job_id': '8f1c', 'endpoint': '/me/adaccounts'}
    """

    job_id: str | None = None
    job_type: str | None = None
    credential_id: str | None = None
    endpoint: str | None = None
    http_status: int | None = None
    error_code: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["job_id", "job_type", "credential_id", "endpoint", "http_status", "error_code"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class AdopsError(Exception):
    """
    Base exception for all automation-core errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers
    may override either per instance.

    Examples:
        >>> error = NetworkError("connection reset")
        >>> error.retryable
        True
        >>> UnknownJobTypeError("BOGUS").retryable
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: float | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> AdopsError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ApiError("Bad request").with_context(endpoint="/act_1/ads")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# JOB ERRORS
# =============================================================================


class JobError(AdopsError):
    """Base class for job-store and state-machine errors."""

    default_category = ErrorCategory.JOB
    default_retryable = False


class JobNotFoundError(JobError):
    """No job exists with the given id."""

    def __init__(self, job_id: str, message: str | None = None):
        super().__init__(message or f"Job {job_id} not found", context=ErrorContext(job_id=job_id))
        self.job_id = job_id


class InvalidTransitionError(JobError):
    """A status change is not allowed by the job state machine."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Invalid job status transition: {current} -> {target}")
        self.current = current
        self.target = target


# =============================================================================
# CONFIGURATION ERRORS (never retryable)
# =============================================================================


class ConfigError(AdopsError):
    """Configuration error."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class UnknownJobTypeError(ConfigError):
    """No operation is registered for a job type."""

    def __init__(self, job_type: str, available: list[str] | None = None):
        known = ", ".join(available) if available else "none"
        super().__init__(
            f"Unsupported job type: {job_type} (registered: {known})",
            context=ErrorContext(job_type=job_type),
        )
        self.job_type = job_type


# =============================================================================
# TRANSIENT ERRORS (usually retryable)
# =============================================================================


class TransientError(AdopsError):
    """Temporary failure that may succeed on retry."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class NetworkError(TransientError):
    """Transport-level failure (DNS, connect, read timeout)."""


class RateLimitError(TransientError):
    """The external API signalled a rate limit for the credential in use."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        code: int | None = None,
        http_status: int | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.code = code
        self.http_status = http_status
        self.context.error_code = code
        self.context.http_status = http_status


# =============================================================================
# EXTERNAL API ERRORS
# =============================================================================


class ApiError(AdopsError):
    """The external API answered with an application error."""

    default_category = ErrorCategory.SOURCE
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        http_status: int | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.code = code
        self.http_status = http_status
        self.context.error_code = code
        self.context.http_status = http_status


class ClientExhaustedError(ApiError):
    """Every attempt of a resilient call failed."""

    default_retryable = True

    def __init__(self, method: str, endpoint: str, attempts: int, cause: Exception | None = None):
        super().__init__(
            f"{method} {endpoint} failed after {attempts} attempts",
            cause=cause,
            context=ErrorContext(endpoint=endpoint),
        )
        self.attempts = attempts


# =============================================================================
# CREDENTIAL ERRORS
# =============================================================================


class CredentialError(AdopsError):
    """Base class for resource-pool errors."""

    default_category = ErrorCategory.CREDENTIAL
    default_retryable = False


class CredentialNotFoundError(CredentialError):
    """No credential with the given id is loaded in the pool."""

    def __init__(self, credential_id: str):
        super().__init__(
            f"Credential {credential_id} not found",
            context=ErrorContext(credential_id=credential_id),
        )
        self.credential_id = credential_id


class NoCredentialAvailableError(CredentialError):
    """The pool is empty (or every credential is disabled)."""

    def __init__(self, message: str = "No credential available in the pool"):
        super().__init__(message)


# =============================================================================
# DISPATCH ERRORS
# =============================================================================


class DispatchError(AdopsError):
    """The dispatch channel rejected a job handoff."""

    default_category = ErrorCategory.DISPATCH
    default_retryable = True


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, AdopsError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, AdopsError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "AdopsError",
    "JobError",
    "JobNotFoundError",
    "InvalidTransitionError",
    "ConfigError",
    "UnknownJobTypeError",
    "TransientError",
    "NetworkError",
    "RateLimitError",
    "ApiError",
    "ClientExhaustedError",
    "CredentialError",
    "CredentialNotFoundError",
    "NoCredentialAvailableError",
    "DispatchError",
    "is_retryable",
    "categorize_error",
]
