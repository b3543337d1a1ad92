"""Resilient HTTP client: retry with credential rotation.

Every outbound call to the external API goes through ``ResilientClient``.
It acquires a credential from the resource pool, sends the request over an
injected ``httpx.Client`` and reports each outcome back to the pool.

Retry policy (bounded by ``max_attempts``):

    rate limit   ──▶ report failure, rotate to a different eligible credential and
                     retry at once; if the pool has nothing different,
                     sleep ``backoff.next_delay()`` and retry
    API error    ──▶ report failure, raise ``ApiError``
    transport    ──▶ report failure, raise ``NetworkError``
    exhausted    ──▶ ``ClientExhaustedError("GET /me failed after 3 attempts")``

A caller may pin ``access_token``; a pinned token is never rotated and is
reported to the pool only when the pool owns that secret.

Example:
    >>> client = ResilientClient(pool, httpx.Client(timeout=30), "https://graph.facebook.com/v19.0")
    >>> client.get("/me/adaccounts", params={"fields": "id,name"})
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import httpx

from adops.client.backoff import ExponentialBackoff
from adops.core.errors import (
    ApiError,
    ClientExhaustedError,
    NetworkError,
    NoCredentialAvailableError,
    RateLimitError,
)
from adops.credentials.health import is_rate_limit_signal
from adops.credentials.models import Credential
from adops.credentials.pool import ResourcePool
from adops.observability.logging import get_logger

logger = get_logger(__name__)


class ResilientClient:
    """Pool-aware HTTP client for the external API."""

    def __init__(
        self,
        pool: ResourcePool,
        transport: httpx.Client,
        base_url: str,
        max_attempts: int = 3,
        backoff: ExponentialBackoff | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._pool = pool
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        self._origin = _origin(httpx.URL(self._base_url))
        self._max_attempts = max_attempts
        self._backoff = backoff or ExponentialBackoff()
        self._sleep = sleep

    @property
    def pool(self) -> ResourcePool:
        return self._pool

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def get(self, endpoint: str, params: dict[str, Any] | None = None, access_token: str | None = None) -> Any:
        return self.request("GET", endpoint, params=params, access_token=access_token)

    def post(
        self,
        endpoint: str,
        data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        access_token: str | None = None,
    ) -> Any:
        return self.request("POST", endpoint, params=params, data=data, access_token=access_token)

    def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        access_token: str | None = None,
    ) -> Any:
        """Send a request, rotating credentials on rate limits.

        Returns:
            Decoded JSON body

        Raises:
            NoCredentialAvailableError: No pinned token and the pool is empty
            ApiError: The API answered with a non rate-limit error
            NetworkError: The transport failed
            ClientExhaustedError: Every attempt was rate limited
        """
        method = method.upper()
        pinned = access_token is not None
        credential: Credential | None = None
        last_error: RateLimitError | None = None

        for attempt in range(1, self._max_attempts + 1):
            if pinned:
                secret = access_token
                credential = self._pool.find_by_secret(access_token)
            else:
                if credential is None:
                    credential = self._pool.select()
                if credential is None:
                    raise NoCredentialAvailableError()
                secret = credential.secret

            try:
                body = self._send(method, endpoint, params, data, secret)
            except RateLimitError as exc:
                last_error = exc
                self._report_failure(credential, exc)
                logger.warning(
                    "api_rate_limited",
                    method=method,
                    endpoint=endpoint,
                    attempt=attempt,
                    credential_id=credential.id if credential else None,
                    code=exc.code,
                )
                if attempt >= self._max_attempts:
                    break
                if not pinned:
                    candidate = self._pool.select()
                    if (
                        candidate is not None
                        and (credential is None or candidate.id != credential.id)
                        and self._pool.is_eligible(candidate)
                    ):
                        logger.info(
                            "credential_rotated",
                            endpoint=endpoint,
                            previous=credential.id if credential else None,
                            credential_id=candidate.id,
                        )
                        credential = candidate
                        continue
                    credential = candidate
                delay = self._backoff.next_delay(attempt - 1)
                logger.info("api_backoff", endpoint=endpoint, attempt=attempt, delay=round(delay, 3))
                self._sleep(delay)
                continue
            except (ApiError, NetworkError) as exc:
                self._report_failure(credential, exc)
                raise

            self._report_success(credential)
            return body

        raise ClientExhaustedError(method, endpoint, self._max_attempts, cause=last_error)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _url(self, endpoint: str) -> httpx.URL:
        """Resolve *endpoint* against the base URL.

        Absolute URLs (``paging.next``) are accepted only on the base URL's
        origin, so pool secrets never leave the external API.
        """
        if not endpoint.startswith(("http://", "https://")):
            return httpx.URL(f"{self._base_url}/{endpoint.lstrip('/')}")
        url = httpx.URL(endpoint)
        if _origin(url) != self._origin:
            raise ValueError(f"refusing to send credentials to {url.scheme}://{url.host}")
        return url

    def _send(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None,
        data: dict[str, Any] | None,
        secret: str,
    ) -> Any:
        query = dict(params or {})
        query["access_token"] = secret
        url = self._url(endpoint).copy_merge_params(query)
        try:
            response = self._transport.request(method, url, json=data)
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {endpoint}: {exc}", cause=exc).with_context(endpoint=endpoint) from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        error = body.get("error") if isinstance(body, dict) else None
        if response.is_success and not error:
            return body if body is not None else {}

        code = None
        message = None
        if isinstance(error, dict):
            code = error.get("code")
            message = error.get("message")
        message = message or response.text or f"HTTP {response.status_code}"
        code = code if isinstance(code, int) else None

        if is_rate_limit_signal(code, message, response.status_code):
            raise RateLimitError(message, code=code, http_status=response.status_code).with_context(endpoint=endpoint)
        raise ApiError(message, code=code, http_status=response.status_code).with_context(endpoint=endpoint)

    def _report_success(self, credential: Credential | None) -> None:
        if credential is not None:
            self._pool.report_success(credential)

    def _report_failure(self, credential: Credential | None, error: Exception) -> None:
        if credential is not None:
            self._pool.report_failure(credential, error)


def _origin(url: httpx.URL) -> tuple[str, str, int | None]:
    return (url.scheme, url.host, url.port)
