"""Tests for rate-limit detection and the health tracker policies."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from adops.core.errors import ApiError, NetworkError, RateLimitError
from adops.credentials.health import FailureKind, HealthTracker, classify_failure, is_rate_limit_signal
from adops.credentials.models import Credential, CredentialStatus

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class TestRateLimitSignal:
    @pytest.mark.parametrize("code", [4, 17, 32, 613])
    def test_known_codes(self, code):
        assert is_rate_limit_signal(code=code)

    def test_http_429(self):
        assert is_rate_limit_signal(http_status=429)

    @pytest.mark.parametrize(
        "message",
        ["(#4) Application request limit reached", "User rate limit hit", "(#17) User request limit reached"],
    )
    def test_messages(self, message):
        assert is_rate_limit_signal(message=message)

    def test_other_errors(self):
        assert not is_rate_limit_signal(code=100, message="Invalid parameter", http_status=400)
        assert not is_rate_limit_signal()

    @pytest.mark.parametrize("message", ["(#32) Page request limit", "Error #613: calls exceeded"])
    def test_code_tokens_in_message(self, message):
        assert is_rate_limit_signal(message=message)

    @pytest.mark.parametrize(
        "message",
        ["(#400) Invalid parameter", "(#413) Payload too large", "(#1705) Selected wrong audience", "(#170) bad field"],
    )
    def test_longer_codes_do_not_match(self, message):
        assert not is_rate_limit_signal(message=message)


class TestClassifyFailure:
    def test_rate_limit_error(self):
        assert classify_failure(RateLimitError("slow down")) is FailureKind.RATE_LIMIT

    def test_api_error_with_rate_limit_code(self):
        assert classify_failure(ApiError("throttled", code=613)) is FailureKind.RATE_LIMIT

    def test_plain_string(self):
        assert classify_failure("Application request limit reached") is FailureKind.RATE_LIMIT
        assert classify_failure("token expired") is FailureKind.ERROR

    def test_other(self):
        assert classify_failure(NetworkError("reset")) is FailureKind.ERROR
        assert classify_failure(None) is FailureKind.ERROR

    def test_invalid_parameter_is_plain_error(self):
        assert classify_failure(ApiError("(#400) Invalid parameter", code=400)) is FailureKind.ERROR


class TestHealthTracker:
    def _cred(self, **kwargs) -> Credential:
        return Credential(id="c1", secret="s", **kwargs)

    def test_rate_limit_starts_window(self):
        tracker = HealthTracker(cool_down_seconds=60)
        cred = self._cred()
        kind = tracker.record_failure(cred, RateLimitError(), NOW)
        assert kind is FailureKind.RATE_LIMIT
        assert cred.status == CredentialStatus.RATE_LIMITED
        assert cred.rate_limit_until == NOW + timedelta(seconds=60)
        assert not tracker.is_selectable(cred, NOW + timedelta(seconds=59))
        assert tracker.is_selectable(cred, NOW + timedelta(seconds=60))

    def test_rate_limit_independent_of_count(self):
        tracker = HealthTracker(failure_threshold=1)
        cred = self._cred()
        tracker.record_failure(cred, RateLimitError(), NOW)
        assert cred.status == CredentialStatus.RATE_LIMITED

    def test_success_after_window_restores_active(self):
        tracker = HealthTracker(cool_down_seconds=60)
        cred = self._cred()
        tracker.record_failure(cred, RateLimitError(), NOW)
        tracker.record_success(cred, NOW + timedelta(seconds=61))
        assert cred.status == CredentialStatus.ACTIVE
        assert cred.rate_limit_until is None
        assert cred.failure_count == 0

    def test_circuit_opens_at_threshold(self):
        tracker = HealthTracker(failure_threshold=3)
        cred = self._cred()
        for _ in range(2):
            tracker.record_failure(cred, ApiError("bad"), NOW)
        assert cred.status == CredentialStatus.ACTIVE
        tracker.record_failure(cred, ApiError("bad"), NOW)
        assert cred.status == CredentialStatus.FAILED
        assert not tracker.is_selectable(cred, NOW + timedelta(days=1))

    def test_success_resets_failure_count(self):
        tracker = HealthTracker(failure_threshold=3)
        cred = self._cred()
        tracker.record_failure(cred, ApiError("bad"), NOW)
        tracker.record_failure(cred, ApiError("bad"), NOW)
        tracker.record_success(cred, NOW)
        tracker.record_failure(cred, ApiError("bad"), NOW)
        assert cred.status == CredentialStatus.ACTIVE
        assert cred.failure_count == 1

    def test_disabled_never_revived(self):
        tracker = HealthTracker(failure_threshold=1)
        cred = self._cred(status=CredentialStatus.DISABLED)
        tracker.record_failure(cred, RateLimitError(), NOW)
        assert cred.status == CredentialStatus.DISABLED
        tracker.record_failure(cred, ApiError("bad"), NOW)
        assert cred.status == CredentialStatus.DISABLED
        assert not tracker.is_selectable(cred, NOW)

    def test_reset(self):
        tracker = HealthTracker()
        cred = self._cred(status=CredentialStatus.FAILED, failure_count=5, rate_limit_until=NOW)
        tracker.reset(cred)
        assert cred.status == CredentialStatus.ACTIVE
        assert cred.failure_count == 0
        assert cred.rate_limit_until is None
