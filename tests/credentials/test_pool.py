"""Tests for ResourcePool selection, health reporting and operator actions."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from adops.core.errors import ApiError, CredentialNotFoundError, RateLimitError
from adops.credentials.health import FailureKind, HealthTracker
from adops.credentials.models import Credential, CredentialStatus
from adops.credentials.pool import ResourcePool
from adops.credentials.store import StaticCredentialStore

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class TestInitialize:
    def test_priority_follows_load_order(self, pool):
        assert [(c["id"], c["priority"]) for c in pool.status()] == [
            ("static-0", 0),
            ("static-1", 1),
            ("static-2", 2),
        ]
        assert len(pool) == 3

    def test_reinitialize_resets_health(self, pool):
        pool.report_failure("static-0", RateLimitError())
        pool.initialize(StaticCredentialStore(["tok-a"]))
        assert pool.status()[0]["status"] == "active"
        assert len(pool) == 1

    def test_add_appends_lowest_priority(self, pool):
        added = pool.add(Credential(id="extra", secret="tok-x", priority=0))
        assert added.priority == 3

    def test_add_existing_id_is_noop(self, pool):
        pool.add(Credential(id="static-0", secret="other"))
        assert len(pool) == 3
        assert pool.get("static-0").secret == "tok-a"

    def test_status_never_exposes_secret(self, pool):
        for entry in pool.status():
            assert "secret" not in entry
            assert "tok-a" not in entry.values()


class TestSelect:
    def test_empty_pool(self):
        assert ResourcePool().select() is None

    def test_lowest_priority_wins(self, pool):
        assert pool.select().id == "static-0"
        assert pool.select().id == "static-0"

    def test_stamps_last_used(self, pool):
        with patch("adops.credentials.pool.utcnow", return_value=T0):
            chosen = pool.select()
        assert chosen.last_used_at == T0
        assert pool.get("static-0").last_used_at == T0

    def test_returns_copy(self, pool):
        chosen = pool.select()
        chosen.status = CredentialStatus.DISABLED
        assert pool.get(chosen.id).status == CredentialStatus.ACTIVE

    def test_least_recently_used_breaks_priority_ties(self):
        pool = ResourcePool()
        pool.add(Credential(id="a", secret="sa"))
        pool.add(Credential(id="b", secret="sb"))
        # add() assigns distinct priorities; give both the same one
        pool._credentials[1].priority = 0
        with patch("adops.credentials.pool.utcnow", return_value=T0):
            first = pool.select()
        with patch("adops.credentials.pool.utcnow", return_value=T0 + timedelta(seconds=1)):
            second = pool.select()
        assert {first.id, second.id} == {"a", "b"}

    def test_rate_limited_skipped_until_window_elapses(self):
        pool = ResourcePool.from_store(StaticCredentialStore(["tok-a", "tok-b"]), HealthTracker(cool_down_seconds=60))
        with patch("adops.credentials.pool.utcnow", return_value=T0):
            kind = pool.report_failure("static-0", RateLimitError("(#4) limit"))
            assert kind is FailureKind.RATE_LIMIT
            assert pool.select().id == "static-1"
        with patch("adops.credentials.pool.utcnow", return_value=T0 + timedelta(seconds=61)):
            assert pool.select().id == "static-0"
            pool.report_success("static-0")
        assert pool.get("static-0").status == CredentialStatus.ACTIVE

    def test_degrades_to_best_when_none_eligible(self, pool):
        with patch("adops.credentials.pool.utcnow", return_value=T0):
            for cred_id in ("static-0", "static-1", "static-2"):
                pool.report_failure(cred_id, RateLimitError())
            chosen = pool.select()
        assert chosen is not None
        assert chosen.id == "static-0"
        assert chosen.status == CredentialStatus.RATE_LIMITED

    def test_disabled_never_selected(self, pool):
        for cred_id in ("static-0", "static-1", "static-2"):
            pool.disable(cred_id)
        assert pool.select() is None


class TestCircuitBreaker:
    def test_failed_after_threshold(self, pool):
        for _ in range(3):
            kind = pool.report_failure("static-0", ApiError("Invalid OAuth token", code=190))
        assert kind is FailureKind.ERROR
        assert pool.get("static-0").status == CredentialStatus.FAILED
        assert pool.select().id == "static-1"

    def test_reactivate_closes_circuit(self, pool):
        for _ in range(3):
            pool.report_failure("static-0", ApiError("bad"))
        reactivated = pool.reactivate("static-0")
        assert reactivated.status == CredentialStatus.ACTIVE
        assert reactivated.failure_count == 0
        assert pool.select().id == "static-0"

    def test_unknown_credential(self, pool):
        with pytest.raises(CredentialNotFoundError):
            pool.report_failure("nope", ApiError("bad"))
        with pytest.raises(CredentialNotFoundError):
            pool.reactivate("nope")


class TestSwitchTo:
    def test_target_becomes_priority_zero(self, pool):
        switched = pool.switch_to("static-2")
        assert switched.priority == 0
        assert [(c["id"], c["priority"]) for c in pool.status()] == [
            ("static-2", 0),
            ("static-0", 1),
            ("static-1", 2),
        ]
        assert pool.select().id == "static-2"

    def test_middle_credential(self, pool):
        pool.switch_to("static-1")
        assert {c["id"]: c["priority"] for c in pool.status()} == {
            "static-1": 0,
            "static-0": 1,
            "static-2": 2,
        }

    def test_unknown(self, pool):
        with pytest.raises(CredentialNotFoundError):
            pool.switch_to("nope")


class TestLookup:
    def test_find_by_secret(self, pool):
        assert pool.find_by_secret("tok-b").id == "static-1"
        assert pool.find_by_secret("unknown") is None

    def test_get_unknown(self, pool):
        assert pool.get("nope") is None

    def test_is_eligible_tracks_cool_down(self, pool):
        with patch("adops.credentials.pool.utcnow", return_value=T0):
            pool.report_failure("static-0", RateLimitError("(#4) limit"))
            assert not pool.is_eligible("static-0")
            assert pool.is_eligible("static-1")
        with patch("adops.credentials.pool.utcnow", return_value=T0 + timedelta(seconds=301)):
            assert pool.is_eligible("static-0")
        assert not pool.is_eligible("nope")


class TestConcurrency:
    def test_parallel_select_and_report(self, pool):
        errors: list[BaseException] = []

        def hammer():
            try:
                for _ in range(50):
                    chosen = pool.select()
                    pool.report_success(chosen)
            except BaseException as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=hammer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert errors == []
        assert all(c["failure_count"] == 0 for c in pool.status())
