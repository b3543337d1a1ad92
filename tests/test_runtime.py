"""Tests for runtime wiring, including the end-to-end sync scenario."""

from __future__ import annotations

import httpx
import pytest

from adops.core.settings import AdopsSettings
from adops.credentials.models import CredentialStatus
from adops.jobs.models import JobStatus
from adops.operations import SYNC_USER_ASSETS
from adops.runtime import build_runtime, get_runtime, set_runtime

RATE_LIMITED = {"error": {"code": 17, "message": "(#17) User request limit reached"}}


def accounts_api(limited_tokens: set[str] | None = None):
    limited = limited_tokens or set()
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        token = request.url.params["access_token"]
        seen.append(token)
        if token in limited:
            return httpx.Response(400, json=RATE_LIMITED)
        return httpx.Response(200, json={"data": [{"id": "act_1", "name": "Main"}]})

    handler.seen = seen
    return handler


@pytest.fixture
def make_runtime():
    built = []

    def _make(handler, **overrides):
        settings = AdopsSettings(
            _env_file=None,
            database_path=":memory:",
            dispatch_mode="inline",
            api_base_url="https://graph.test",
            **overrides,
        )
        runtime = build_runtime(settings, http=httpx.Client(transport=httpx.MockTransport(handler)))
        built.append(runtime)
        return runtime

    yield _make
    for runtime in built:
        runtime.close()


class TestBuildRuntime:
    def test_wiring(self, make_runtime):
        runtime = make_runtime(accounts_api(), api_tokens=["tok-a"])
        assert runtime.dispatcher.mode == "inline"
        assert SYNC_USER_ASSETS in runtime.registry.list_types()
        assert len(runtime.pool) == 1
        assert runtime.client.max_attempts == 3

    def test_database_credentials_load_before_static(self, make_runtime):
        runtime = make_runtime(accounts_api(), api_tokens=["tok-static"])
        runtime.credential_store.add("tok-db", label="alice", credential_id="db-1")
        assert runtime.reload_credentials() == 2
        assert [c["id"] for c in runtime.pool.status()] == ["db-1", "static-0"]

    def test_static_token_already_in_database_not_duplicated(self, make_runtime):
        runtime = make_runtime(accounts_api(), api_tokens=["tok-a"])
        runtime.credential_store.add("tok-a", credential_id="db-1")
        runtime.reload_credentials()
        assert len(runtime.pool) == 1


class TestSyncScenario:
    def test_sync_scenario_completes(self, make_runtime):
        api = accounts_api()
        runtime = make_runtime(api, api_tokens=["tok-a"])
        job = runtime.orchestrator.create_job(SYNC_USER_ASSETS, {"external_user_id": "123"}, owner_ref="org1")
        assert job.status == JobStatus.COMPLETED
        assert job.result["count"] == 1
        assert job.result["ad_accounts"][0]["id"] == "act_1"
        assert api.seen == ["tok-a"]

    def test_sync_scenario_rotates_on_rate_limit(self, make_runtime):
        api = accounts_api({"tok-a"})
        runtime = make_runtime(api, api_tokens=["tok-a", "tok-b"])
        job = runtime.orchestrator.create_job(SYNC_USER_ASSETS, {"external_user_id": "123"})
        assert job.status == JobStatus.COMPLETED
        assert api.seen == ["tok-a", "tok-b"]
        assert runtime.pool.get("static-0").status == CredentialStatus.RATE_LIMITED

    def test_sync_scenario_exhausted_fails_job(self, make_runtime):
        api = accounts_api({"tok-a", "tok-b"})
        runtime = make_runtime(api, api_tokens=["tok-a", "tok-b"], backoff_base_delay=0.0, backoff_jitter=0.0)
        job = runtime.orchestrator.create_job(SYNC_USER_ASSETS, {"external_user_id": "123"})
        assert job.status == JobStatus.FAILED
        assert job.last_error == "GET /123/adaccounts failed after 3 attempts"
        assert len(api.seen) == 3

    def test_duplicate_submission_returns_same_job(self, make_runtime):
        api = accounts_api()
        runtime = make_runtime(api, api_tokens=["tok-a"])
        first = runtime.orchestrator.submit_job(SYNC_USER_ASSETS, {"external_user_id": "123"}, owner_ref="org1")
        second = runtime.orchestrator.submit_job(SYNC_USER_ASSETS, {"external_user_id": "123"}, owner_ref="org1")
        assert second.created is False
        assert second.job.id == first.job.id
        assert len(api.seen) == 1


class TestProcessRuntime:
    def test_set_and_get(self, make_runtime):
        runtime = make_runtime(accounts_api())
        set_runtime(runtime)
        assert get_runtime() is runtime
