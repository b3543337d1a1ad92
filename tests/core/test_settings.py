"""Tests for AdopsSettings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from adops.core.settings import AdopsSettings, get_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("ADOPS_API_TOKENS", "ADOPS_DISPATCH_MODE", "ADOPS_DATABASE_PATH", "ADOPS_BROKER_URL"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestDefaults:
    def test_defaults(self):
        s = AdopsSettings(_env_file=None)
        assert s.database_path == "adops.db"
        assert s.dispatch_mode == "auto"
        assert s.api_tokens == []
        assert s.client_max_attempts == 3
        assert s.pool_failure_threshold == 3
        assert s.pool_cool_down_seconds == 300.0
        assert s.worker_concurrency == 5
        assert s.worker_rate_limit == "50/m"

    def test_api_urls(self):
        s = AdopsSettings(_env_file=None, api_base_url="https://graph.example.com/", api_version="/v20.0")
        assert s.api_root == "https://graph.example.com/v20.0"

    def test_celery_backend_defaults_to_broker(self):
        s = AdopsSettings(_env_file=None, broker_url="redis://b:6379/1")
        assert s.celery_backend == "redis://b:6379/1"
        s = AdopsSettings(_env_file=None, broker_url="redis://b:6379/1", result_backend="redis://r:6379/2")
        assert s.celery_backend == "redis://r:6379/2"


class TestEnvironment:
    def test_tokens_split_on_commas(self, monkeypatch):
        monkeypatch.setenv("ADOPS_API_TOKENS", "tok-a, tok-b,,tok-c ")
        assert AdopsSettings(_env_file=None).api_tokens == ["tok-a", "tok-b", "tok-c"]

    def test_dispatch_mode_from_env(self, monkeypatch):
        monkeypatch.setenv("ADOPS_DISPATCH_MODE", "inline")
        assert AdopsSettings(_env_file=None).dispatch_mode == "inline"

    def test_invalid_dispatch_mode(self):
        with pytest.raises(ValidationError):
            AdopsSettings(_env_file=None, dispatch_mode="sometimes")

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
