"""Tests for structured logging configuration."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from adops.observability import logging as adops_logging
from adops.observability.logging import configure_logging, get_logger, is_configured, job_context


@pytest.fixture(autouse=True)
def reset_configuration():
    yield
    adops_logging._configured = False
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_sets_flag_and_level(self):
        configure_logging(level="DEBUG", force=True)
        assert is_configured()
        assert logging.getLogger("adops").level == logging.DEBUG

    def test_second_call_is_noop_without_force(self):
        configure_logging(level="WARNING", force=True)
        configure_logging(level="DEBUG")
        assert logging.getLogger("adops").level == logging.WARNING

    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("ADOPS_LOG_LEVEL", "ERROR")
        configure_logging(force=True)
        assert logging.getLogger("adops").level == logging.ERROR

    def test_json_output_includes_job_context(self, capsys):
        configure_logging(level="INFO", format="json", force=True)
        logger = get_logger("adops.test")
        with job_context(job_id="j1", job_type="ECHO", attempt=None):
            logger.info("job_started")
        line = capsys.readouterr().err.strip().splitlines()[-1]
        event = json.loads(line)
        assert event["event"] == "job_started"
        assert event["job_id"] == "j1"
        assert event["job_type"] == "ECHO"
        assert "attempt" not in event
        assert event["level"] == "info"


class TestJobContext:
    def test_restores_previous_values(self):
        with job_context(job_id="outer"):
            with job_context(job_id="inner"):
                assert structlog.contextvars.get_contextvars()["job_id"] == "inner"
            assert structlog.contextvars.get_contextvars()["job_id"] == "outer"
        assert "job_id" not in structlog.contextvars.get_contextvars()
