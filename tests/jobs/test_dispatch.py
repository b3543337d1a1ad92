"""Tests for inline / queue dispatch and dispatcher selection."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import redis
from kombu.exceptions import OperationalError

from adops.core.errors import DispatchError
from adops.core.settings import AdopsSettings
from adops.jobs.dispatch import (
    EXECUTE_TASK_NAME,
    Dispatcher,
    InlineDispatcher,
    QueueDispatcher,
    _redact,
    build_dispatcher,
    clamp_priority,
    probe_broker,
)
from adops.jobs.models import Job, JobStatus, new_job_id


def insert(store, job_type: str = "ECHO") -> Job:
    job, _ = store.insert_if_absent(Job(id=new_job_id(), type=job_type, idempotency_key=new_job_id(), payload={"x": 1}))
    return job


def settings(**kwargs) -> AdopsSettings:
    return AdopsSettings(_env_file=None, **kwargs)


class TestInlineDispatcher:
    def test_runs_job(self, store, worker):
        job = insert(store)
        receipt = InlineDispatcher(worker).dispatch(job.id)
        assert receipt.ok
        assert receipt.mode == "inline"
        assert receipt.outcome.status == JobStatus.COMPLETED
        assert store.find_by_id(job.id).status == JobStatus.COMPLETED

    def test_failure_carried_on_receipt(self, store, worker):
        job = insert(store, "BOOM")
        receipt = InlineDispatcher(worker).dispatch(job.id)
        assert not receipt.ok
        assert receipt.error == "boom"
        assert store.find_by_id(job.id).status == JobStatus.FAILED

    def test_protocol(self, worker):
        assert isinstance(InlineDispatcher(worker), Dispatcher)


class TestQueueDispatcher:
    def test_send_task(self):
        celery_app = MagicMock()
        celery_app.send_task.return_value = MagicMock(id="task-1")
        receipt = QueueDispatcher(celery_app).dispatch("job-1", priority=42)
        assert receipt.ok
        assert receipt.external_ref == "task-1"
        celery_app.send_task.assert_called_once_with(EXECUTE_TASK_NAME, args=["job-1"], priority=9)

    def test_broker_down_falls_back_inline(self, store, worker):
        job = insert(store)
        celery_app = MagicMock()
        celery_app.send_task.side_effect = OperationalError("Connection refused")
        receipt = QueueDispatcher(celery_app, fallback=InlineDispatcher(worker)).dispatch(job.id)
        assert receipt.mode == "inline"
        assert store.find_by_id(job.id).status == JobStatus.COMPLETED

    def test_redis_error_falls_back(self, store, worker):
        job = insert(store)
        celery_app = MagicMock()
        celery_app.send_task.side_effect = redis.exceptions.ConnectionError("down")
        receipt = QueueDispatcher(celery_app, fallback=InlineDispatcher(worker)).dispatch(job.id)
        assert receipt.mode == "inline"

    def test_broker_down_without_fallback(self):
        celery_app = MagicMock()
        celery_app.send_task.side_effect = OSError("unreachable")
        receipt = QueueDispatcher(celery_app).dispatch("job-1")
        assert not receipt.ok
        assert receipt.mode == "queue"
        assert receipt.error == "unreachable"

    def test_send_raises_dispatch_error(self):
        celery_app = MagicMock()
        celery_app.send_task.side_effect = OperationalError("Connection refused")
        with pytest.raises(DispatchError) as exc_info:
            QueueDispatcher(celery_app).send("job-1")
        assert exc_info.value.retryable is True
        assert exc_info.value.context.job_id == "job-1"
        assert isinstance(exc_info.value.cause, OperationalError)


class TestHelpers:
    def test_clamp_priority(self):
        assert clamp_priority(-3) == 0
        assert clamp_priority(4) == 4
        assert clamp_priority(12) == 9

    def test_redact(self):
        assert _redact("redis://:secret@host:6379/0") == "redis://***@host:6379/0"
        assert _redact("redis://localhost:6379/0") == "redis://localhost:6379/0"


class TestProbeBroker:
    @patch("adops.jobs.dispatch.redis.Redis.from_url")
    def test_reachable(self, mock_from_url):
        client = mock_from_url.return_value
        client.ping.return_value = True
        assert probe_broker("redis://localhost:6379/0", timeout=1.0) is True
        mock_from_url.assert_called_once_with(
            "redis://localhost:6379/0", socket_timeout=1.0, socket_connect_timeout=1.0
        )
        client.close.assert_called_once()

    @patch("adops.jobs.dispatch.redis.Redis.from_url")
    def test_unreachable(self, mock_from_url):
        client = mock_from_url.return_value
        client.ping.side_effect = redis.exceptions.ConnectionError("refused")
        assert probe_broker("redis://localhost:6379/0") is False
        client.close.assert_called_once()


class TestBuildDispatcher:
    def test_inline_mode(self, worker):
        probe = MagicMock()
        dispatcher = build_dispatcher(settings(dispatch_mode="inline"), worker, probe=probe)
        assert dispatcher.mode == "inline"
        probe.assert_not_called()

    def test_queue_mode(self, worker):
        celery_app = MagicMock()
        dispatcher = build_dispatcher(settings(dispatch_mode="queue"), worker, celery_app=celery_app)
        assert isinstance(dispatcher, QueueDispatcher)
        assert dispatcher.celery_app is celery_app

    def test_auto_probes_broker(self, worker):
        probe = MagicMock(return_value=False)
        s = settings(dispatch_mode="auto", broker_url="redis://broker:6379/0", probe_timeout=0.5)
        dispatcher = build_dispatcher(s, worker, probe=probe)
        assert dispatcher.mode == "inline"
        probe.assert_called_once_with("redis://broker:6379/0", 0.5)

    def test_auto_with_reachable_broker(self, worker):
        dispatcher = build_dispatcher(
            settings(dispatch_mode="auto"),
            worker,
            celery_app=MagicMock(),
            probe=lambda url, timeout: True,
        )
        assert dispatcher.mode == "queue"
