"""Tests for Run dispatch in inline and rq modes."""

import pytest

from app.workers.queue import QueueManager
from app.workers.router import JobRouter
from tests.conftest import JOB_ID


class StubActor:
    def __init__(self, job_id):
        self.job_id = job_id
        self.busy = False
        self.triggered = 0

    def trigger(self):
        self.triggered += 1


class StubQueue:
    def __init__(self):
        self.enqueued = []

    def enqueue(self, fn, *args, **kwargs):
        self.enqueued.append((fn, args, kwargs))

        class _Job:
            id = "rq-1"

        return _Job()


class TestQueueManager:
    def test_inline_triggers_actor(self, settings):
        router = JobRouter(StubActor)
        manager = QueueManager(settings, router)

        assert manager.enqueue_run(JOB_ID) == "inline"
        assert router.locate(JOB_ID).triggered == 1

    def test_rq_enqueues_task(self, settings):
        rq_settings = settings.model_copy(update={"JOB_DISPATCH_MODE": "rq"})
        router = JobRouter(StubActor)
        manager = QueueManager(rq_settings, router)
        manager._queue = StubQueue()

        assert manager.enqueue_run(JOB_ID) == "rq"

        fn, args, kwargs = manager._queue.enqueued[0]
        assert fn.__name__ == "run_outfit_job_task"
        assert args == (JOB_ID,)
        assert kwargs["job_timeout"] == rq_settings.JOB_TIMEOUT
        assert kwargs["meta"]["outfit_job"] == JOB_ID
        assert len(router) == 0

    def test_rq_without_redis(self, settings):
        manager = QueueManager(settings.model_copy(update={"JOB_DISPATCH_MODE": "rq"}), JobRouter(StubActor))

        with pytest.raises(RuntimeError):
            manager.get_queue()
