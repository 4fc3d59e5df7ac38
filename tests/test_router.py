"""Tests for the job id to actor registry."""

import asyncio

from app.workers.router import JobRouter


class StubActor:
    def __init__(self, job_id):
        self.job_id = job_id
        self.busy = False


class TestJobRouter:
    def test_same_instance_per_id(self):
        router = JobRouter(StubActor)

        first = router.locate("a" * 24)

        assert router.locate("a" * 24) is first
        assert router.locate("b" * 24) is not first
        assert len(router) == 2

    def test_evicts_only_idle_actors(self):
        router = JobRouter(StubActor, max_cached=2)
        busy = router.locate("a" * 24)
        busy.busy = True
        idle = router.locate("b" * 24)

        router.locate("c" * 24)

        assert len(router) == 2
        assert router.locate("a" * 24) is busy
        assert router.locate("b" * 24) is not idle

    async def test_concurrent_lookups_share_actor(self):
        router = JobRouter(StubActor)

        async def lookup():
            return router.locate("d" * 24)

        actors = await asyncio.gather(*(lookup() for _ in range(10)))

        assert all(actor is actors[0] for actor in actors)
