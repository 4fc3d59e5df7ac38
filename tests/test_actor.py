"""Tests for the outfit job actor state machine."""

import asyncio
from datetime import datetime, timedelta

import pytest

from app.models.job import OutfitJob
from app.workers.actor import JobActor
from app.workers.base import InvalidSpec, JobNotFound, JobStatus, UpstreamFailure, MAX_ERROR_LENGTH
from tests.conftest import JOB_ID, FakeGenerator, make_png


def _age_record(session_factory, minutes):
    db = session_factory()
    row = db.get(OutfitJob, JOB_ID)
    row.updated_at = datetime.utcnow() - timedelta(minutes=minutes)
    db.commit()
    db.close()


class TestInit:
    async def test_creates_queued_record(self, actor, job_spec, store):
        assert await actor.init(job_spec) is True

        record = store.get(JOB_ID)
        assert record.status == JobStatus.QUEUED
        assert record.output_image_refs == []
        assert record.last_error is None

    async def test_second_init_does_not_overwrite(self, actor, job_spec, store):
        await actor.init(job_spec)
        other = job_spec.model_copy(update={"event_label": "Выпускной", "requester": "x@y.org"})

        assert await actor.init(other) is False

        record = store.get(JOB_ID)
        assert record.event_label == "Свадьба"
        assert record.requester == "a@b.com"

    async def test_accepts_plain_mapping(self, actor, job_spec, store):
        await actor.init(job_spec.model_dump())
        assert store.get(JOB_ID).archetype["type"] == "Луна"

    @pytest.mark.parametrize("field,value", [
        ("archetype", "Луна"),
        ("archetype", {"type": "Луна"}),
        ("reference_image_ref", ""),
        ("face_image_ref", None),
        ("requester", "not-an-email"),
        ("event_label", "   "),
        ("requested_count", 3),
        ("target_size", "huge"),
    ])
    async def test_rejects_malformed_spec(self, actor, job_spec, store, field, value):
        spec = job_spec.model_dump()
        spec[field] = value

        with pytest.raises(InvalidSpec):
            await actor.init(spec)
        assert store.get(JOB_ID) is None

    async def test_rejects_non_object_spec(self, actor):
        with pytest.raises(InvalidSpec):
            await actor.init(["not", "a", "spec"])


class TestRun:
    async def test_unknown_job(self, actor):
        with pytest.raises(JobNotFound):
            await actor.run()

    async def test_status_unknown_job(self, actor):
        with pytest.raises(JobNotFound):
            await actor.status()

    async def test_successful_pipeline(self, actor, job_spec, stored_inputs, generator, store):
        await actor.init(job_spec)

        assert await actor.run() is True

        view = await actor.status()
        assert view.status == JobStatus.DONE
        assert view.error is None
        assert view.images == ["http://testserver/outfits/file/jobs/%s/out_1.png" % JOB_ID]
        assert store.get(JOB_ID).attempts == 1

    async def test_reference_order_and_prompt(self, actor, job_spec, stored_inputs, generator):
        await actor.init(job_spec)
        await actor.run()

        call = generator.calls[0]
        assert call["images"] == [make_png(b"body"), make_png(b"face")]
        assert call["size"] == "1024x1024"
        assert call["count"] == 1
        assert "Свадьба" in call["prompt"]
        assert "Луна" in call["prompt"]
        assert "Мягкие черты" in call["prompt"]

    async def test_extra_candidates_truncated(self, actor, job_spec, stored_inputs, storage):
        """Two images returned for a one-image job: only out_1 is stored."""
        await actor.init(job_spec)
        await actor.run()

        view = await actor.status()
        assert len(view.images) == 1
        assert await storage.get_object(f"jobs/{JOB_ID}/out_1.png") == make_png(b"out-1")
        assert await storage.get_object(f"jobs/{JOB_ID}/out_2.png") is None

    async def test_two_images_uploaded_in_order(self, actor, job_spec, stored_inputs, generator):
        await actor.init(job_spec.model_copy(update={"requested_count": 2}))
        await actor.run()

        view = await actor.status()
        assert generator.calls[0]["count"] == 2
        assert [url.rsplit("/", 1)[-1] for url in view.images] == ["out_1.png", "out_2.png"]

    async def test_generation_failure_recorded(self, actor, job_spec, stored_inputs, generator):
        generator.error = UpstreamFailure("Image generation failed: HTTP 500")
        await actor.init(job_spec)

        assert await actor.run() is True

        view = await actor.status()
        assert view.status == JobStatus.ERROR
        assert view.error == "Image generation failed: HTTP 500"
        assert view.images == []

    async def test_missing_input_recorded(self, actor, job_spec, generator):
        await actor.init(job_spec)
        await actor.run()

        view = await actor.status()
        assert view.status == JobStatus.ERROR
        assert "not found" in view.error
        assert generator.calls == []

    async def test_unexpected_exception_recorded_and_truncated(self, actor, job_spec, stored_inputs, generator):
        generator.error = RuntimeError("x" * 5000)
        await actor.init(job_spec)
        await actor.run()

        view = await actor.status()
        assert view.status == JobStatus.ERROR
        assert view.error.startswith("RuntimeError: ")
        assert len(view.error) <= MAX_ERROR_LENGTH

    async def test_run_on_done_is_noop(self, actor, job_spec, stored_inputs, generator):
        await actor.init(job_spec)
        await actor.run()
        images = (await actor.status()).images

        assert await actor.run() is False

        assert len(generator.calls) == 1
        assert (await actor.status()).images == images

    async def test_retry_after_error(self, actor, job_spec, stored_inputs, generator, store):
        generator.error = UpstreamFailure("timeout")
        await actor.init(job_spec)
        await actor.run()
        assert (await actor.status()).status == JobStatus.ERROR

        generator.error = None
        assert await actor.run() is True

        view = await actor.status()
        assert view.status == JobStatus.DONE
        assert view.error is None
        record = store.get(JOB_ID)
        assert record.last_error is None
        assert record.attempts == 2

    async def test_concurrent_runs_execute_once(self, actor, job_spec, stored_inputs, generator):
        generator.gate = asyncio.Event()
        await actor.init(job_spec)

        first = asyncio.create_task(actor.run())
        await generator.entered.wait()

        assert (await actor.status()).status == JobStatus.SAVING
        assert await asyncio.gather(actor.run(), actor.run()) == [False, False]

        generator.gate.set()
        assert await first is True
        assert len(generator.calls) == 1
        assert len((await actor.status()).images) == 1

    async def test_second_actor_instance_cannot_start(self, actor, job_spec, stored_inputs, generator, store, storage):
        """Another process's actor for the same id is rejected by the record claim."""
        generator.gate = asyncio.Event()
        await actor.init(job_spec)
        first = asyncio.create_task(actor.run())
        await generator.entered.wait()

        other_generator = FakeGenerator()
        other = JobActor(JOB_ID, store=store, storage=storage, generator=other_generator)
        assert await other.run() is False

        generator.gate.set()
        await first
        assert other_generator.calls == []

    async def test_stale_attempt_recovered(self, job_spec, stored_inputs, store, storage, session_factory):
        generator = FakeGenerator()
        actor = JobActor(JOB_ID, store=store, storage=storage, generator=generator, stale_after=60)
        await actor.init(job_spec)
        store.claim(JOB_ID)

        _age_record(session_factory, minutes=5)

        assert await actor.run() is True
        assert (await actor.status()).status == JobStatus.DONE
        assert store.get(JOB_ID).attempts == 2

    async def test_fresh_attempt_not_recovered(self, job_spec, stored_inputs, store, storage):
        generator = FakeGenerator()
        actor = JobActor(JOB_ID, store=store, storage=storage, generator=generator, stale_after=60)
        await actor.init(job_spec)
        store.claim(JOB_ID)

        assert await actor.run() is False
        assert generator.calls == []

    async def test_trigger_runs_in_background(self, actor, job_spec, stored_inputs, generator):
        generator.gate = asyncio.Event()
        await actor.init(job_spec)

        task = actor.trigger()
        assert actor.trigger() is task
        await generator.entered.wait()
        assert actor.busy

        generator.gate.set()
        await task
        assert not actor.busy
        assert (await actor.status()).status == JobStatus.DONE

    async def test_superseded_attempt_leaves_record_alone(self, job_spec, stored_inputs, store, storage, session_factory):
        """An attempt failed as stale mid-generation never writes over its successor."""
        slow = FakeGenerator(outputs=[make_png(b"first")])
        slow.gate = asyncio.Event()
        first_actor = JobActor(JOB_ID, store=store, storage=storage, generator=slow, stale_after=60)
        await first_actor.init(job_spec)
        first = asyncio.create_task(first_actor.run())
        await slow.entered.wait()

        _age_record(session_factory, minutes=5)
        fast = FakeGenerator(outputs=[make_png(b"second")])
        second_actor = JobActor(JOB_ID, store=store, storage=storage, generator=fast, stale_after=60)
        assert await second_actor.run() is True
        assert store.get(JOB_ID).attempts == 2

        slow.gate.set()
        await first

        view = await second_actor.status()
        assert view.status == JobStatus.DONE
        assert len(view.images) == 1
        assert await storage.get_object(f"jobs/{JOB_ID}/out_1.png") == make_png(b"second")
