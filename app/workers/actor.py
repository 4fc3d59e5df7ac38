"""
Outfit Job Actor
Single-writer owner of one outfit job: creates the record, runs the
generation pipeline, and answers status queries.

Pipeline (one attempt per ``run``):
1. claim the job (queued/error -> running)
2. fetch the body and face reference images
3. build the generation prompt
4. mark saving
5. call the image-edit API
6. upload candidates to out_1, out_2, ...
7. mark done

Any failure in 2-6 is recorded as ``error`` on the job and never raised to
the caller of ``run``; pollers learn about it through ``status``.

Every write an attempt makes is fenced by its attempt number, and the record
is refreshed before each external call. An attempt that was failed as stale
and superseded stops at its next write without touching the record.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from app.schemas.job import JobSpec, JobStatusView
from app.services.image_edit import ImageEditService, build_outfit_prompt
from app.services.storage import StorageService
from app.workers.base import (
    ACTIVE_STATUSES,
    MAX_ERROR_LENGTH,
    InvalidSpec,
    JobStatus,
    describe_exception,
    truncate_error,
)
from app.workers.store import JobRecord, JobRecordStore

logger = logging.getLogger(__name__)


def clamp_count(requested_count: int) -> int:
    return min(2, max(1, requested_count))


class AttemptSuperseded(Exception):
    """This attempt was failed as stale and the job has moved on without it."""


class JobActor:
    """One actor per job id. Obtain instances through ``JobRouter.locate``."""

    def __init__(
        self,
        job_id: str,
        store: JobRecordStore,
        storage: StorageService,
        generator: ImageEditService,
        stale_after: Optional[float] = None,
    ):
        self.job_id = job_id
        self.store = store
        self.storage = storage
        self.generator = generator
        self.stale_after = stale_after
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        """True while a triggered run task is live in this process."""
        return self._task is not None and not self._task.done()

    async def init(self, spec: Union[JobSpec, Mapping[str, Any]]) -> bool:
        """
        Create the job record if absent.

        Returns:
            True if created, False if the record already existed (left untouched)

        Raises:
            InvalidSpec: a required field is missing or malformed
        """
        if not isinstance(spec, JobSpec):
            if not isinstance(spec, Mapping):
                raise InvalidSpec("Job spec must be an object")
            try:
                spec = JobSpec.model_validate(dict(spec))
            except ValidationError as e:
                raise InvalidSpec(f"Invalid job spec: {_summarize(e)}") from e

        async with self._lock:
            created = self.store.create_if_absent(self.job_id, spec)

        if created:
            logger.info(f"[Actor] Created job {self.job_id} ({spec.requested_count} image(s), {spec.target_size})")
        else:
            logger.debug(f"[Actor] Job {self.job_id} already exists, init is a no-op")
        return created

    async def status(self) -> JobStatusView:
        """Current persisted status. Does not wait on a running pipeline."""
        record = self.store.require(self.job_id)
        return JobStatusView(
            status=record.status,
            error=record.last_error if record.status == JobStatus.ERROR else None,
            images=record.output_image_refs if record.status == JobStatus.DONE else [],
        )

    def trigger(self) -> Optional[asyncio.Task]:
        """Schedule ``run`` in the background; no-op while a run task is live."""
        if self.busy:
            logger.debug(f"[Actor] Job {self.job_id} already has a run task")
            return self._task
        self._task = asyncio.create_task(self.run(), name=f"outfit-job-{self.job_id}")
        self._task.add_done_callback(self._log_task_failure)
        return self._task

    async def run(self) -> bool:
        """
        Execute one pipeline attempt if the job is queued or failed.

        Returns:
            True if this call executed an attempt, False if it was a no-op

        Raises:
            JobNotFound: no such job
        """
        async with self._lock:
            self._recover_stale()
            record = self.store.claim(self.job_id)

        if record is None:
            logger.info(f"[Actor] Run for {self.job_id} ignored: job is active or done")
            return False

        await self._execute(record)
        return True

    def _recover_stale(self):
        """Fail an attempt abandoned by a dead process so it can be claimed again."""
        if not self.stale_after:
            return
        record = self.store.require(self.job_id)
        if record.status not in ACTIVE_STATUSES or record.updated_at is None:
            return
        cutoff = datetime.utcnow() - timedelta(seconds=self.stale_after)
        if record.updated_at < cutoff:
            message = f"Attempt abandoned in '{record.status.value}' with no progress for {self.stale_after:.0f}s"
            if self.store.fail_stale(self.job_id, cutoff, message):
                logger.warning(f"[Actor] {self.job_id}: {message}")

    async def _execute(self, record: JobRecord):
        job_id = record.id
        attempt = record.attempts
        started = time.monotonic()
        logger.info(f"[START] outfit job {job_id} | attempt {attempt}")

        try:
            body = await self.storage.fetch(record.reference_image_ref)
            self._keep_alive(attempt)
            face = await self.storage.fetch(record.face_image_ref)

            prompt = build_outfit_prompt(record.event_label, record.archetype)

            if not self.store.mark_saving(job_id, attempt=attempt):
                raise AttemptSuperseded(attempt)

            count = clamp_count(record.requested_count)
            candidates = await self.generator.edit(
                prompt,
                [body, face],
                size=record.target_size,
                count=count,
            )

            urls = []
            for idx, data in enumerate(candidates[:count], start=1):
                self._keep_alive(attempt)
                urls.append(await self.storage.put(job_id, f"out_{idx}", data))

            if not self.store.mark_done(job_id, urls, attempt=attempt):
                raise AttemptSuperseded(attempt)

        except AttemptSuperseded:
            duration = time.monotonic() - started
            logger.warning(
                f"[ABANDONED] outfit job {job_id} | attempt {attempt} no longer owns the job | Duration: {duration:.2f}s"
            )
            return

        except Exception as e:
            message = describe_exception(e)
            duration = time.monotonic() - started
            logger.error(f"[ERROR] outfit job {job_id} | Duration: {duration:.2f}s | Error: {message}")
            self.store.mark_error(job_id, message, attempt=attempt)
            return

        duration = time.monotonic() - started
        logger.info(f"[COMPLETE] outfit job {job_id} | Duration: {duration:.2f}s | {len(urls)} image(s)")

    def _keep_alive(self, attempt: int):
        """Refresh the record before the next external call, or stop if the attempt was superseded."""
        if not self.store.heartbeat(self.job_id, attempt):
            raise AttemptSuperseded(attempt)

    def _log_task_failure(self, task: asyncio.Task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[Actor] Background run for {self.job_id} failed: {exc!r}")


def _summarize(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "spec"
        parts.append(f"{location}: {item.get('msg')}")
    return truncate_error("; ".join(parts), MAX_ERROR_LENGTH)
