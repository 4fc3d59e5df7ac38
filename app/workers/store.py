"""
Job Record Store
Durable persistence of outfit job records in the SQL database.

Every status change is a conditional UPDATE guarded by the statuses it may
leave from, so two writers can never both win a transition. ``claim`` is the
compare-and-set that admits exactly one pipeline attempt at a time, across
processes as well as within one.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.models.job import OutfitJob
from app.schemas.job import JobSpec
from app.workers.base import (
    ACTIVE_STATUSES,
    RUNNABLE_STATUSES,
    JobNotFound,
    JobStatus,
    truncate_error,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobRecord:
    """Detached snapshot of one persisted job row."""
    id: str
    requester: str
    event_label: str
    archetype: dict
    reference_image_ref: str
    face_image_ref: str
    target_size: str
    requested_count: int
    status: JobStatus
    output_image_refs: List[str] = field(default_factory=list)
    last_error: Optional[str] = None
    attempts: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: OutfitJob) -> "JobRecord":
        return cls(
            id=row.id,
            requester=row.requester,
            event_label=row.event_label,
            archetype=dict(row.archetype or {}),
            reference_image_ref=row.reference_image_ref,
            face_image_ref=row.face_image_ref,
            target_size=row.target_size,
            requested_count=row.requested_count,
            status=JobStatus(row.status),
            output_image_refs=list(row.output_image_refs or []),
            last_error=row.last_error,
            attempts=row.attempts or 0,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


class JobRecordStore:
    """Read/write access to outfit job records."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, job_id: str) -> Optional[JobRecord]:
        db = self._session_factory()
        try:
            row = db.get(OutfitJob, job_id)
            return JobRecord.from_row(row) if row else None
        finally:
            db.close()

    def require(self, job_id: str) -> JobRecord:
        record = self.get(job_id)
        if record is None:
            raise JobNotFound(job_id)
        return record

    def create_if_absent(self, job_id: str, spec: JobSpec) -> bool:
        """
        Insert a queued record unless one already exists.

        Returns:
            True if a record was created, False if one was already there
        """
        db = self._session_factory()
        try:
            if db.get(OutfitJob, job_id) is not None:
                return False

            now = datetime.utcnow()
            db.add(OutfitJob(
                id=job_id,
                requester=spec.requester,
                event_label=spec.event_label,
                archetype=spec.archetype.model_dump(),
                reference_image_ref=spec.reference_image_ref,
                face_image_ref=spec.face_image_ref,
                target_size=spec.target_size,
                requested_count=spec.requested_count,
                status=JobStatus.QUEUED.value,
                output_image_refs=[],
                last_error=None,
                attempts=0,
                created_at=now,
                updated_at=now,
            ))
            try:
                db.commit()
            except IntegrityError:
                # Lost an insert race to another creator of the same id
                db.rollback()
                return False
            return True
        finally:
            db.close()

    def claim(self, job_id: str) -> Optional[JobRecord]:
        """
        Atomically advance a queued or failed job to ``running``.

        Clears outputs and any previous error and counts the attempt.

        Returns:
            The claimed record, or None if the job is active or done

        Raises:
            JobNotFound: no such job
        """
        current = self.require(job_id)
        if current.status not in RUNNABLE_STATUSES:
            return None

        won = self._transition(
            job_id,
            from_statuses=RUNNABLE_STATUSES,
            status=JobStatus.RUNNING.value,
            output_image_refs=[],
            last_error=None,
            attempts=OutfitJob.attempts + 1,
        )
        return self.get(job_id) if won else None

    def heartbeat(self, job_id: str, attempt: int) -> bool:
        """Refresh ``updated_at`` while ``attempt`` still owns the job."""
        return self._transition(job_id, from_statuses=ACTIVE_STATUSES, attempt=attempt)

    def mark_saving(self, job_id: str, attempt: Optional[int] = None) -> bool:
        return self._transition(
            job_id,
            from_statuses=(JobStatus.RUNNING,),
            attempt=attempt,
            status=JobStatus.SAVING.value,
        )

    def mark_done(self, job_id: str, output_image_refs: List[str], attempt: Optional[int] = None) -> bool:
        if not output_image_refs:
            raise ValueError("a done job needs at least one output image")
        return self._transition(
            job_id,
            from_statuses=(JobStatus.SAVING,),
            attempt=attempt,
            status=JobStatus.DONE.value,
            output_image_refs=list(output_image_refs),
            last_error=None,
        )

    def mark_error(self, job_id: str, message: str, attempt: Optional[int] = None) -> bool:
        return self._transition(
            job_id,
            from_statuses=ACTIVE_STATUSES,
            attempt=attempt,
            status=JobStatus.ERROR.value,
            output_image_refs=[],
            last_error=truncate_error(message or "Unknown error"),
        )

    def fail_stale(self, job_id: str, older_than: datetime, message: str) -> bool:
        """
        Move an attempt that stopped making progress to ``error``.

        An attempt whose process died leaves the record ``running`` or
        ``saving`` forever; once its last write is older than ``older_than``
        it is failed so a new Run can claim the job.
        """
        return self._transition(
            job_id,
            from_statuses=ACTIVE_STATUSES,
            stale_before=older_than,
            status=JobStatus.ERROR.value,
            output_image_refs=[],
            last_error=truncate_error(message),
        )

    def _transition(
        self,
        job_id: str,
        from_statuses: Iterable[JobStatus],
        stale_before: Optional[datetime] = None,
        attempt: Optional[int] = None,
        **values
    ) -> bool:
        """
        Conditional UPDATE; True if this call performed the transition.

        ``attempt`` fences the write to one pipeline attempt, so an attempt
        that was failed as stale and superseded cannot touch the record again.
        """
        allowed = [s.value for s in from_statuses]
        db = self._session_factory()
        try:
            previous = db.query(OutfitJob.updated_at).filter(OutfitJob.id == job_id).scalar()
            now = datetime.utcnow()
            if previous is not None and previous > now:
                now = previous
            values["updated_at"] = now

            query = db.query(OutfitJob).filter(OutfitJob.id == job_id, OutfitJob.status.in_(allowed))
            if stale_before is not None:
                query = query.filter(OutfitJob.updated_at < stale_before)
            if attempt is not None:
                query = query.filter(OutfitJob.attempts == attempt)
            count = query.update(values, synchronize_session=False)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        if count != 1:
            logger.warning(f"[Store] Transition of {job_id} to {values.get('status', 'heartbeat')} rejected (not in {allowed}, attempt {attempt})")
        return count == 1
