"""
Job Base Types
Status enumeration and the error taxonomy shared by the job actor, the
record store, the external clients and the HTTP layer.
"""

from enum import Enum
from typing import Optional

MAX_ERROR_LENGTH = 2000


class JobStatus(str, Enum):
    """Outfit job status enumeration."""
    QUEUED = "queued"
    RUNNING = "running"
    SAVING = "saving"
    DONE = "done"
    ERROR = "error"


# A Run request is accepted only from these states
RUNNABLE_STATUSES = (JobStatus.QUEUED, JobStatus.ERROR)

# A pipeline attempt is in flight
ACTIVE_STATUSES = (JobStatus.RUNNING, JobStatus.SAVING)


class OutfitJobError(Exception):
    """Base exception for outfit job errors."""

    http_status = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidSpec(OutfitJobError):
    """Malformed or missing job creation input. The job is never created."""

    http_status = 400


class JobNotFound(OutfitJobError):
    """Run or status requested for an unknown job id."""

    http_status = 404

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}", {"job": job_id})
        self.job_id = job_id


class UpstreamFailure(OutfitJobError):
    """Classification or generation API returned non-success or an unusable payload."""

    http_status = 502


class StorageFailure(OutfitJobError):
    """Remote storage rejected an upload or a stored object could not be fetched."""

    http_status = 502


class ValidationFailure(OutfitJobError):
    """Bad file type, size or email at the HTTP boundary."""

    http_status = 400


def truncate_error(message: str, limit: int = MAX_ERROR_LENGTH) -> str:
    """Clamp an error message to ``limit`` characters."""
    if len(message) <= limit:
        return message
    return message[: limit - 1] + "…"


def describe_exception(exc: BaseException) -> str:
    """Human readable, never empty, description of a pipeline failure."""
    text = str(exc).strip()
    if isinstance(exc, OutfitJobError):
        return truncate_error(text or type(exc).__name__)
    name = type(exc).__name__
    return truncate_error(f"{name}: {text}" if text else name)


__all__ = [
    "MAX_ERROR_LENGTH",
    "JobStatus",
    "RUNNABLE_STATUSES",
    "ACTIVE_STATUSES",
    "OutfitJobError",
    "InvalidSpec",
    "JobNotFound",
    "UpstreamFailure",
    "StorageFailure",
    "ValidationFailure",
    "truncate_error",
    "describe_exception",
]
