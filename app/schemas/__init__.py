# Pydantic schemas package
from app.schemas.archetype import Archetype, normalize_archetype, parse_json_object
from app.schemas.job import (
    JobSpec, JobStatusView, JobStatusResponse, JobStartResponse, ArchetypeResponse,
    is_valid_email, is_valid_job_id
)

__all__ = [
    "Archetype", "normalize_archetype", "parse_json_object",
    "JobSpec", "JobStatusView", "JobStatusResponse", "JobStartResponse", "ArchetypeResponse",
    "is_valid_email", "is_valid_job_id",
]
