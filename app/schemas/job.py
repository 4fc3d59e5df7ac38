"""
Job Schemas
Pydantic models for outfit job creation and the status/start API responses.
"""

import re
from typing import List, Optional
from pydantic import BaseModel, Field, StrictStr, field_validator

from app.schemas.archetype import Archetype
from app.workers.base import JobStatus

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
JOB_ID_RE = re.compile(r"^[a-f0-9]{24}$")
SIZE_RE = re.compile(r"^(\d{2,5}x\d{2,5}|auto)$")


def is_valid_email(value: Optional[str]) -> bool:
    return bool(EMAIL_RE.match(str(value or "").strip()))


def is_valid_job_id(value: Optional[str]) -> bool:
    return bool(JOB_ID_RE.match(str(value or "")))


class JobSpec(BaseModel):
    """Everything needed to create an outfit job. Immutable once stored."""
    requester: StrictStr
    event_label: StrictStr
    archetype: Archetype
    reference_image_ref: StrictStr
    face_image_ref: StrictStr
    target_size: StrictStr = "1024x1024"
    requested_count: int = Field(default=1, ge=1, le=2)

    @field_validator("requester")
    @classmethod
    def check_email(cls, v: str) -> str:
        v = v.strip()
        if not is_valid_email(v):
            raise ValueError("invalid email")
        return v

    @field_validator("event_label", "reference_image_ref", "face_image_ref")
    @classmethod
    def require_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must be a non-empty string")
        return v

    @field_validator("target_size")
    @classmethod
    def check_size(cls, v: str) -> str:
        if not SIZE_RE.match(v):
            raise ValueError("size must look like 1024x1024")
        return v


class JobStatusView(BaseModel):
    """Snapshot returned by the job actor's status query."""
    status: JobStatus
    error: Optional[str] = None
    images: List[str] = []


class JobStatusResponse(JobStatusView):
    """Schema for the status endpoint response."""
    ok: bool = True


class JobStartResponse(BaseModel):
    """Schema for the start endpoint response."""
    ok: bool = True
    job: str


class ArchetypeResponse(BaseModel):
    """Schema for the classification endpoint response."""
    ok: bool = True
    result: Archetype
    aiText: str = ""
