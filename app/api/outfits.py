"""
Outfits API Routes
Starts outfit generation jobs, reports their status, and serves stored images.
"""

import io
import json
import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from app.api.deps import get_runtime, require_multipart
from app.api.uploads import read_png_upload
from app.core.runtime import Runtime
from app.schemas.archetype import Archetype
from app.schemas.job import JobSpec, JobStartResponse, JobStatusResponse, is_valid_email, is_valid_job_id
from app.services.storage import object_key
from app.workers.base import InvalidSpec, StorageFailure, ValidationFailure

logger = logging.getLogger(__name__)

router = APIRouter()


def new_job_id() -> str:
    """24 hex chars from 12 cryptographically random bytes."""
    return secrets.token_hex(12)


def parse_archetype(raw: str) -> Archetype:
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = None
    if not isinstance(value, dict):
        raise ValidationFailure("Некорректный archetype")
    try:
        return Archetype.model_validate(value)
    except ValidationError:
        raise ValidationFailure("Некорректный archetype")


def parse_count(raw: Optional[str], default: int) -> int:
    if raw is None or not raw.strip():
        return default
    try:
        count = int(raw)
    except ValueError:
        raise ValidationFailure("Некорректный count")
    if count not in (1, 2):
        raise ValidationFailure("count должен быть 1 или 2")
    return count


@router.post("/start", response_model=JobStartResponse, dependencies=[Depends(require_multipart)])
async def start_outfit_job(
    email: str = Form(""),
    event: str = Form(""),
    archetype: str = Form(""),
    count: Optional[str] = Form(None),
    full: Optional[UploadFile] = File(None),
    face: Optional[UploadFile] = File(None),
    runtime: Runtime = Depends(get_runtime),
):
    """
    Create an outfit job and trigger its generation.

    Flow:
    1. Validate email, event, archetype and both PNGs
    2. Store the inputs in the job's ``input`` and ``face`` slots
    3. Init the job record, then dispatch Run
    """
    settings = runtime.settings
    email = email.strip()
    event = event.strip()

    if not is_valid_email(email):
        raise ValidationFailure("Некорректный email")
    if not event:
        raise ValidationFailure("Пустое мероприятие")

    parsed_archetype = parse_archetype(archetype.strip())
    requested_count = parse_count(count, settings.OUTFIT_COUNT)

    full_bytes = await read_png_upload(full, settings.MAX_PNG_MB, "full")
    face_bytes = await read_png_upload(face, settings.MAX_PNG_MB, "face")

    job_id = new_job_id()
    storage = runtime.storage

    try:
        spec = JobSpec(
            requester=email,
            event_label=event,
            archetype=parsed_archetype,
            reference_image_ref=storage.public_url(object_key(job_id, "input")),
            face_image_ref=storage.public_url(object_key(job_id, "face")),
            target_size=settings.OUTFIT_SIZE,
            requested_count=requested_count,
        )
    except ValidationError as e:
        raise InvalidSpec(f"Invalid job spec: {e.error_count()} error(s)") from e

    await storage.put(job_id, "input", full_bytes)
    await storage.put(job_id, "face", face_bytes)

    actor = runtime.router.locate(job_id)
    await actor.init(spec)
    runtime.queue.enqueue_run(job_id)

    logger.info(f"[Outfits API] Started job {job_id} for event '{event[:40]}'")
    return JobStartResponse(job=job_id)


@router.post("/run", response_model=JobStartResponse)
async def run_outfit_job(
    job: str = Query(""),
    runtime: Runtime = Depends(get_runtime),
):
    """
    Re-issue Run for an existing job.

    Retries a job in ``error`` and recovers one left ``running`` by a dead
    process. A no-op for jobs that are active or done.
    """
    job = job.strip()
    if not is_valid_job_id(job):
        raise ValidationFailure("Bad job")

    runtime.store.require(job)
    mode = runtime.queue.enqueue_run(job)

    logger.info(f"[Outfits API] Run re-issued for job {job} ({mode})")
    return JobStartResponse(job=job)


@router.get("/status", response_model=JobStatusResponse)
async def get_outfit_job_status(
    job: str = Query(""),
    runtime: Runtime = Depends(get_runtime),
):
    """Get job status and, once done, the generated image URLs."""
    job = job.strip()
    if not is_valid_job_id(job):
        raise ValidationFailure("Bad job")

    view = await runtime.router.locate(job).status()
    return JobStatusResponse(status=view.status, error=view.error, images=view.images)


@router.get("/file/{key:path}")
async def get_outfit_file(key: str, runtime: Runtime = Depends(get_runtime)):
    """Serve a stored job image (inputs and outputs)."""
    try:
        data = await runtime.storage.get_object(key) if key else None
    except StorageFailure:
        data = None

    if data is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    return StreamingResponse(
        io.BytesIO(data),
        media_type="image/png" if key.endswith(".png") else "application/octet-stream",
        headers={"Cache-Control": "public, max-age=31536000, immutable"},
    )
