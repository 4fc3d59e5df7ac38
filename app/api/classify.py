"""
Classification API Routes
Style archetype classification from two photos. Stateless, one model call.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from app.api.deps import get_runtime, require_multipart
from app.api.uploads import is_file_like, read_upload
from app.core.runtime import Runtime
from app.schemas.job import ArchetypeResponse, is_valid_email
from app.workers.base import OutfitJobError, ValidationFailure

logger = logging.getLogger(__name__)

router = APIRouter()


class ClassifierNotConfigured(OutfitJobError):
    http_status = 500


@router.post("/submit", response_model=ArchetypeResponse, dependencies=[Depends(require_multipart)])
async def submit_photos(
    email: str = Form(""),
    face: Optional[UploadFile] = File(None),
    full: Optional[UploadFile] = File(None),
    runtime: Runtime = Depends(get_runtime),
):
    """Classify the style archetype shown by a face photo and a full-length photo."""
    settings = runtime.settings
    if not settings.GEMINI_API_KEY:
        raise ClassifierNotConfigured("GEMINI_API_KEY не задан")

    if not is_valid_email(email):
        raise ValidationFailure("Некорректный email")

    if not is_file_like(face) or not is_file_like(full):
        raise ValidationFailure("Нужно загрузить 2 фото: face и full")

    face_bytes = await read_upload(face, settings.MAX_FILE_MB, "Нет файла face")
    full_bytes = await read_upload(full, settings.MAX_FILE_MB, "Нет файла full")

    result, ai_text = await runtime.classifier.classify(face_bytes, full_bytes)
    logger.info(f"[Classify API] {email.strip()} -> {result.type}")
    return ArchetypeResponse(result=result, aiText=ai_text)
