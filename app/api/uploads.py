"""
Upload Validation
Checks for uploaded photos at the HTTP boundary: presence, size, PNG type.
"""

from typing import Optional

from fastapi import UploadFile
from starlette.datastructures import UploadFile as StarletteUploadFile

from app.workers.base import ValidationFailure

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
PNG_CLAIMED_TYPES = ("image/png", "application/octet-stream", "")

MIB = 1024 * 1024


def is_png(data: bytes) -> bool:
    """True if the bytes start with the 8-byte PNG signature."""
    return len(data) >= 8 and data[:8] == PNG_SIGNATURE


def is_file_like(value) -> bool:
    return isinstance(value, StarletteUploadFile)


async def read_upload(upload: Optional[UploadFile], max_mb: int, missing_message: str) -> bytes:
    """
    Read an uploaded file, enforcing presence and a size limit.

    Raises:
        ValidationFailure: file missing or larger than ``max_mb`` MiB
    """
    if not is_file_like(upload):
        raise ValidationFailure(missing_message)

    # Read one byte past the limit so oversized uploads are never held whole
    limit = max_mb * MIB
    data = await upload.read(limit + 1)
    if len(data) > limit:
        raise ValidationFailure(f"Файл слишком большой (макс {max_mb}MB)")
    return data


async def read_png_upload(upload: Optional[UploadFile], max_mb: int, field: str) -> bytes:
    """
    Read an uploaded PNG: claimed type must allow PNG and the signature must match.

    Raises:
        ValidationFailure: missing, too large, or not a PNG
    """
    if not is_file_like(upload):
        raise ValidationFailure(f"Нет файла {field}")

    claimed = (upload.content_type or "").lower()
    if claimed not in PNG_CLAIMED_TYPES:
        raise ValidationFailure(
            "Нужно PNG (квадрат) для генерации",
            {"field": field, "gotType": upload.content_type},
        )

    limit = max_mb * MIB
    data = await upload.read(limit + 1)
    if not is_png(data):
        raise ValidationFailure(
            "Нужно PNG (квадрат) для генерации",
            {"field": field, "gotType": upload.content_type},
        )
    if len(data) > limit:
        raise ValidationFailure(f"PNG слишком большой (макс {max_mb}MB)")
    return data
