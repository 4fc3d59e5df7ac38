"""
API Dependencies
Common dependencies for FastAPI routes (runtime components, request checks).
"""

from fastapi import Request

from app.core.runtime import Runtime
from app.workers.base import ValidationFailure


def get_runtime(request: Request) -> Runtime:
    """Components built for this process in the app lifespan."""
    return request.app.state.runtime


def require_multipart(request: Request):
    """Reject bodies that are not multipart/form-data."""
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" not in content_type:
        raise ValidationFailure("Ожидается multipart/form-data")
