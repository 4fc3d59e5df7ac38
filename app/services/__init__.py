# Services package - external integrations
from app.services.gemini_vision import ArchetypeClassifier
from app.services.image_edit import ImageEditService
from app.services.storage import StorageService

__all__ = [
    "ArchetypeClassifier",
    "ImageEditService",
    "StorageService",
]
