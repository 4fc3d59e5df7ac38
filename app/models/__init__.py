# Database models package
from app.models.job import OutfitJob

__all__ = [
    "OutfitJob",
]
