"""
Outfit Job Model
Database model for outfit generation jobs.
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Integer, JSON

from app.core.database import Base


class OutfitJob(Base):
    """Outfit generation job record, one row per job id."""

    __tablename__ = "outfit_jobs"

    id = Column(String(24), primary_key=True)  # 24 hex chars

    # Request (immutable after creation)
    requester = Column(String, nullable=False)
    event_label = Column(Text, nullable=False)
    archetype = Column(JSON, nullable=False)
    reference_image_ref = Column(String, nullable=False)
    face_image_ref = Column(String, nullable=False)
    target_size = Column(String, nullable=False)
    requested_count = Column(Integer, nullable=False, default=1)

    # Status: queued, running, saving, done, error
    status = Column(String, default="queued", index=True, nullable=False)
    last_error = Column(Text, nullable=True)
    attempts = Column(Integer, default=0, nullable=False)

    # Result
    output_image_refs = Column(JSON, default=list)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)
