"""
Archetype Schemas
The style archetype produced by classification and carried by every job,
plus the parsing helpers that turn free model text into one.
"""

import json
import re
from typing import Any, List, Optional

from pydantic import BaseModel, Field, StrictStr, ValidationError, field_validator

BULLET_COUNT = 4
BULLET_PLACEHOLDER = "—"

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class Archetype(BaseModel):
    """Short style classification: a type name, why, and four traits."""
    type: StrictStr
    reason: StrictStr
    bullets: List[StrictStr] = Field(default_factory=list, validate_default=True)

    @field_validator("type", "reason")
    @classmethod
    def require_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must be a non-empty string")
        return v

    @field_validator("bullets")
    @classmethod
    def pad_bullets(cls, v: List[str]) -> List[str]:
        """Keep up to four non-empty bullets, padding short lists with a placeholder."""
        bullets = [b.strip() for b in v if b.strip()][:BULLET_COUNT]
        while len(bullets) < BULLET_COUNT:
            bullets.append(BULLET_PLACEHOLDER)
        return bullets

    class Config:
        frozen = True


def parse_json_object(text: Optional[str]) -> Optional[dict]:
    """
    Find a JSON object in model output.

    Tries the whole text first, then the widest ``{...}`` span, which covers
    answers wrapped in prose or code fences.
    """
    if not text or not isinstance(text, str):
        return None

    candidates = [text]
    match = _JSON_OBJECT_RE.search(text)
    if match:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
    return None


def normalize_archetype(obj: Any) -> Optional[Archetype]:
    """
    Normalize classifier output into an Archetype, or None if unusable.

    Model output is treated leniently: non-string bullets are dropped rather
    than rejecting the whole answer, but ``type`` and ``reason`` must be
    present.
    """
    if not isinstance(obj, dict):
        return None

    bullets = obj.get("bullets")
    if not isinstance(bullets, list):
        bullets = []

    try:
        return Archetype(
            type=obj.get("type"),
            reason=obj.get("reason"),
            bullets=[b for b in bullets if isinstance(b, str)],
        )
    except ValidationError:
        return None
