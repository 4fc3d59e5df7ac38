"""
Gemini Vision Archetype Service
Classifies a person's "style archetype" from a face photo and a full-length
photo with a single Gemini vision call.
Documentation: https://ai.google.dev/gemini-api/docs/image-understanding
"""

import asyncio
import logging
from typing import Tuple

from google import genai
from google.genai import types

from app.core.config import Settings
from app.schemas.archetype import Archetype, normalize_archetype, parse_json_object
from app.workers.base import UpstreamFailure

logger = logging.getLogger(__name__)


def sniff_mime_type(image_bytes: bytes) -> str:
    """Detect image mime type from magic bytes."""
    if image_bytes.startswith(b'\x89PNG\r\n\x1a\n'):
        return "image/png"
    elif image_bytes.startswith(b'RIFF') and image_bytes[8:12] == b'WEBP':
        return "image/webp"
    return "image/jpeg"


class ArchetypeClassifier:
    """Stateless archetype classification using Gemini vision."""

    PROMPT = "\n".join([
        'Ты — эксперт по "типажам внешности из TikTok" (вайб-архетипы).',
        "На входе 2 фото: (1) лицо, (2) полный рост.",
        "",
        "Задача:",
        '- Выбери РОВНО ОДИН типаж (короткое название на русском, пример: "Луна", "Солнце", "Лёд", "Муза", "Нимфа", "Дива").',
        "- Объясни почему (1–2 предложения: черты, контраст, линии/силуэт).",
        "- Дай 4 коротких признака (2–5 слов каждый).",
        "",
        "Верни СТРОГО JSON. Без пояснений, без Markdown, без кодовых блоков.",
        'Формат: {"type":"...","reason":"...","bullets":["...","...","...","..."]}',
    ])

    def __init__(self, settings: Settings, client=None):
        self.client = client or genai.Client(api_key=settings.GEMINI_API_KEY)
        self.model = settings.GEMINI_VISION_MODEL
        self.timeout = settings.GENERATION_TIMEOUT

    async def classify(self, face: bytes, full: bytes) -> Tuple[Archetype, str]:
        """
        Classify the archetype shown by two photos.

        Returns:
            (normalized archetype, raw model text)

        Raises:
            UpstreamFailure: the call failed or the answer was not a usable archetype
        """
        contents = [
            types.Part(text=self.PROMPT),
            types.Part.from_bytes(data=face, mime_type=sniff_mime_type(face)),
            types.Part.from_bytes(data=full, mime_type=sniff_mime_type(full)),
        ]
        config = types.GenerateContentConfig(
            temperature=0.4,
            response_mime_type="application/json",
        )

        try:
            response = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.model,
                    contents=contents,
                    config=config,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamFailure(f"Classification timed out after {self.timeout:.0f}s") from e
        except Exception as e:
            logger.error(f"[Gemini Vision] [ERROR] {e}")
            raise UpstreamFailure(f"Classification request failed: {e}") from e

        text = (getattr(response, "text", None) or "").strip()
        result = normalize_archetype(parse_json_object(text))
        if result is None:
            raise UpstreamFailure(
                "AI returned invalid JSON",
                {"aiTextPreview": text[:400]},
            )

        logger.info(f"[Gemini Vision] [OK] Archetype: {result.type}")
        return result, text
