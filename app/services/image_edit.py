"""
Image Edit Service
Outfit generation through an OpenAI-compatible ``/images/edits`` endpoint.
Several reference images in, up to N base64 candidates out.
"""

import base64
import binascii
import logging
from typing import List, Optional, Sequence

import httpx

from app.core.config import Settings
from app.schemas.archetype import BULLET_PLACEHOLDER
from app.workers.base import UpstreamFailure

logger = logging.getLogger(__name__)


OUTFIT_PROMPT_TEMPLATE = """OUTFIT STYLING WITH IDENTITY PRESERVATION

Image 1 is the base: the full-length photo of the person. Keep their body,
pose, proportions and framing.
Image 2 is the face reference. It has PRIORITY for identity: the face in the
result MUST be the exact same person as in image 2 (face shape, eyes, brows,
nose, lips, skin tone, hair line).

[OCCASION]
{event}

[STYLE ARCHETYPE]
Type: {archetype_type}
Why: {archetype_reason}
Traits: {archetype_traits}

[TASK]
Dress the person in a complete outfit for the occasion that expresses the
archetype above: clothing, shoes and accessories that suit the event.

[RULES]
1. Do NOT change the face, age, body type or skin tone
2. Photorealistic, natural light, clean neutral background
3. Full-length shot, the whole outfit visible
4. No text, logos or watermarks"""


def build_outfit_prompt(event_label: str, archetype: dict) -> str:
    """Generation prompt for an occasion and a style archetype."""
    bullets = [b for b in archetype.get("bullets", []) if b and b != BULLET_PLACEHOLDER]
    return OUTFIT_PROMPT_TEMPLATE.format(
        event=event_label,
        archetype_type=archetype.get("type", ""),
        archetype_reason=archetype.get("reason", ""),
        archetype_traits=", ".join(bullets) if bullets else "-",
    )


class ImageEditService:
    """Stateless client for one image-edit request per call."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = settings.OPENAI_API_KEY
        self.base_url = settings.OPENAI_BASE_URL.rstrip("/")
        self.model = settings.IMAGE_MODEL
        self.quality = settings.IMAGE_QUALITY
        self.timeout = settings.GENERATION_TIMEOUT
        self._transport = transport

    async def edit(
        self,
        prompt: str,
        images: Sequence[bytes],
        size: str = "1024x1024",
        count: int = 1,
    ) -> List[bytes]:
        """
        Generate candidate images from ordered reference images.

        Args:
            prompt: Generation instructions
            images: Reference PNGs in priority order (body first, face second)
            size: Output size token, e.g. "1024x1024"
            count: Number of candidates to request

        Returns:
            Decoded candidate images in the order the API returned them

        Raises:
            UpstreamFailure: non-2xx response, unparsable body, or no decodable image
        """
        if not self.api_key:
            raise UpstreamFailure("OPENAI_API_KEY is not configured")

        files = [
            ("image[]", (f"ref_{idx + 1}.png", data, "image/png"))
            for idx, data in enumerate(images)
        ]
        form = {
            "model": self.model,
            "prompt": prompt,
            "n": str(count),
            "size": size,
            "quality": self.quality,
        }

        logger.info(f"[ImageEdit] model={self.model} size={size} n={count} refs={len(images)}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/images/edits",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    data=form,
                    files=files,
                )
        except httpx.TimeoutException as e:
            raise UpstreamFailure(f"Image generation timed out after {self.timeout:.0f}s") from e
        except httpx.HTTPError as e:
            raise UpstreamFailure(f"Image generation request failed: {e}") from e

        if not response.is_success:
            raise UpstreamFailure(
                f"Image generation failed: HTTP {response.status_code}",
                {"body": response.text[:1000]},
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamFailure("Image generation returned a non-JSON body") from e

        outputs = self._decode_images(payload)
        if not outputs:
            raise UpstreamFailure("Image generation returned no images")

        logger.info(f"[ImageEdit] [OK] {len(outputs)} image(s) received")
        return outputs

    @staticmethod
    def _decode_images(payload) -> List[bytes]:
        """Decode ``data[].b64_json`` entries, skipping anything undecodable."""
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            return []

        outputs = []
        for item in payload["data"]:
            b64 = item.get("b64_json") if isinstance(item, dict) else None
            if not isinstance(b64, str) or not b64:
                continue
            try:
                outputs.append(base64.b64decode(b64, validate=True))
            except (binascii.Error, ValueError):
                logger.warning("[ImageEdit] Skipping undecodable image payload")
        return outputs
